"""
Kubernetes 모듈 테스트
"""

import json
import os
import stat
from pathlib import Path

import pytest

from k8s_cp_installer.errors import ClusterAlreadyInitializedError, InstallerError
from k8s_cp_installer.journal import Outcome
from k8s_cp_installer.k8s import K8sManager, node_taint_keys, render_apt_source, resolve_user
from conftest import FakeRunner


def test_render_apt_source():
    line = render_apt_source("v1.33", "/etc/apt/keyrings/kubernetes-apt-keyring.gpg")
    assert line == (
        "deb [signed-by=/etc/apt/keyrings/kubernetes-apt-keyring.gpg] "
        "https://pkgs.k8s.io/core:/stable:/v1.33/deb/ /\n"
    )


def test_node_taint_keys():
    nodes = {"items": [
        {"spec": {"taints": [
            {"key": "node-role.kubernetes.io/control-plane", "effect": "NoSchedule"},
        ]}},
        {"spec": {}},
    ]}
    assert node_taint_keys(json.dumps(nodes)) == {"node-role.kubernetes.io/control-plane"}


def test_resolve_user_unknown():
    with pytest.raises(InstallerError):
        resolve_user({"SUDO_USER": "no-such-user-k8s-cp"})


def test_add_package_repo(config, kube_user):
    """서명 키와 APT 소스 등록 후 apt-get update"""
    runner = FakeRunner({("gpg", "--dearmor"): (0, "KEYRING")})
    k8s = K8sManager(config, runner, kube_user)

    result = k8s.add_package_repo()

    assert result.outcome == Outcome.CHANGED
    assert runner.fetched == ["https://pkgs.k8s.io/core:/stable:/v1.33/deb/Release.key"]
    assert Path(config.paths.apt_keyring).read_bytes() == b"KEYRING"
    assert stat.S_IMODE(os.stat(config.paths.apt_keyring).st_mode) == 0o644
    assert "/core:/stable:/v1.33/deb/ /" in Path(config.paths.apt_source).read_text()
    assert runner.ran("apt-get", "update")

    # 같은 상태에서 다시 실행하면 변경 없음
    runner = FakeRunner({("gpg", "--dearmor"): (0, "KEYRING")})
    result = K8sManager(config, runner, kube_user).add_package_repo()
    assert result.outcome == Outcome.UNCHANGED
    assert not runner.ran("apt-get")


def test_install_tools_holds_packages(config, kube_user):
    runner = FakeRunner({
        ("dpkg-query",): (0, "install ok installed"),
        ("apt-mark", "showhold"): (0, "kubelet\n"),
        ("systemctl", "is-enabled", "kubelet"): (0, "enabled\n"),
    })
    result = K8sManager(config, runner, kube_user).install_tools()

    assert result.outcome == Outcome.CHANGED
    assert "apt-mark hold kubeadm kubectl" in runner.commands
    assert not runner.ran("systemctl", "enable")


def test_init_cluster(config, kube_user):
    runner = FakeRunner({("kubeadm", "init"): (0, "Your Kubernetes control-plane has initialized successfully!")})
    config.cluster.pod_cidr = "10.20.0.0/16"

    result = K8sManager(config, runner, kube_user).init_cluster()

    assert result.outcome == Outcome.CHANGED
    assert "kubeadm init --pod-network-cidr=10.20.0.0/16" in runner.commands


def test_second_init_fails(config, kube_user):
    """이미 초기화된 노드에서는 kubeadm init 을 실행하지 않고 실패"""
    admin_conf = Path(config.paths.admin_conf)
    admin_conf.parent.mkdir(parents=True)
    admin_conf.write_text("apiVersion: v1\n")

    runner = FakeRunner()
    with pytest.raises(ClusterAlreadyInitializedError) as exc_info:
        K8sManager(config, runner, kube_user).init_cluster()

    assert exc_info.value.exit_code == 1
    assert not runner.ran("kubeadm")


def test_reuse_existing_cluster(config, kube_user):
    admin_conf = Path(config.paths.admin_conf)
    admin_conf.parent.mkdir(parents=True)
    admin_conf.write_text("apiVersion: v1\n")
    config.cluster.reuse_existing_cluster = True

    runner = FakeRunner()
    result = K8sManager(config, runner, kube_user).init_cluster()

    assert result.outcome == Outcome.SKIPPED
    assert not runner.ran("kubeadm")


def test_configure_kubectl_ownership(config, kube_user, monkeypatch):
    """kubeconfig 는 대상 사용자 소유, 0600"""
    admin_conf = Path(config.paths.admin_conf)
    admin_conf.parent.mkdir(parents=True)
    admin_conf.write_text("apiVersion: v1\nkind: Config\n")

    chowned = []
    monkeypatch.setattr(os, "lchown", lambda path, uid, gid: chowned.append((str(path), uid, gid)))
    kube_user.uid, kube_user.gid = 12345, 23456

    result = K8sManager(config, FakeRunner(), kube_user).configure_kubectl()

    kubeconfig = Path(kube_user.kubeconfig)
    assert result.outcome == Outcome.CHANGED
    assert kubeconfig.read_text() == "apiVersion: v1\nkind: Config\n"
    assert stat.S_IMODE(kubeconfig.stat().st_mode) == 0o600
    assert (kube_user.kube_dir, 12345, 23456) in chowned
    assert (kube_user.kubeconfig, 12345, 23456) in chowned


def test_configure_kubectl_second_run_unchanged(config, kube_user):
    admin_conf = Path(config.paths.admin_conf)
    admin_conf.parent.mkdir(parents=True)
    admin_conf.write_text("apiVersion: v1\n")

    K8sManager(config, FakeRunner(), kube_user).configure_kubectl()
    result = K8sManager(config, FakeRunner(), kube_user).configure_kubectl()

    assert result.outcome == Outcome.UNCHANGED
    assert Path(kube_user.kubeconfig).stat().st_uid == os.getuid()


def test_configure_kubectl_without_admin_conf(config, kube_user):
    with pytest.raises(InstallerError):
        K8sManager(config, FakeRunner(), kube_user).configure_kubectl()


def test_remove_only_present_taints(config, kube_user):
    nodes = {"items": [{"spec": {"taints": [
        {"key": "node-role.kubernetes.io/control-plane", "effect": "NoSchedule"},
    ]}}]}
    runner = FakeRunner({("kubectl", "get", "nodes", "-o", "json"): (0, json.dumps(nodes))})

    result = K8sManager(config, runner, kube_user).remove_control_plane_taints()

    assert result.outcome == Outcome.CHANGED
    taint_calls = [(cmd, user) for cmd, user in runner.calls if cmd[:2] == ["kubectl", "taint"]]
    assert taint_calls == [
        (["kubectl", "taint", "nodes", "--all", "node-role.kubernetes.io/control-plane-"], "tester")
    ]


def test_taint_removal_failure_is_ignored(config, kube_user):
    """테인트 제거 실패는 무시"""
    runner = FakeRunner({
        ("kubectl", "get"): (1, "", "connection refused"),
        ("kubectl", "taint"): (1, "", "not found"),
    })
    result = K8sManager(config, runner, kube_user).remove_control_plane_taints()
    assert result.outcome == Outcome.UNCHANGED
    assert runner.commands.count("kubectl taint nodes --all node-role.kubernetes.io/master-") == 1


def test_join_command(config, kube_user):
    runner = FakeRunner({("kubeadm", "token"): (0, "kubeadm join 10.0.0.1:6443 --token abc\n")})
    assert K8sManager(config, runner, kube_user).join_command() == "kubeadm join 10.0.0.1:6443 --token abc"
