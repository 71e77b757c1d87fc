"""
containerd 설정 모듈 테스트
"""

from pathlib import Path

from k8s_cp_installer.journal import Outcome
from k8s_cp_installer.runtime import ContainerdManager, configure_containerd
from conftest import FakeRunner


DEFAULT_V2 = """version = 2

[plugins]
  [plugins."io.containerd.grpc.v1.cri"]
    [plugins."io.containerd.grpc.v1.cri".cni]
      bin_dir = "/usr/lib/cni"
      conf_dir = "/etc/cni/net.d"
      conf_template = ""
    [plugins."io.containerd.grpc.v1.cri".containerd.runtimes.runc.options]
      SystemdCgroup = false
"""

DEFAULT_V3 = """version = 3

[plugins]
  [plugins.'io.containerd.cri.v1.runtime'.cni]
    bin_dirs = ['/usr/lib/cni']
    conf_dir = '/etc/cni/net.d'
  [plugins.'io.containerd.cri.v1.runtime'.containerd.runtimes.runc.options]
    SystemdCgroup = false
"""


def test_configure_containerd_v2():
    """CNI 경로와 SystemdCgroup 설정"""
    text, warnings = configure_containerd(DEFAULT_V2, "/opt/cni/bin", "/etc/cni/net.d")

    assert '      bin_dir = "/opt/cni/bin"' in text
    assert '      conf_dir = "/etc/cni/net.d"' in text
    assert "SystemdCgroup = true" in text
    assert "SystemdCgroup = false" not in text
    assert text.count('[plugins."io.containerd.grpc.v1.cri".cni]') == 1
    assert warnings == []


def test_configure_containerd_v3():
    text, warnings = configure_containerd(DEFAULT_V3, "/opt/cni/bin", "/etc/cni/net.d")

    assert "    bin_dirs = ['/opt/cni/bin']" in text
    assert '[plugins."io.containerd.grpc.v1.cri".cni]' not in text
    assert "SystemdCgroup = true" in text
    assert warnings == []


def test_configure_containerd_appends_cni_table():
    """CNI 테이블이 없으면 추가하고, SystemdCgroup 이 없으면 경고"""
    text, warnings = configure_containerd('version = 2\n', "/opt/cni/bin", "/etc/cni/net.d")

    assert text.endswith(
        '[plugins."io.containerd.grpc.v1.cri".cni]\n'
        '  bin_dir = "/opt/cni/bin"\n'
        '  conf_dir = "/etc/cni/net.d"\n'
    )
    assert len(warnings) == 1


def test_configure_containerd_is_stable():
    """두 번 적용해도 결과가 같음"""
    once, _ = configure_containerd(DEFAULT_V2, "/opt/cni/bin", "/etc/cni/net.d")
    twice, _ = configure_containerd(once, "/opt/cni/bin", "/etc/cni/net.d")
    assert once == twice


def running_runner():
    return FakeRunner({
        ("dpkg-query",): (0, "install ok installed"),
        ("containerd", "config", "default"): (0, DEFAULT_V2),
        ("systemctl", "is-enabled"): (0, "enabled\n"),
        ("systemctl", "is-active"): (0, "active\n"),
    })


def test_install_restarts_once_on_change(config):
    """설정이 바뀌면 containerd 를 한 번 재시작"""
    runner = running_runner()
    result = ContainerdManager(config, runner).install()

    assert result.outcome == Outcome.CHANGED
    assert runner.commands.count("systemctl restart containerd") == 1
    assert not runner.ran("systemctl", "enable")
    assert "SystemdCgroup = true" in Path(config.paths.containerd_config).read_text()
    assert Path(config.paths.cni_bin_dir).is_dir()


def test_install_second_run_unchanged(config):
    ContainerdManager(config, running_runner()).install()

    runner = running_runner()
    result = ContainerdManager(config, runner).install()

    assert result.outcome == Outcome.UNCHANGED
    assert not runner.ran("systemctl", "restart")
    assert not runner.ran("apt-get")


def test_dry_run_writes_nothing(config):
    """dry-run 은 조회만 하고 파일을 쓰지 않음"""
    runner = FakeRunner({("containerd",): (127, "", "not found")}, dry_run=True)
    runner.journal.begin(3, "containerd", "containerd")

    ContainerdManager(config, runner).install()

    assert not Path(config.paths.containerd_config).exists()
    assert not runner.ran("apt-get")
    planned = [a.detail for a in runner.journal.current.actions]
    assert "systemctl restart containerd" in planned
    assert all(a.dry_run for a in runner.journal.current.actions)
