"""
CLI 테스트
"""

import subprocess

import pytest
import yaml
from click.testing import CliRunner

from k8s_cp_installer.cli import cli


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"installer": {"log_dir": str(tmp_path / "logs")}}))
    return str(path)


@pytest.fixture
def no_subprocess(monkeypatch):
    """호스트 명령어 실행 금지"""
    def forbidden(*args, **kwargs):
        raise AssertionError(f"unexpected command: {args}")

    monkeypatch.setattr(subprocess, "run", forbidden)


def test_bogus_cni_exits_2(config_file, no_subprocess):
    """지원하지 않는 CNI 는 어떤 명령어도 실행하기 전에 종료 코드 2"""
    result = CliRunner().invoke(cli, ["install", "--config", config_file, "--cni", "bogus"])

    assert result.exit_code == 2
    assert "Unsupported CNI value: bogus" in result.output


def test_bogus_cni_from_env_exits_2(config_file, no_subprocess):
    result = CliRunner().invoke(cli, ["install", "--config", config_file], env={"CNI": "weave"})
    assert result.exit_code == 2


def test_invalid_pod_cidr_exits_2(config_file, no_subprocess):
    result = CliRunner().invoke(cli, ["validate", "--config", config_file], env={"POD_CIDR": "10.0.0.0/33"})
    assert result.exit_code == 2
    assert "Invalid POD_CIDR value" in result.output


def test_validate(config_file):
    result = CliRunner().invoke(cli, ["validate", "--config", config_file], env={"CNI": "cilium"})
    assert result.exit_code == 0
    assert "cilium" in result.output


def test_init_writes_sample(tmp_path):
    output = tmp_path / "sample.yaml"
    result = CliRunner().invoke(cli, ["init", str(output)])

    assert result.exit_code == 0
    assert yaml.safe_load(output.read_text())["cluster"]["cni"] == "flannel"


def test_plan_lists_stages(config_file, no_subprocess):
    result = CliRunner().invoke(cli, ["plan", "--config", config_file, "--cni", "cilium"])

    assert result.exit_code == 0
    for key in ("preflight", "containerd", "kubeconfig", "taints", "health"):
        assert key in result.output


def test_reset_requires_confirmation(config_file, no_subprocess):
    result = CliRunner().invoke(cli, ["reset", "--config", config_file], input="n\n")
    assert result.exit_code == 1


def test_report_requires_journal():
    result = CliRunner().invoke(cli, ["report"])
    assert result.exit_code == 2
