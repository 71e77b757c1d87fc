"""
컨테이너 런타임 (containerd) 설치 및 설정 모듈
"""

import os
import re
from typing import List, Tuple

from rich.console import Console

from .config import Config
from .errors import CommandError
from .journal import StageResult
from .logger import get_logger
from .runner import CommandRunner, Policy
from .system import apt_install

console = Console()

RUNTIME_PACKAGES = ["containerd", "containernetworking-plugins"]

CRI_CNI_TABLE = 'plugins."io.containerd.grpc.v1.cri".cni'
# containerd 2.x (config version 3)
CRI_V1_RUNTIME = "io.containerd.cri.v1.runtime"


def configure_containerd(text: str, cni_bin_dir: str, cni_conf_dir: str) -> Tuple[str, List[str]]:
    """containerd 기본 설정에 CNI 경로와 systemd cgroup 드라이버 적용

    Returns:
        (변경된 설정, 적용하지 못한 항목에 대한 경고 목록)
    """
    warnings = []

    text = re.sub(r'^([ \t]*bin_dir[ \t]*=[ \t]*).*$', rf'\g<1>"{cni_bin_dir}"', text, flags=re.M)
    text = re.sub(r'^([ \t]*bin_dirs[ \t]*=[ \t]*).*$', rf"\g<1>['{cni_bin_dir}']", text, flags=re.M)
    text = re.sub(r'^([ \t]*conf_dir[ \t]*=[ \t]*).*$', rf'\g<1>"{cni_conf_dir}"', text, flags=re.M)

    if CRI_CNI_TABLE not in text and CRI_V1_RUNTIME not in text:
        if text and not text.endswith("\n"):
            text += "\n"
        text += (
            f'\n[{CRI_CNI_TABLE}]\n'
            f'  bin_dir = "{cni_bin_dir}"\n'
            f'  conf_dir = "{cni_conf_dir}"\n'
        )

    text, count = re.subn(r'^([ \t]*)SystemdCgroup[ \t]*=[ \t]*false', r'\1SystemdCgroup = true', text, flags=re.M)
    if count == 0 and not re.search(r'^[ \t]*SystemdCgroup[ \t]*=[ \t]*true', text, flags=re.M):
        warnings.append("SystemdCgroup option not found in containerd config")

    return text, warnings


class ContainerdManager:
    """containerd 관리 클래스"""

    def __init__(self, config: Config, runner: CommandRunner):
        self.config = config
        self.paths = config.paths
        self.runner = runner
        self.logger = get_logger()

    def default_config(self) -> str:
        """containerd config default 출력"""
        result = self.runner.query(["containerd", "config", "default"])
        if result.ok:
            return result.stdout

        if self.runner.dry_run:
            # 아직 containerd 가 설치되지 않은 상태의 dry-run
            return self.runner.read_text(self.paths.containerd_config) or ""
        raise CommandError(["containerd", "config", "default"], result.returncode, result.stderr)

    def service_running(self, unit: str = "containerd") -> bool:
        enabled = self.runner.query(["systemctl", "is-enabled", unit])
        active = self.runner.query(["systemctl", "is-active", unit])
        return enabled.stdout.strip() == "enabled" and active.stdout.strip() == "active"

    def install(self) -> StageResult:
        """containerd 설치, 설정 생성, 서비스 활성화"""
        changed = apt_install(self.runner, RUNTIME_PACKAGES)

        changed |= self.runner.makedirs(os.path.dirname(self.paths.containerd_config))
        changed |= self.runner.makedirs(self.paths.cni_bin_dir)

        desired, warnings = configure_containerd(
            self.default_config(), self.paths.cni_bin_dir, self.paths.cni_conf_dir
        )
        for warning in warnings:
            self.logger.warning(warning)
            console.print(f"[yellow]⚠ {warning}[/yellow]")

        config_changed = self.runner.write_file(self.paths.containerd_config, desired, policy=Policy.OPTIONAL)
        if config_changed:
            self.runner.run(["systemctl", "restart", "containerd"])
            changed = True

        if not self.service_running():
            self.runner.run(["systemctl", "enable", "--now", "containerd"])
            changed = True

        return StageResult.from_changes(changed)
