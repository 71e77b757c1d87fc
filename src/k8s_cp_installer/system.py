"""
시스템 준비 모듈
기본 패키지, 커널 모듈, sysctl, swap 비활성화
"""

import re
from pathlib import Path
from typing import List

from rich.console import Console

from .config import Config
from .journal import StageResult
from .logger import get_logger
from .runner import CommandRunner, Policy

console = Console()

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

BASE_PACKAGES = [
    "ca-certificates", "curl", "gpg", "apt-transport-https",
    "conntrack", "socat", "ebtables", "ipset", "lsb-release",
]

KERNEL_MODULES = ["overlay", "br_netfilter"]

SYSCTL_SETTINGS = {
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.bridge.bridge-nf-call-ip6tables": "1",
    "net.ipv4.ip_forward": "1",
}

SWAP_ENTRY = re.compile(
    r'^[ \t]*([^#\s]\S*[ \t]+\S+[ \t]+swap[ \t]+\S+).*$',
    re.MULTILINE
)


def render_modules_load() -> str:
    return "\n".join(KERNEL_MODULES) + "\n"


def render_sysctl() -> str:
    width = max(len(key) for key in SYSCTL_SETTINGS)
    return "".join(f"{key.ljust(width)} = {value}\n" for key, value in SYSCTL_SETTINGS.items())


def comment_swap_entries(fstab: str) -> str:
    """fstab 의 swap 항목을 주석 처리"""
    return SWAP_ENTRY.sub(r'# \1 # disabled for k8s', fstab)


def missing_packages(runner: CommandRunner, packages: List[str]) -> List[str]:
    """dpkg 기준으로 설치되지 않은 패키지 목록"""
    missing = []
    for package in packages:
        result = runner.query(["dpkg-query", "-W", "-f=${Status}", package])
        if not (result.ok and "install ok installed" in result.stdout):
            missing.append(package)
    return missing


def apt_install(runner: CommandRunner, packages: List[str], update: bool = True) -> bool:
    """누락된 패키지만 설치. 설치가 있었으면 True"""
    missing = missing_packages(runner, packages)
    if not missing:
        return False

    get_logger().info(f"Installing packages: {' '.join(missing)}")
    if update:
        runner.run(["apt-get", "update", "-y"], env=APT_ENV)
    runner.run(["apt-get", "install", "-y", *missing], env=APT_ENV)
    return True


class SystemPreparer:
    """시스템 준비 (패키지, 커널 모듈, sysctl, swap)"""

    def __init__(self, config: Config, runner: CommandRunner):
        self.config = config
        self.paths = config.paths
        self.runner = runner
        self.logger = get_logger()

    def module_loaded(self, name: str) -> bool:
        return Path(self.paths.sys_module_dir, name).exists()

    def sysctl_applied(self) -> bool:
        """현재 커널 값이 원하는 값과 같은지"""
        for key, value in SYSCTL_SETTINGS.items():
            result = self.runner.query(["sysctl", "-n", key])
            if not result.ok or result.stdout.strip() != value:
                return False
        return True

    def prepare(self) -> StageResult:
        """패키지 설치, 커널 모듈 로드, sysctl 적용"""
        changed = apt_install(self.runner, BASE_PACKAGES)

        # 커널 모듈 (로드 실패는 무시)
        for module in KERNEL_MODULES:
            if not self.module_loaded(module):
                self.runner.run(["modprobe", module], Policy.OPTIONAL)
                changed = True

        changed |= self.runner.write_file(self.paths.modules_load, render_modules_load())

        sysctl_changed = self.runner.write_file(self.paths.sysctl_conf, render_sysctl())
        if sysctl_changed or not self.sysctl_applied():
            self.runner.run(["sysctl", "--system"])
            changed = True

        return StageResult.from_changes(changed)

    def disable_swap(self) -> StageResult:
        """swap 끄기 및 fstab 의 swap 항목 주석 처리 (best-effort)"""
        changed = False

        active = self.runner.query(["swapon", "--show", "--noheadings"])
        if not active.ok or active.stdout.strip():
            result = self.runner.run(["swapoff", "-a"], Policy.OPTIONAL)
            changed = result.ok

        try:
            data = self.runner.read_bytes(self.paths.fstab)
        except OSError as e:
            self.logger.warning(f"Cannot read {self.paths.fstab}, skipping: {e}")
            return StageResult.from_changes(changed)

        if data is None:
            self.logger.debug(f"{self.paths.fstab} not found, skipping")
        else:
            # 라벨 등에 UTF-8 이 아닌 바이트가 있어도 그대로 보존
            fstab = data.decode("utf-8", errors="surrogateescape")
            updated = comment_swap_entries(fstab)
            if updated != fstab:
                changed |= self.runner.write_file(
                    self.paths.fstab, updated.encode("utf-8", errors="surrogateescape"),
                    policy=Policy.OPTIONAL)

        return StageResult.from_changes(changed)
