"""
Helm v3 설치 및 실행 모듈
"""

import json
from typing import Dict, List, Optional

from rich.console import Console

from .config import Config
from .journal import StageResult
from .k8s import K8sManager
from .logger import get_logger
from .runner import CommandResult, CommandRunner, Policy

console = Console()


class HelmManager:
    """Helm 관리 클래스"""

    def __init__(self, config: Config, runner: CommandRunner, k8s: K8sManager):
        self.config = config
        self.runner = runner
        self.k8s = k8s
        self.logger = get_logger()

    def is_installed(self) -> bool:
        return self.runner.which("helm") is not None

    def install(self) -> StageResult:
        """get-helm-3 스크립트로 Helm 설치 (이미 있으면 건너뜀)"""
        if self.is_installed():
            console.print("[green]✓ Helm already installed.[/green]")
            self.logger.info("Helm already installed")
            return StageResult.skipped("이미 설치됨")

        script = self.runner.fetch(self.config.installer.helm_install_script_url)
        self.runner.run(["bash"], input=script.decode("utf-8"))
        return StageResult.from_changes(True)

    def version(self) -> str:
        result = self.runner.query(["helm", "version", "--short"])
        return result.stdout.strip() if result.ok and result.stdout.strip() else "not found"

    def helm(self, args: List[str], policy: Policy = Policy.REQUIRED,
             changed: bool = True) -> CommandResult:
        """대상 사용자로 helm 실행"""
        return self.runner.run(["helm", *args], policy, user=self.k8s.user.name, changed=changed)

    def release_values(self, release: str, namespace: str) -> Optional[Dict]:
        """설치된 릴리스의 사용자 지정 values (없으면 None)"""
        result = self.runner.query(
            ["helm", "get", "values", release, "--namespace", namespace, "-o", "json"],
            user=self.k8s.user.name
        )
        if not result.ok:
            return None
        try:
            return json.loads(result.stdout or "null") or {}
        except ValueError:
            return None
