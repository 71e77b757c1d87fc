"""
설치 파이프라인
0~11 단계를 고정된 순서로 실행하고 저널에 기록
"""

import os
from dataclasses import dataclass
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .cni import get_installer
from .config import Config
from .errors import InstallerError, PrivilegeError
from .helm import HelmManager
from .journal import Outcome, StageResult
from .k8s import K8sManager, KubeUser
from .logger import get_logger
from .monitor import HealthChecker
from .network import NetworkChecker
from .runner import CommandRunner
from .runtime import ContainerdManager
from .system import SystemPreparer

console = Console()

TOTAL_STAGES = 11
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class Stage:
    """파이프라인 단계"""
    number: int
    key: str
    title: str
    action: Callable[[], StageResult]


class InstallPipeline:
    """컨트롤 플레인 설치 파이프라인"""

    def __init__(self, config: Config, runner: Optional[CommandRunner] = None,
                 user: Optional[KubeUser] = None):
        self.config = config
        self.runner = runner or CommandRunner(dry_run=config.installer.dry_run)
        self.journal = self.runner.journal
        self.logger = get_logger()

        self.network = NetworkChecker(self.runner)
        self.system = SystemPreparer(config, self.runner)
        self.containerd = ContainerdManager(config, self.runner)
        self.k8s = K8sManager(config, self.runner, user)
        self.helm = HelmManager(config, self.runner, self.k8s)
        self.cni = get_installer(config, self.runner, self.k8s, self.helm)
        self.health = HealthChecker(self.runner, self.k8s, self.cni)

        self.join_command = ""
        self.journal_file = None

    def stages(self) -> List[Stage]:
        cluster = self.config.cluster
        return [
            Stage(0, "preflight", "Checking prerequisites (root, network)...", self.preflight),
            Stage(1, "system", "System prep: packages, kernel modules, sysctl...", self.system.prepare),
            Stage(2, "swap", "Disable swap (required by kubelet unless configured otherwise)...",
                  self.system.disable_swap),
            Stage(3, "containerd", "Install and configure containerd (CRI runtime)...", self.containerd.install),
            Stage(4, "repo", f"Add Kubernetes apt repo (pkgs.k8s.io, per {cluster.k8s_minor} docs)...",
                  self.k8s.add_package_repo),
            Stage(5, "tools", "Install kubelet, kubeadm, kubectl and hold their versions...",
                  self.k8s.install_tools),
            Stage(6, "init", f"kubeadm init (single-node control plane) with pod CIDR {cluster.pod_cidr}...",
                  self.k8s.init_cluster),
            Stage(7, "kubeconfig", "Configure kubectl for the current (non-root) user if present...",
                  self.k8s.configure_kubectl),
            Stage(8, "helm", "Install Helm (v3)...", self.helm.install),
            Stage(9, "cni", f"Install CNI: {cluster.cni}", self.cni.install),
            Stage(10, "taints", "Allow scheduling on control plane (single-node convenience)...",
                  self.k8s.remove_control_plane_taints),
            Stage(11, "health", "Quick health checks...", self.health_stage),
        ]

    def preflight(self) -> StageResult:
        """root 권한 확인 및 네트워크 체크"""
        if os.geteuid() != 0:
            if not self.runner.dry_run:
                raise PrivilegeError("Please run as root (use sudo).")
            console.print("[yellow]⚠ root 가 아니지만 dry-run 이므로 계속 진행합니다.[/yellow]")
            self.logger.warning("Not running as root (dry-run)")

        self.network.preflight_check(self.config.installer.network_check_host)
        return StageResult.from_changes(False)

    def health_stage(self) -> StageResult:
        """클러스터 상태 출력 및 조인 명령어 생성"""
        result = self.health.show_cluster_status()
        self.join_command = self.k8s.join_command()
        return result

    def run_stage(self, stage: Stage) -> StageResult:
        console.print(f"\n[bold cyan]{escape(f'[{stage.number}/{TOTAL_STAGES}]')} {escape(stage.title)}[/bold cyan]")
        self.logger.info(f"Stage {stage.number}/{TOTAL_STAGES} ({stage.key}) started")
        self.journal.begin(stage.number, stage.key, stage.title)
        self.logger.set_stage(stage.key)

        try:
            result = stage.action()
        except BaseException as e:
            self.journal.finish(Outcome.FAILED.value, str(e))
            raise
        finally:
            self.logger.set_stage(None)

        self.journal.finish(result.outcome.value, result.message)
        self.logger.info(f"Stage {stage.number}/{TOTAL_STAGES} ({stage.key}) {result.outcome.value}")
        return result

    def rollback(self):
        """이번 실행에서 변경한 파일 복원"""
        console.print("\n[bold yellow]오류 발생! 변경한 파일을 복원합니다...[/bold yellow]")
        self.logger.error("Error occurred, restoring files written during this run...")
        restored = self.journal.rollback_files()
        for path in restored:
            console.print(f"  ↺ {path}")
        console.print(f"[yellow]롤백 완료 ({len(restored)}개 파일)[/yellow]")

    def rollback_if_enabled(self):
        if self.config.installer.rollback_on_failure and not self.runner.dry_run:
            self.rollback()

    def run(self) -> int:
        """전체 파이프라인 실행. 프로세스 종료 코드 반환"""
        exit_code = 0
        self.logger.info("=== Installation started ===")
        if self.runner.dry_run:
            console.print("[bold yellow]DRY-RUN: 호스트를 변경하지 않고 실행 계획만 기록합니다.[/bold yellow]")

        try:
            for stage in self.stages():
                self.run_stage(stage)
            self.show_summary()
            self.logger.info("=== Installation completed successfully ===")

        except InstallerError as e:
            exit_code = e.exit_code
            console.print(f"\n[red]✗ {escape(str(e))}[/red]")
            self.logger.error(f"Installation failed (exit {exit_code}): {e}")
            self.rollback_if_enabled()

        except KeyboardInterrupt:
            exit_code = EXIT_INTERRUPTED
            console.print("\n[yellow]사용자에 의해 중단되었습니다.[/yellow]")
            self.logger.warning("Execution interrupted by user")
            self.rollback_if_enabled()

        except Exception as e:
            # 예상하지 못한 오류도 파일은 복원한 뒤 CLI 로 전달
            exit_code = 1
            self.logger.exception(f"Unexpected error: {e}")
            self.rollback_if_enabled()
            raise

        finally:
            self.journal.exit_code = exit_code
            self.journal_file = self.journal.save(self.config.installer.log_dir)

        return exit_code

    def show_stage_table(self):
        """단계별 실행 결과 표"""
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", width=3)
        table.add_column("단계", style="cyan", width=14)
        table.add_column("상태", width=10)
        table.add_column("메시지", width=24)

        colors = {"changed": "green", "unchanged": "blue", "skipped": "yellow", "failed": "red"}
        for record in self.journal.stages:
            color = colors.get(record.status, "white")
            status = record.status + (f" (⚠{len(record.warnings)})" if record.warnings else "")
            table.add_row(
                str(record.number),
                record.key,
                f"[{color}]{status}[/{color}]",
                escape(record.message[:24]) if record.message else ""
            )

        console.print(table)

    def show_summary(self):
        """설치 결과 요약 표시"""
        console.print("\n" + "=" * 60)
        console.print("[bold green]=== Done! ===[/bold green]")
        console.print("=" * 60 + "\n")

        self.show_stage_table()

        console.print(f"\nCNI installed: {self.config.cluster.cni}")
        console.print(f"Helm installed: {escape(self.helm.version())}")
        console.print("\nCheck CoreDNS:")
        console.print("  kubectl -n kube-system get deploy/coredns && "
                      "kubectl -n kube-system get pods -l k8s-app=kube-dns -o wide", markup=False)
        console.print("\nWorker join command (use on additional nodes):")
        console.print(self.join_command, markup=False, highlight=False)

        log_files = self.logger.get_log_files()
        console.print("\n[bold]로그 파일:[/bold]")
        console.print(f"  Main: {log_files['main_log']}")
        console.print(f"  Error: {log_files['error_log']}")
