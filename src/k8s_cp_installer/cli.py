"""
CLI 메인 인터페이스
Click 및 Rich 기반 사용자 친화적 CLI
"""

import os
import sys
import tempfile
import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .cni import get_installer
from .config import Config
from .doc_generator import DocGenerator
from .errors import ConfigError, InstallerError
from .k8s import K8sManager
from .logger import init_logger, get_logger
from .monitor import HealthChecker
from .pipeline import InstallPipeline
from .runner import CommandRunner

console = Console()


def load_cli_config(config_path, **cluster_overrides) -> Config:
    """설정 파일 -> 환경변수 -> CLI 옵션 순으로 설정 로드. 오류 시 종료 코드 2"""
    try:
        cfg = Config(config_path)
        cfg.apply_env()
        cfg.apply_overrides("cluster", **cluster_overrides)
        cfg.validate()
    except ConfigError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(e.exit_code)
    return cfg


def setup_logger(cfg: Config, debug: bool = False):
    """로거 초기화. 로그 디렉토리를 만들 수 없으면 임시 디렉토리 사용"""
    try:
        return init_logger(cfg.installer.log_dir, cfg.installer.log_level, debug)
    except OSError as e:
        fallback = os.path.join(tempfile.gettempdir(), "k8s-cp-installer")
        console.print(f"[yellow]⚠ 로그 디렉토리 {cfg.installer.log_dir} 사용 불가 ({e.strerror}), "
                      f"{fallback} 에 기록합니다.[/yellow]")
        cfg.installer.log_dir = fallback
        return init_logger(fallback, cfg.installer.log_level, debug)


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """K8s Control Plane Installer

    Ubuntu/Debian 호스트를 단일 노드 Kubernetes 컨트롤 플레인으로 구성합니다.
    """
    pass


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--cni', type=str, default=None, help='CNI 플러그인 (flannel | cilium)')
@click.option('--pod-cidr', type=str, default=None, help='파드 네트워크 CIDR')
@click.option('--k8s-minor', type=str, default=None, help='pkgs.k8s.io 마이너 버전 (예: v1.33)')
@click.option('--arch', type=str, default=None, help='CPU 아키텍처 (amd64, arm64 ...)')
@click.option('--dry-run', is_flag=True, help='호스트를 변경하지 않고 실행 계획만 기록')
@click.option('--rollback-on-failure', is_flag=True, help='실패 시 변경한 파일 복원')
@click.option('--reuse-existing-cluster', is_flag=True,
              help='이미 초기화된 노드에서 kubeadm init 건너뛰기')
@click.option('--debug', is_flag=True, help='디버그 모드')
def install(config, cni, pod_cidr, k8s_minor, arch, dry_run, rollback_on_failure,
            reuse_existing_cluster, debug):
    """컨트롤 플레인 설치 (0~11 단계)"""
    cfg = load_cli_config(config, cni=cni, pod_cidr=pod_cidr, k8s_minor=k8s_minor, arch=arch,
                          reuse_existing_cluster=True if reuse_existing_cluster else None)
    cfg.apply_overrides("installer", rollback_on_failure=True if rollback_on_failure else None,
                        dry_run=True if dry_run else None)

    setup_logger(cfg, debug)
    logger = get_logger()
    logger.info(f"Starting install (cni={cfg.cluster.cni}, pod_cidr={cfg.cluster.pod_cidr}, "
                f"k8s_minor={cfg.cluster.k8s_minor}, arch={cfg.cluster.arch}, "
                f"dry_run={cfg.installer.dry_run})")

    console.print(Panel.fit(
        "[bold cyan]K8s Control Plane Installer[/bold cyan]\n"
        f"CNI: {cfg.cluster.cni} / Pod CIDR: {cfg.cluster.pod_cidr} / {cfg.cluster.k8s_minor}",
        border_style="cyan"
    ))

    try:
        pipeline = InstallPipeline(cfg)
        exit_code = pipeline.run()
    except InstallerError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        logger.error(str(e))
        sys.exit(e.exit_code)
    except Exception as e:
        console.print(f"\n[red]예상치 못한 오류 발생: {escape(str(e))}[/red]")
        logger.exception("Unexpected error occurred")
        sys.exit(1)

    if pipeline.journal_file:
        console.print(f"\n[dim]저널: {pipeline.journal_file}[/dim]")
    sys.exit(exit_code)


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--cni', type=str, default=None, help='CNI 플러그인 (flannel | cilium)')
@click.option('--pod-cidr', type=str, default=None, help='파드 네트워크 CIDR')
@click.option('--k8s-minor', type=str, default=None, help='pkgs.k8s.io 마이너 버전')
def plan(config, cni, pod_cidr, k8s_minor):
    """실행될 단계 목록 출력 (호스트 변경 없음)"""
    cfg = load_cli_config(config, cni=cni, pod_cidr=pod_cidr, k8s_minor=k8s_minor)
    setup_logger(cfg)

    pipeline = InstallPipeline(cfg, runner=CommandRunner(dry_run=True))

    table = Table(title="설치 단계", show_header=True, header_style="bold magenta")
    table.add_column("#", width=3)
    table.add_column("키", style="cyan")
    table.add_column("설명")
    for stage in pipeline.stages():
        table.add_row(str(stage.number), stage.key, escape(stage.title))

    console.print(table)


@cli.command()
@click.argument('output', type=click.Path(), default='./config.yaml')
def init(output):
    """샘플 설정 파일 생성"""
    cfg = Config()
    cfg.create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print("[cyan]설정 파일을 편집한 후 다음 명령어로 실행하세요:[/cyan]")
    console.print(f"[cyan]  sudo k8s-cp-installer install --config {output}[/cyan]")


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
def validate(config):
    """설정 파일 유효성 검사"""
    cfg = load_cli_config(config)
    console.print("[green]✓ 설정 파일이 유효합니다.[/green]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")

    table.add_row("설정 파일", cfg.config_path or "[yellow]기본값[/yellow]")
    table.add_row("K8s 마이너 버전", cfg.cluster.k8s_minor)
    table.add_row("Pod CIDR", cfg.cluster.pod_cidr)
    table.add_row("아키텍처", cfg.cluster.arch)
    table.add_row("CNI", cfg.cluster.cni)
    table.add_row("기존 클러스터 재사용", "예" if cfg.cluster.reuse_existing_cluster else "아니오")
    table.add_row("롤백 활성화", "예" if cfg.installer.rollback_on_failure else "아니오")
    table.add_row("로그 디렉토리", cfg.installer.log_dir)

    console.print(table)


@cli.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              help="설정 파일 경로")
@click.option("--save-report", is_flag=True, help="리포트를 파일로 저장")
def health(config_path, save_report):
    """클러스터 헬스체크 수행"""
    console.print("[bold cyan]K8s Control Plane Installer - 헬스체크[/bold cyan]\n")

    cfg = load_cli_config(config_path)
    setup_logger(cfg)

    runner = CommandRunner()
    k8s = K8sManager(cfg, runner)
    checker = HealthChecker(runner, k8s, get_installer(cfg, runner, k8s))

    with console.status("[bold green]헬스체크 수행 중...[/bold green]"):
        results = checker.check_all()

    status_color = "green" if results["overall_status"] == "healthy" else "red"
    console.print(f"\n[bold {status_color}]전체 상태: {results['overall_status'].upper()}[/bold {status_color}]\n")

    table = Table(title="헬스체크 상세 결과")
    table.add_column("항목", style="cyan")
    table.add_column("상태", style="magenta")
    table.add_column("메시지", style="white")

    for check_name, check_result in results["checks"].items():
        status_icon = "✅" if check_result.get("healthy") else "❌"
        table.add_row(
            check_name.upper(),
            f"{status_icon} {check_result.get('status', 'unknown')}",
            escape(check_result.get("message", ""))
        )

    console.print(table)

    if save_report:
        report_file = checker.save_health_report(results, cfg.installer.log_dir)
        console.print(f"\n[green]✅ 리포트 저장: {report_file}[/green]")

    sys.exit(0 if results["overall_status"] == "healthy" else 1)


@cli.command("join-command")
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              help="설정 파일 경로")
def join_command(config_path):
    """워커 노드 조인 명령어 출력"""
    cfg = load_cli_config(config_path)
    setup_logger(cfg)

    try:
        command = K8sManager(cfg, CommandRunner()).join_command()
    except InstallerError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(e.exit_code)

    console.print(command, markup=False, highlight=False)


@cli.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True),
              help="설정 파일 경로")
@click.option("--yes", "-y", is_flag=True, help="확인 없이 진행")
def reset(config_path, yes):
    """노드 초기화 (kubeadm reset)"""
    cfg = load_cli_config(config_path)

    if not yes:
        click.confirm("kubeadm reset 으로 이 노드의 클러스터를 제거합니다. 계속하시겠습니까?", abort=True)

    setup_logger(cfg)
    try:
        K8sManager(cfg, CommandRunner()).reset_node()
    except InstallerError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(e.exit_code)


@cli.command()
@click.option("-j", "--journal", "journal_file", type=click.Path(exists=True),
              required=True, help="분석할 저널 파일")
@click.option("-o", "--output-dir", "output_dir",
              default="./docs/generated",
              help="출력 디렉토리 (기본값: ./docs/generated)")
def report(journal_file, output_dir):
    """저널 파일 기반으로 실행 리포트 생성"""
    console.print("[bold cyan]K8s Control Plane Installer - 리포트 생성[/bold cyan]\n")

    console.print(f"[yellow]저널 파일: {journal_file}[/yellow]")
    console.print(f"[yellow]출력 디렉토리: {output_dir}[/yellow]\n")

    setup_logger(Config())

    try:
        generator = DocGenerator(journal_file, output_dir)
        generated_files = generator.generate_all()
    except FileNotFoundError as e:
        console.print(f"[red]❌ 오류: {e}[/red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]❌ 저널 파일 형식 오류: {e}[/red]")
        sys.exit(1)

    console.print("[bold green]✅ 리포트 생성 완료![/bold green]\n")

    table = Table(title="생성된 파일")
    table.add_column("유형", style="cyan")
    table.add_column("파일 경로", style="white")

    for doc_type, file_path in generated_files.items():
        table.add_row(doc_type.upper(), str(file_path))

    console.print(table)


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
