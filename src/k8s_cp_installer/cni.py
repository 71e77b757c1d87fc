"""
CNI 플러그인 설치 모듈
Flannel (매니페스트) 또는 Cilium (cilium-cli + Helm 차트)
"""

import io
import tarfile
from typing import Dict, List, Optional

from rich.console import Console

from .config import Config
from .errors import DownloadError, InstallerError, UnsupportedCNIError
from .helm import HelmManager
from .journal import StageResult
from .k8s import K8sManager
from .logger import get_logger
from .runner import CommandRunner, Policy

console = Console()


def kubectl_apply_changed(output: str) -> bool:
    """kubectl apply 출력에서 변경 여부 판단 (모든 리소스가 unchanged 면 False)"""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if not lines:
        return True
    return any(not line.endswith("unchanged") for line in lines)


class CNIInstaller:
    """CNI 설치기 기본 클래스"""

    name = ""
    namespace = ""
    selector = ""

    def __init__(self, config: Config, runner: CommandRunner, k8s: K8sManager, helm: HelmManager):
        self.config = config
        self.cni = config.cni
        self.runner = runner
        self.k8s = k8s
        self.helm = helm
        self.logger = get_logger()

    def install(self) -> StageResult:
        raise NotImplementedError

    def pods_args(self) -> List[str]:
        """헬스체크에서 사용할 CNI 파드 조회 인자"""
        args = ["-n", self.namespace, "get", "pods"]
        if self.selector:
            args += ["-l", self.selector]
        return args + ["-o", "wide"]


class FlannelInstaller(CNIInstaller):
    """Flannel 설치기"""

    name = "flannel"
    namespace = "kube-flannel"
    selector = ""

    def install(self) -> StageResult:
        console.print("[cyan]-> Applying Flannel manifest...[/cyan]")
        result = self.k8s.kubectl(["apply", "-f", self.cni.flannel_manifest_url])
        changed = kubectl_apply_changed(result.stdout if isinstance(result.stdout, str) else "")

        console.print("[cyan]-> Waiting for Flannel DaemonSet to be ready...[/cyan]")
        self.k8s.rollout_status(self.namespace, "ds/kube-flannel-ds", self.cni.flannel_rollout_timeout)

        return StageResult.from_changes(changed, self.name)


class CiliumInstaller(CNIInstaller):
    """Cilium 설치기"""

    name = "cilium"
    namespace = "kube-system"
    selector = "k8s-app=cilium"
    release = "cilium"
    chart = "cilium/cilium"

    def desired_values(self) -> Dict:
        """Helm 릴리스에 적용할 values"""
        return {
            "kubeProxyReplacement": self.cni.cilium_kube_proxy_replacement,
            "ipam": {
                "mode": "cluster-pool",
                "operator": {
                    "clusterPoolIPv4PodCIDRList": [self.config.cluster.pod_cidr],
                },
            },
        }

    def set_args(self) -> List[str]:
        return [
            "--set", f"kubeProxyReplacement={self.cni.cilium_kube_proxy_replacement}",
            "--set", "ipam.mode=cluster-pool",
            "--set", f"ipam.operator.clusterPoolIPv4PodCIDRList={{{self.config.cluster.pod_cidr}}}",
        ]

    def cli_url(self, version: str) -> str:
        arch = self.config.cluster.arch
        return f"{self.cni.cilium_cli_release_url}/{version}/cilium-linux-{arch}.tar.gz"

    def install_cli(self) -> bool:
        """cilium-cli 설치 (이미 있으면 건너뜀)"""
        if self.runner.which("cilium"):
            self.logger.info("cilium-cli already installed")
            return False

        console.print("[cyan]-> Installing cilium-cli for convenience...[/cyan]")
        stable_url = self.cni.cilium_cli_stable_url
        version = self.runner.fetch(stable_url).decode("utf-8").strip()
        if self.runner.dry_run:
            version = version or "<stable>"
        elif not version:
            raise DownloadError(f"Empty cilium-cli version from {stable_url}")
        archive = self.runner.fetch(self.cli_url(version))

        binary = b""
        if archive:
            binary = extract_binary(archive, "cilium")
        return self.runner.write_file(self.config.paths.cilium_bin, binary, mode=0o755)

    def install(self) -> StageResult:
        changed = self.install_cli()

        console.print("[cyan]-> Adding Helm repo & installing Cilium...[/cyan]")
        self.helm.helm(["repo", "add", "cilium", self.cni.cilium_chart_repo], Policy.OPTIONAL, changed=False)
        self.helm.helm(["repo", "update"], Policy.OPTIONAL, changed=False)

        desired = self.desired_values()
        current = self.helm.release_values(self.release, self.namespace)
        if current == desired:
            console.print("[green]✓ Cilium release already up to date[/green]")
            self.logger.info("Cilium release values unchanged, skipping upgrade")
        else:
            self.helm.helm([
                "upgrade", "--install", self.release, self.chart,
                "--namespace", self.namespace,
                *self.set_args(),
            ])
            changed = True

        console.print("[cyan]-> Waiting for Cilium to become ready...[/cyan]")
        timeout = self.cni.cilium_rollout_timeout
        self.k8s.rollout_status(self.namespace, "ds/cilium", timeout)
        self.k8s.rollout_status(self.namespace, "deploy/cilium-operator", timeout)

        console.print("[cyan]-> (Optional) Validate Cilium status[/cyan]")
        self.runner.run(["cilium", "status", "--wait", "--verbose"], Policy.OPTIONAL,
                        user=self.k8s.user.name, changed=False)

        return StageResult.from_changes(changed, self.name)


def extract_binary(archive: bytes, member: str) -> bytes:
    """tar.gz 아카이브에서 실행 파일 하나 꺼내기"""
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz") as tar:
            extracted = tar.extractfile(member)
            if extracted is None:
                raise InstallerError(f"{member} is not a regular file in archive")
            return extracted.read()
    except (tarfile.TarError, KeyError) as e:
        raise InstallerError(f"Cannot extract {member} from archive: {e}") from e


CNI_INSTALLERS = {
    FlannelInstaller.name: FlannelInstaller,
    CiliumInstaller.name: CiliumInstaller,
}


def get_installer(config: Config, runner: CommandRunner, k8s: K8sManager,
                  helm: Optional[HelmManager] = None) -> CNIInstaller:
    """CNI 선택자에 맞는 설치기 반환"""
    installer_cls = CNI_INSTALLERS.get(config.cluster.cni)
    if installer_cls is None:
        raise UnsupportedCNIError(config.cluster.cni)
    helm = helm or HelmManager(config, runner, k8s)
    return installer_cls(config, runner, k8s, helm)
