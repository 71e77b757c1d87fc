"""
Kubernetes 컨트롤 플레인 모듈
패키지 저장소, kubeadm/kubelet/kubectl 설치, kubeadm init, kubeconfig, 테인트 제거, 리셋
"""

import json
import os
import pwd
from dataclasses import dataclass
from typing import List, Optional, Set

from rich.console import Console

from .config import Config
from .errors import ClusterAlreadyInitializedError, CommandError, InstallerError
from .journal import StageResult
from .logger import get_logger
from .runner import CommandResult, CommandRunner, Policy
from .system import apt_install

console = Console()

K8S_PACKAGES = ["kubelet", "kubeadm", "kubectl"]

CONTROL_PLANE_TAINTS = [
    "node-role.kubernetes.io/control-plane",
    "node-role.kubernetes.io/master",
]


def repo_base_url(k8s_minor: str) -> str:
    return f"https://pkgs.k8s.io/core:/stable:/{k8s_minor}/deb/"


def render_apt_source(k8s_minor: str, keyring: str) -> str:
    """pkgs.k8s.io APT 소스 한 줄"""
    return f"deb [signed-by={keyring}] {repo_base_url(k8s_minor)} /\n"


def node_taint_keys(nodes_json: str) -> Set[str]:
    """kubectl get nodes -o json 출력에서 테인트 키 목록 추출"""
    data = json.loads(nodes_json)
    keys = set()
    for node in data.get("items", []):
        for taint in node.get("spec", {}).get("taints", []) or []:
            keys.add(taint.get("key"))
    return keys


@dataclass
class KubeUser:
    """kubectl 을 사용할 사용자"""
    name: str
    home: str
    uid: int
    gid: int

    @property
    def kube_dir(self) -> str:
        return os.path.join(self.home, ".kube")

    @property
    def kubeconfig(self) -> str:
        return os.path.join(self.kube_dir, "config")


def resolve_user(environ=None) -> KubeUser:
    """sudo 를 실행한 사용자 (없으면 root)"""
    environ = os.environ if environ is None else environ
    name = environ.get("SUDO_USER") or "root"
    try:
        entry = pwd.getpwnam(name)
    except KeyError as e:
        raise InstallerError(f"User {name} not found in passwd database") from e
    return KubeUser(name=name, home=entry.pw_dir, uid=entry.pw_uid, gid=entry.pw_gid)


class K8sManager:
    """Kubernetes 클러스터 관리 클래스"""

    def __init__(self, config: Config, runner: CommandRunner, user: Optional[KubeUser] = None):
        self.config = config
        self.cluster = config.cluster
        self.paths = config.paths
        self.runner = runner
        self.logger = get_logger()
        self._user = user

    @property
    def user(self) -> KubeUser:
        if self._user is None:
            self._user = resolve_user()
        return self._user

    # kubectl 헬퍼 (대상 사용자로 실행)

    def kubectl(self, args: List[str], policy: Policy = Policy.REQUIRED,
                changed: bool = True, timeout: Optional[int] = None) -> CommandResult:
        return self.runner.run(["kubectl", *args], policy, user=self.user.name,
                               changed=changed, timeout=timeout)

    def kubectl_query(self, args: List[str], timeout: Optional[int] = 60) -> CommandResult:
        return self.runner.query(["kubectl", *args], user=self.user.name, timeout=timeout)

    def rollout_status(self, namespace: str, resource: str, timeout: int) -> bool:
        """롤아웃 완료 대기 (타임아웃은 무시하고 계속)"""
        result = self.kubectl(
            ["-n", namespace, "rollout", "status", resource, f"--timeout={timeout}s"],
            Policy.OPTIONAL, changed=False, timeout=timeout + 30
        )
        if not result.ok:
            console.print(f"[yellow]⚠ {resource} 롤아웃 대기 시간 초과 또는 실패 (계속 진행)[/yellow]")
        return result.ok

    # 4단계: 패키지 저장소

    def add_package_repo(self) -> StageResult:
        """pkgs.k8s.io 서명 키와 APT 소스 등록"""
        keyring = self.paths.apt_keyring
        changed = self.runner.makedirs(os.path.dirname(keyring), mode=0o755)

        key_url = f"{repo_base_url(self.cluster.k8s_minor)}Release.key"
        armored = self.runner.fetch(key_url)

        if self.runner.dry_run:
            if not self.runner.exists(keyring):
                changed |= self.runner.write_file(keyring, b"", mode=0o644)
        else:
            dearmored = self.runner.query(["gpg", "--dearmor"], input=armored, binary=True)
            if not dearmored.ok or not dearmored.stdout:
                raise CommandError(["gpg", "--dearmor"], dearmored.returncode or 1, dearmored.stderr)
            changed |= self.runner.write_file(keyring, dearmored.stdout, mode=0o644)

        # 단일 소스 목록으로 덮어쓰기
        source = render_apt_source(self.cluster.k8s_minor, keyring)
        changed |= self.runner.write_file(self.paths.apt_source, source)

        if changed:
            self.runner.run(["apt-get", "update", "-y"], env={"DEBIAN_FRONTEND": "noninteractive"})

        return StageResult.from_changes(changed, self.cluster.k8s_minor)

    # 5단계: kubelet / kubeadm / kubectl

    def held_packages(self) -> Set[str]:
        result = self.runner.query(["apt-mark", "showhold"])
        return set(result.stdout.split()) if result.ok else set()

    def install_tools(self) -> StageResult:
        """kubelet, kubeadm, kubectl 설치 및 버전 고정"""
        changed = apt_install(self.runner, K8S_PACKAGES)

        to_hold = [p for p in K8S_PACKAGES if p not in self.held_packages()]
        if to_hold:
            self.runner.run(["apt-mark", "hold", *to_hold])
            changed = True

        enabled = self.runner.query(["systemctl", "is-enabled", "kubelet"])
        if enabled.stdout.strip() != "enabled":
            self.runner.run(["systemctl", "enable", "--now", "kubelet"])
            changed = True

        return StageResult.from_changes(changed)

    # 6단계: kubeadm init

    def is_initialized(self) -> bool:
        return self.runner.exists(self.paths.admin_conf)

    def init_cluster(self) -> StageResult:
        """kubeadm init (단일 노드 컨트롤 플레인). 이미 초기화된 노드에서는 실패"""
        if self.is_initialized():
            if self.cluster.reuse_existing_cluster:
                self.logger.info("Cluster already initialized, reusing it")
                return StageResult.skipped("이미 초기화됨")
            raise ClusterAlreadyInitializedError(
                f"{self.paths.admin_conf} already exists: this node is already initialized. "
                "Run 'k8s-cp-installer reset' first or enable reuse_existing_cluster."
            )

        version_args = []
        if self.cluster.kubernetes_version:
            version_args = [f"--kubernetes-version={self.cluster.kubernetes_version}"]

        if self.config.installer.prepull_images:
            self.runner.run(["kubeadm", "config", "images", "pull", *version_args], Policy.OPTIONAL)

        result = self.runner.run(
            ["kubeadm", "init", f"--pod-network-cidr={self.cluster.pod_cidr}", *version_args]
        )
        if result.stdout:
            console.print(result.stdout, markup=False, highlight=False)

        return StageResult.from_changes(True, self.cluster.pod_cidr)

    # 7단계: kubeconfig

    def configure_kubectl(self) -> StageResult:
        """admin.conf 를 대상 사용자의 ~/.kube/config 로 복사"""
        user = self.user
        console.print(f"[cyan]kubectl 사용자: {user.name} ({user.home})[/cyan]")

        changed = self.runner.makedirs(user.kube_dir)

        admin_conf = self.runner.read_bytes(self.paths.admin_conf)
        if admin_conf is None:
            if not self.runner.dry_run:
                raise InstallerError(f"{self.paths.admin_conf} not found; kubeadm init did not complete")
            changed |= self.runner.write_file(user.kubeconfig, b"", mode=0o600)
        else:
            changed |= self.runner.write_file(user.kubeconfig, admin_conf, mode=0o600)

        changed |= self.runner.chown_tree(user.kube_dir, user.uid, user.gid)

        return StageResult.from_changes(changed, user.name)

    # 10단계: 컨트롤 플레인 테인트 제거

    def remove_control_plane_taints(self) -> StageResult:
        """단일 노드 스케줄링을 위해 컨트롤 플레인 테인트 제거 (best-effort)"""
        result = self.kubectl_query(["get", "nodes", "-o", "json"])
        present = None
        if result.ok:
            try:
                present = node_taint_keys(result.stdout)
            except ValueError:
                self.logger.warning("Cannot parse node list, removing taints unconditionally")

        changed = False
        for key in CONTROL_PLANE_TAINTS:
            if present is not None and key not in present:
                continue
            removed = self.kubectl(["taint", "nodes", "--all", f"{key}-"], Policy.OPTIONAL)
            changed |= removed.ok

        return StageResult.from_changes(changed)

    # 조인 명령어

    def join_command(self) -> str:
        """워커 노드 조인 명령어 생성"""
        result = self.runner.run(["kubeadm", "token", "create", "--print-join-command"], changed=False)
        if result.dry_run:
            return "kubeadm join <api-endpoint> --token <token> --discovery-token-ca-cert-hash <hash>"
        return result.stdout.strip()

    # 노드 리셋

    def reset_node(self):
        """노드 초기화 (kubeadm reset, CNI 설정 및 kubeconfig 제거)"""
        console.print("\n[yellow]기존 클러스터 설정을 제거합니다...[/yellow]")
        self.logger.info("Resetting node...")

        self.runner.run(["kubeadm", "reset", "-f"])
        self.runner.run(["rm", "-rf", self.paths.cni_conf_dir], Policy.OPTIONAL)
        self.runner.run(["rm", "-f", self.user.kubeconfig], Policy.OPTIONAL)

        # iptables 규칙 정리
        self.runner.run(["iptables", "-F"], Policy.OPTIONAL)
        self.runner.run(["iptables", "-t", "nat", "-F"], Policy.OPTIONAL)

        console.print("[green]✓ 노드 초기화 완료[/green]")
        self.logger.info("Node reset completed")
