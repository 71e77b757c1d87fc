"""
설정 관리 모듈
YAML/JSON 기반 설정 파일, 환경변수 오버라이드 및 기본값 제공
"""

import ipaddress
import os
import re
import yaml
import json
from typing import Dict, Any, Optional, Mapping
from dataclasses import dataclass, asdict

from .errors import ConfigError, UnsupportedCNIError

SUPPORTED_CNIS = ("flannel", "cilium")


@dataclass
class ClusterConfig:
    """클러스터 설정"""
    k8s_minor: str = "v1.33"
    pod_cidr: str = "10.244.0.0/16"
    arch: str = "amd64"
    cni: str = "flannel"
    kubernetes_version: str = ""
    reuse_existing_cluster: bool = False


@dataclass
class CNIConfig:
    """CNI 플러그인 설정"""
    flannel_manifest_url: str = "https://github.com/flannel-io/flannel/releases/latest/download/kube-flannel.yml"
    flannel_rollout_timeout: int = 180
    cilium_chart_repo: str = "https://helm.cilium.io"
    cilium_cli_stable_url: str = "https://raw.githubusercontent.com/cilium/cilium-cli/main/stable.txt"
    cilium_cli_release_url: str = "https://github.com/cilium/cilium-cli/releases/download"
    cilium_rollout_timeout: int = 240
    cilium_kube_proxy_replacement: str = "partial"


@dataclass
class PathsConfig:
    """호스트 파일 경로"""
    modules_load: str = "/etc/modules-load.d/k8s.conf"
    sysctl_conf: str = "/etc/sysctl.d/99-k8s.conf"
    fstab: str = "/etc/fstab"
    containerd_config: str = "/etc/containerd/config.toml"
    cni_bin_dir: str = "/opt/cni/bin"
    cni_conf_dir: str = "/etc/cni/net.d"
    apt_keyring: str = "/etc/apt/keyrings/kubernetes-apt-keyring.gpg"
    apt_source: str = "/etc/apt/sources.list.d/kubernetes.list"
    admin_conf: str = "/etc/kubernetes/admin.conf"
    cilium_bin: str = "/usr/local/bin/cilium"
    sys_module_dir: str = "/sys/module"


@dataclass
class InstallerConfig:
    """설치기 동작 설정"""
    log_dir: str = "/var/log/k8s-cp-installer"
    log_level: str = "INFO"
    network_check_host: str = "dl.k8s.io"
    helm_install_script_url: str = "https://raw.githubusercontent.com/helm/helm/main/scripts/get-helm-3"
    prepull_images: bool = True
    dry_run: bool = False
    rollback_on_failure: bool = False


# 환경변수 -> (섹션, 키)
ENV_OVERRIDES = {
    "K8S_MINOR": ("cluster", "k8s_minor"),
    "POD_CIDR": ("cluster", "pod_cidr"),
    "ARCH": ("cluster", "arch"),
    "CNI": ("cluster", "cni"),
}

SECTIONS = ("cluster", "cni", "paths", "installer")


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/k8s-cp-installer/config.yaml",
        "~/.k8s-cp-installer/config.yaml",
        "./config/config.yaml",
        "./config.yaml",
    ]

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.cluster = ClusterConfig()
        self.cni = CNIConfig()
        self.paths = PathsConfig()
        self.installer = InstallerConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            try:
                if path.endswith('.json'):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
            except (yaml.YAMLError, json.JSONDecodeError) as e:
                raise ConfigError(f"Cannot parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section in SECTIONS:
            values = data.get(section)
            if not values:
                continue
            target = getattr(self, section)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)

    def apply_env(self, environ: Optional[Mapping[str, str]] = None):
        """환경변수 오버라이드 적용 (K8S_MINOR, POD_CIDR, ARCH, CNI)"""
        environ = os.environ if environ is None else environ
        for name, (section, key) in ENV_OVERRIDES.items():
            value = environ.get(name)
            if value:
                setattr(getattr(self, section), key, value)

    def apply_overrides(self, section: str, **values):
        """CLI 옵션 오버라이드 적용 (None 값은 무시)"""
        target = getattr(self, section)
        for key, value in values.items():
            if value is not None:
                setattr(target, key, value)

    def validate(self):
        """설정 값 검증"""
        if self.cluster.cni not in SUPPORTED_CNIS:
            raise UnsupportedCNIError(self.cluster.cni)

        if not re.match(r'^v\d+\.\d+$', str(self.cluster.k8s_minor)):
            raise ConfigError(
                f"Invalid K8S_MINOR value: {self.cluster.k8s_minor} (expected format: v1.33)"
            )

        try:
            ipaddress.ip_network(str(self.cluster.pod_cidr), strict=False)
        except ValueError as e:
            raise ConfigError(f"Invalid POD_CIDR value: {self.cluster.pod_cidr} ({e})") from e

        if not self.cluster.arch:
            raise ConfigError("ARCH must not be empty")

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = self.to_dict()

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(data, f, indent=2)
            else:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in SECTIONS}

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# K8s Control Plane Installer Configuration File
# 이 파일을 복사하여 config.yaml로 사용하세요
# 환경변수 K8S_MINOR, POD_CIDR, ARCH, CNI 가 파일 값보다 우선합니다

# 클러스터 설정
cluster:
  k8s_minor: "v1.33"  # pkgs.k8s.io 저장소 마이너 버전
  pod_cidr: "10.244.0.0/16"  # Flannel 기본값, Cilium 도 같은 값을 사용
  arch: "amd64"  # arm64 등
  cni: "flannel"  # flannel 또는 cilium
  kubernetes_version: ""  # 비워두면 저장소 기본 버전 (예: v1.33.1)
  reuse_existing_cluster: false  # true 면 이미 초기화된 노드에서 kubeadm init 을 건너뜀

# CNI 설정
cni:
  flannel_manifest_url: "https://github.com/flannel-io/flannel/releases/latest/download/kube-flannel.yml"
  flannel_rollout_timeout: 180
  cilium_chart_repo: "https://helm.cilium.io"
  cilium_rollout_timeout: 240
  cilium_kube_proxy_replacement: "partial"

# 설치기 설정
installer:
  log_dir: "/var/log/k8s-cp-installer"
  log_level: "INFO"  # DEBUG, INFO, WARN, ERROR
  network_check_host: "dl.k8s.io"
  prepull_images: true
  dry_run: false
  rollback_on_failure: false  # 실패 시 이번 실행에서 변경한 파일 복원
"""

        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)


def load_config(config_path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None,
                **cluster_overrides) -> Config:
    """설정 파일 -> 환경변수 -> CLI 옵션 순으로 설정을 만들고 검증"""
    cfg = Config(config_path)
    cfg.apply_env(environ)
    cfg.apply_overrides("cluster", **cluster_overrides)
    cfg.validate()
    return cfg
