"""
설치기 예외 정의
각 예외는 프로세스 종료 코드를 함께 가진다
"""

from typing import List, Optional


class InstallerError(RuntimeError):
    """설치기 기본 예외"""

    exit_code = 1


class PrivilegeError(InstallerError):
    """root 권한이 아닐 때"""


class ConfigError(InstallerError):
    """설정 값 오류"""

    exit_code = 2


class UnsupportedCNIError(ConfigError):
    """지원하지 않는 CNI 선택자"""

    def __init__(self, cni: str):
        super().__init__(f"Unsupported CNI value: {cni}. Use 'flannel' or 'cilium'.")
        self.cni = cni


class ClusterAlreadyInitializedError(InstallerError):
    """이미 kubeadm init 이 수행된 노드"""


class DownloadError(InstallerError):
    """HTTPS 다운로드 실패"""


class CommandError(InstallerError):
    """필수 명령어 실패. 종료 코드는 명령어의 반환 코드를 따른다"""

    def __init__(self, cmd: List[str], returncode: int, stderr: Optional[str] = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({returncode}): {' '.join(self.cmd)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)

    @property
    def exit_code(self) -> int:
        return self.returncode if self.returncode > 0 else 1
