"""
명령어 실행 모듈
subprocess 실행, dry-run, 필수/선택 정책, 파일 쓰기 변경 감지, HTTPS 다운로드
"""

import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import requests

from .errors import CommandError, DownloadError, InstallerError
from .journal import Action, Journal
from .logger import get_logger


class Policy(str, Enum):
    """실패 처리 정책"""
    REQUIRED = "required"  # 실패 시 전체 중단
    OPTIONAL = "optional"  # 실패해도 경고 후 계속


@dataclass
class CommandResult:
    """명령어 실행 결과"""
    cmd: List[str]
    returncode: int
    stdout: Union[str, bytes] = ""
    stderr: str = ""
    dry_run: bool = False
    user: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def as_user(cmd: List[str], user: Optional[str]) -> List[str]:
    """root 가 아닌 사용자로 실행할 명령어 구성 (su - <user> -c ...)"""
    if not user or user == "root":
        return list(cmd)
    return ["su", "-", user, "-c", shlex.join(cmd)]


class CommandRunner:
    """호스트 명령어 실행기"""

    def __init__(self, journal: Optional[Journal] = None, dry_run: bool = False,
                 http_timeout: int = 30):
        self.journal = journal if journal is not None else Journal(dry_run)
        self.dry_run = dry_run
        self.http_timeout = http_timeout
        self.logger = get_logger()

    def _execute(self, argv: List[str], input: Optional[Union[str, bytes]] = None,
                 timeout: Optional[int] = None, env: Optional[Dict[str, str]] = None,
                 binary: bool = False) -> CommandResult:
        """실제 subprocess 실행. 실행 파일이 없으면 127, 타임아웃은 124"""
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)

        try:
            result = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=not binary,
                timeout=timeout,
                env=run_env
            )
        except FileNotFoundError:
            return CommandResult(argv, 127, b"" if binary else "", f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            return CommandResult(argv, 124, b"" if binary else "", f"timed out after {timeout}s")

        stderr = result.stderr
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        return CommandResult(argv, result.returncode, result.stdout, stderr or "")

    def run(self, cmd: List[str], policy: Policy = Policy.REQUIRED, *,
            user: Optional[str] = None, input: Optional[Union[str, bytes]] = None,
            timeout: Optional[int] = None, env: Optional[Dict[str, str]] = None,
            changed: bool = True) -> CommandResult:
        """상태를 변경하는 명령어 실행

        dry-run 에서는 실행하지 않고 기록만 남긴다.
        REQUIRED 명령어가 실패하면 CommandError 를 발생시킨다.
        """
        detail = shlex.join(cmd)
        optional = policy == Policy.OPTIONAL

        if self.dry_run:
            self.logger.info(f"[dry-run] {detail}")
            self.journal.record(Action("command", detail, changed=changed, optional=optional,
                                       dry_run=True, user=user))
            return CommandResult(list(cmd), 0, dry_run=True, user=user)

        self.logger.debug(f"Running: {detail}" + (f" (as {user})" if user else ""))
        result = self._execute(as_user(cmd, user), input=input, timeout=timeout, env=env)
        result.cmd = list(cmd)
        result.user = user

        if not result.ok:
            if not optional:
                self.journal.record(Action("command", detail, changed=False, returncode=result.returncode,
                                           user=user))
                self.logger.error(f"Command failed ({result.returncode}): {detail}")
                raise CommandError(cmd, result.returncode, result.stderr)

            self.logger.warning(f"Optional step failed ({result.returncode}), continuing: {detail}")
            self.journal.record(Action("command", detail, changed=False, optional=True,
                                       ignored_failure=True, returncode=result.returncode, user=user))
            return result

        self.journal.record(Action("command", detail, changed=changed, optional=optional,
                                   returncode=0, user=user))
        return result

    def query(self, cmd: List[str], *, user: Optional[str] = None,
              input: Optional[Union[str, bytes]] = None, timeout: Optional[int] = 60,
              binary: bool = False) -> CommandResult:
        """상태 조회용 명령어 실행 (dry-run 에서도 실행, 실패해도 예외 없음)"""
        self.logger.debug(f"Query: {shlex.join(cmd)}")
        result = self._execute(as_user(cmd, user), input=input, timeout=timeout, binary=binary)
        result.cmd = list(cmd)
        result.user = user
        return result

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def read_bytes(self, path: str) -> Optional[bytes]:
        file_path = Path(path)
        if not file_path.exists():
            return None
        return file_path.read_bytes()

    def read_text(self, path: str) -> Optional[str]:
        data = self.read_bytes(path)
        return data.decode("utf-8") if data is not None else None

    def write_file(self, path: str, content: Union[str, bytes], mode: Optional[int] = None,
                   policy: Policy = Policy.REQUIRED) -> bool:
        """내용이 다를 때만 파일 쓰기. 변경 여부 반환"""
        data = content.encode("utf-8") if isinstance(content, str) else content
        file_path = Path(path)
        previous = self.read_bytes(path)

        previous_mode = None
        if previous is not None:
            previous_mode = file_path.stat().st_mode & 0o777
        mode_matches = mode is None or previous_mode is None or previous_mode == mode

        if previous == data and mode_matches:
            self.logger.debug(f"{path} unchanged")
            return False

        if self.dry_run:
            self.logger.info(f"[dry-run] write {path}")
            self.journal.record(Action("file", f"write {path}", dry_run=True, path=path,
                                       optional=policy == Policy.OPTIONAL))
            return True

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
            if mode is not None:
                os.chmod(file_path, mode)
        except OSError as e:
            if policy == Policy.REQUIRED:
                raise InstallerError(f"Cannot write {path}: {e}") from e
            self.logger.warning(f"Optional write of {path} failed, continuing: {e}")
            self.journal.record(Action("file", f"write {path}", changed=False, optional=True,
                                       ignored_failure=True, path=path))
            return False

        self.logger.info(f"Wrote {path}")
        self.journal.record(Action("file", f"write {path}", path=path, previous=previous,
                                   previous_mode=previous_mode, optional=policy == Policy.OPTIONAL))
        return True

    def makedirs(self, path: str, mode: Optional[int] = None) -> bool:
        """디렉토리 생성. 이미 있으면 False"""
        dir_path = Path(path)
        if dir_path.is_dir():
            return False

        if self.dry_run:
            self.logger.info(f"[dry-run] mkdir -p {path}")
            self.journal.record(Action("directory", f"mkdir {path}", dry_run=True, path=path))
            return True

        dir_path.mkdir(parents=True, exist_ok=True)
        if mode is not None:
            os.chmod(dir_path, mode)
        self.journal.record(Action("directory", f"mkdir {path}", path=path))
        return True

    def chown_tree(self, path: str, uid: int, gid: int) -> bool:
        """경로 아래 전체 소유권 변경 (chown -R). 변경이 있었으면 True"""
        root = Path(path)
        targets = [root] + sorted(root.rglob("*")) if root.exists() else []
        pending = [p for p in targets if (p.lstat().st_uid, p.lstat().st_gid) != (uid, gid)]
        if not pending:
            return False

        if self.dry_run:
            self.logger.info(f"[dry-run] chown -R {uid}:{gid} {path}")
            self.journal.record(Action("command", f"chown -R {uid}:{gid} {path}", dry_run=True))
            return True

        for target in pending:
            os.lchown(target, uid, gid)
        self.journal.record(Action("command", f"chown -R {uid}:{gid} {path}"))
        return True

    def fetch(self, url: str) -> bytes:
        """HTTPS 다운로드 (dry-run 에서는 빈 내용)"""
        if self.dry_run:
            self.logger.info(f"[dry-run] download {url}")
            self.journal.record(Action("download", url, changed=False, dry_run=True))
            return b""

        self.logger.debug(f"Downloading {url}")
        try:
            response = requests.get(url, timeout=self.http_timeout, allow_redirects=True)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Download failed: {url} ({e})") from e

        self.journal.record(Action("download", url, changed=False))
        return response.content
