"""
공용 테스트 픽스처
"""

import os
import shlex
from dataclasses import asdict

import pytest

from k8s_cp_installer.config import Config
from k8s_cp_installer.k8s import KubeUser
from k8s_cp_installer.logger import init_logger
from k8s_cp_installer.runner import CommandResult, CommandRunner


class FakeRunner(CommandRunner):
    """subprocess 대신 미리 정한 결과를 돌려주는 실행기

    응답은 명령어 접두사 기준으로 찾고, 가장 긴 접두사가 우선한다.
    su - <user> -c 로 감싼 명령어는 풀어서 기록한다.
    """

    def __init__(self, responses=None, binaries=(), downloads=None, dry_run=False):
        super().__init__(dry_run=dry_run)
        self.responses = {}
        self.effects = {}
        self.binaries = set(binaries)
        self.downloads = dict(downloads or {})
        self.calls = []
        self.fetched = []
        for prefix, response in (responses or {}).items():
            self.respond(prefix, *response)

    def respond(self, prefix, returncode=0, stdout="", stderr=""):
        self.responses[tuple(prefix)] = (returncode, stdout, stderr)

    def on(self, prefix, effect):
        """명령어 실행 시 호출할 부수 효과 등록"""
        self.effects[tuple(prefix)] = effect

    @staticmethod
    def _match(table, cmd):
        best = None
        for prefix in table:
            if tuple(cmd[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return best

    def _execute(self, argv, input=None, timeout=None, env=None, binary=False):
        cmd, user = list(argv), None
        if cmd[:2] == ["su", "-"]:
            user, cmd = cmd[2], shlex.split(cmd[4])
        self.calls.append((cmd, user))

        effect = self._match(self.effects, cmd)
        if effect is not None:
            self.effects[effect](cmd)

        prefix = self._match(self.responses, cmd)
        returncode, stdout, stderr = self.responses[prefix] if prefix is not None else (0, "", "")
        if binary and isinstance(stdout, str):
            stdout = stdout.encode("utf-8")
        return CommandResult(list(argv), returncode, stdout, stderr)

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.binaries else None

    def fetch(self, url):
        self.fetched.append(url)
        if self.dry_run:
            return super().fetch(url)
        return self.downloads.get(url, b"")

    @property
    def commands(self):
        """실행된 명령어 문자열 목록"""
        return [" ".join(cmd) for cmd, _ in self.calls]

    def ran(self, *prefix):
        return any(tuple(cmd[:len(prefix)]) == prefix for cmd, _ in self.calls)


@pytest.fixture(autouse=True)
def logger(tmp_path):
    """로그를 임시 디렉토리로"""
    return init_logger(str(tmp_path / "logs"), "DEBUG", False)


@pytest.fixture
def config(tmp_path):
    """호스트 경로를 모두 임시 디렉토리 아래로 옮긴 설정"""
    cfg = Config(str(tmp_path / "no-config.yaml"))
    host_root = tmp_path / "host"
    for key, value in asdict(cfg.paths).items():
        setattr(cfg.paths, key, str(host_root / value.lstrip("/")))
    cfg.installer.log_dir = str(tmp_path / "logs")
    return cfg


@pytest.fixture
def kube_user(tmp_path):
    home = tmp_path / "home" / "tester"
    home.mkdir(parents=True)
    return KubeUser(name="tester", home=str(home), uid=os.getuid(), gid=os.getgid())


@pytest.fixture
def fake_runner():
    return FakeRunner()
