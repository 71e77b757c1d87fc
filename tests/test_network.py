"""
네트워크 체커 모듈 테스트
"""

import requests
from k8s_cp_installer.network import NetworkChecker
from conftest import FakeRunner


def test_check_ping_success():
    """핑 성공"""
    runner = FakeRunner()
    checker = NetworkChecker(runner)
    success, msg = checker.check_ping("dl.k8s.io")
    assert success == True
    assert runner.ran("ping", "-c", "1")


def test_check_ping_failure():
    """핑 실패"""
    checker = NetworkChecker(FakeRunner({("ping",): (1,)}))
    success, msg = checker.check_ping("dl.k8s.io")
    assert success == False


def test_preflight_falls_back_to_https(monkeypatch):
    """ICMP 가 막혀 있으면 HTTPS 로 확인"""
    class Response:
        status_code = 200

    monkeypatch.setattr(requests, "head", lambda url, **kwargs: Response())
    checker = NetworkChecker(FakeRunner({("ping",): (1,)}))

    results = checker.preflight_check("dl.k8s.io")
    assert results["ping"]["success"] == False
    assert results["https"]["success"] == True
    assert results["overall"] == True


def test_preflight_failure_is_only_a_warning(monkeypatch):
    """네트워크 체크 실패는 예외 없이 결과만 반환"""
    def unreachable(url, **kwargs):
        raise requests.exceptions.ConnectionError("no route")

    monkeypatch.setattr(requests, "head", unreachable)
    checker = NetworkChecker(FakeRunner({("ping",): (1,)}))

    results = checker.preflight_check("dl.k8s.io")
    assert results["overall"] == False
