"""
네트워크 연결성 체크 모듈
ping, HTTPS 체크 기능
"""

import requests
from typing import Tuple, Dict
from rich.console import Console

from .logger import get_logger
from .runner import CommandRunner

console = Console()


class NetworkChecker:
    """네트워크 연결성 확인 클래스"""

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self.logger = get_logger()

    def check_ping(self, host: str, count: int = 1, timeout: int = 2) -> Tuple[bool, str]:
        """호스트 핑 테스트"""
        self.logger.debug(f"Pinging {host}...")
        result = self.runner.query(
            ["ping", "-c", str(count), "-W", str(timeout), host],
            timeout=timeout * count + 5
        )

        if result.ok:
            self.logger.debug(f"{host} is reachable")
            return True, f"✓ {host} 응답 성공"

        self.logger.warning(f"{host} is unreachable")
        return False, f"✗ {host} 응답 실패"

    def check_http(self, url: str, timeout: int = 5) -> Tuple[bool, str]:
        """HTTPS 연결 테스트"""
        try:
            self.logger.debug(f"Checking HTTP connection to {url}...")
            response = requests.head(url, timeout=timeout, allow_redirects=True)
            if response.status_code < 400:
                return True, f"✓ HTTP 연결 성공 ({url})"
            self.logger.warning(f"HTTP error: {response.status_code}")
            return False, f"✗ HTTP 오류: {response.status_code}"
        except requests.exceptions.SSLError:
            self.logger.warning("SSL certificate error")
            return False, "✗ SSL 인증서 오류"
        except requests.exceptions.Timeout:
            self.logger.warning("Connection timeout")
            return False, "✗ 타임아웃"
        except requests.exceptions.RequestException as e:
            self.logger.warning(f"Connection failed: {e}")
            return False, "✗ 연결 실패"

    def preflight_check(self, host: str) -> Dict:
        """설치 전 네트워크 체크 (실패해도 경고만)"""
        results = {"ping": None, "https": None, "overall": False}

        success, msg = self.check_ping(host)
        results["ping"] = {"success": success, "message": msg}
        console.print(f"  {msg}")

        if not success:
            # ICMP 가 막힌 환경이 많으므로 HTTPS 로 한번 더 확인
            success, msg = self.check_http(f"https://{host}")
            results["https"] = {"success": success, "message": msg}
            console.print(f"  {msg}")

        results["overall"] = success
        if not success:
            console.print("[yellow]⚠ Warning: network check failed; continuing...[/yellow]")
            self.logger.warning(f"Network check against {host} failed; continuing")
        return results
