"""
로깅 시스템
실행 로그 / 에러 로그 파일과 Rich 콘솔 출력, 단계 태그 지원
"""

import logging
import os
from datetime import datetime
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()

DEFAULT_LOG_DIR = "/var/log/k8s-cp-installer"

FILE_FORMAT = '%(asctime)s - %(levelname)s - [%(stage)s] %(message)s'


class StageFilter(logging.Filter):
    """로그 레코드에 현재 설치 단계 키를 붙인다"""

    def __init__(self):
        super().__init__()
        self.stage = "-"

    def filter(self, record: logging.LogRecord) -> bool:
        record.stage = self.stage
        return True


class InstallerLogger:
    """설치기 로거"""

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False):
        self.log_dir = log_dir
        self.log_level = logging.DEBUG if debug else getattr(logging, log_level.upper())

        os.makedirs(log_dir, exist_ok=True)

        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = os.path.join(log_dir, f"installer_{run_id}.log")
        self.error_file = os.path.join(log_dir, f"error_{run_id}.log")

        self.stage_filter = StageFilter()
        self.logger = logging.getLogger("k8s_cp_installer")
        self.logger.setLevel(self.log_level)
        self.logger.propagate = False

        # 같은 프로세스에서 다시 초기화될 때 이전 파일 핸들러를 닫는다
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers.clear()
        self.logger.filters.clear()
        self.logger.addFilter(self.stage_filter)

        self.logger.addHandler(self._file_handler(self.log_file, self.log_level))
        self.logger.addHandler(self._file_handler(self.error_file, logging.ERROR))

        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=debug
        )
        rich_handler.setLevel(self.log_level)
        self.logger.addHandler(rich_handler)

    @staticmethod
    def _file_handler(path: str, level: int) -> logging.Handler:
        handler = logging.FileHandler(path, encoding='utf-8')
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler

    def set_stage(self, key: Optional[str]):
        """이후 로그에 붙일 단계 키 (None 이면 해제)"""
        self.stage_filter.stage = key or "-"

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def exception(self, message: str):
        """예외 로그 (트레이스백 포함)"""
        self.logger.exception(message)

    def get_log_files(self) -> dict:
        return {
            "main_log": self.log_file,
            "error_log": self.error_file,
            "log_dir": self.log_dir
        }


_logger: Optional[InstallerLogger] = None


def get_logger() -> InstallerLogger:
    """로거 인스턴스 가져오기 (초기화 전이면 기본 설정으로 생성)"""
    global _logger
    if _logger is None:
        _logger = InstallerLogger()
    return _logger


def init_logger(log_dir: str, log_level: str = "INFO", debug: bool = False) -> InstallerLogger:
    """로거 초기화"""
    global _logger
    _logger = InstallerLogger(log_dir, log_level, debug)
    return _logger
