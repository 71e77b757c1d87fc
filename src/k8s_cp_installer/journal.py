"""
실행 저널
단계별로 실행한 명령어와 변경한 파일을 기록하고, 실패 시 파일 롤백을 지원
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .logger import get_logger


class Outcome(str, Enum):
    """단계 결과"""
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageResult:
    """단계 함수의 반환 값"""
    outcome: Outcome
    message: str = ""

    @classmethod
    def from_changes(cls, changed: bool, message: str = ""):
        return cls(Outcome.CHANGED if changed else Outcome.UNCHANGED, message)

    @classmethod
    def skipped(cls, message: str = ""):
        return cls(Outcome.SKIPPED, message)


@dataclass
class Action:
    """단계 안에서 수행한 동작 하나 (명령어, 파일 쓰기, 다운로드)"""
    kind: str
    detail: str
    changed: bool = True
    optional: bool = False
    ignored_failure: bool = False
    dry_run: bool = False
    returncode: Optional[int] = None
    user: Optional[str] = None
    path: Optional[str] = None
    # 롤백용 이전 내용 (None 이면 파일이 없었음)
    previous: Optional[bytes] = None
    previous_mode: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "detail": self.detail,
            "changed": self.changed,
            "optional": self.optional,
            "ignored_failure": self.ignored_failure,
            "dry_run": self.dry_run,
            "returncode": self.returncode,
            "user": self.user,
            "path": self.path,
        }


@dataclass
class StageRecord:
    """단계 실행 기록"""
    number: int
    key: str
    title: str
    status: str = "pending"
    message: str = ""
    actions: List[Action] = field(default_factory=list)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @property
    def changed(self) -> bool:
        return any(a.changed for a in self.actions)

    @property
    def warnings(self) -> List[Action]:
        return [a for a in self.actions if a.ignored_failure]

    def to_dict(self) -> Dict:
        return {
            "number": self.number,
            "key": self.key,
            "title": self.title,
            "status": self.status,
            "message": self.message,
            "changed": self.changed,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "actions": [a.to_dict() for a in self.actions],
        }


class Journal:
    """실행 저널"""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.started_at = datetime.now().isoformat()
        self.finished_at: Optional[str] = None
        self.exit_code: Optional[int] = None
        self.stages: List[StageRecord] = []
        self.current: Optional[StageRecord] = None
        self.logger = get_logger()

    def begin(self, number: int, key: str, title: str) -> StageRecord:
        """단계 시작"""
        record = StageRecord(number=number, key=key, title=title,
                             status="running", started_at=datetime.now().isoformat())
        self.stages.append(record)
        self.current = record
        return record

    def finish(self, status: str, message: str = ""):
        """현재 단계 종료"""
        if self.current is None:
            return
        self.current.status = status
        self.current.message = message
        self.current.finished_at = datetime.now().isoformat()
        self.current = None

    def record(self, action: Action):
        """현재 단계에 동작 추가 (단계 밖의 동작은 무시)"""
        if self.current is not None:
            self.current.actions.append(action)

    def file_changes(self) -> List[Action]:
        """실제로 수행된 파일 변경 목록 (기록 순서)"""
        return [
            a for stage in self.stages for a in stage.actions
            if a.kind == "file" and a.changed and not a.dry_run
        ]

    def rollback_files(self) -> List[str]:
        """이번 실행에서 변경한 파일을 역순으로 복원"""
        restored = []
        for action in reversed(self.file_changes()):
            path = Path(action.path)
            if action.previous is None:
                if path.exists():
                    path.unlink()
            else:
                path.write_bytes(action.previous)
                if action.previous_mode is not None:
                    os.chmod(path, action.previous_mode)
            restored.append(action.path)
            self.logger.info(f"Restored {action.path}")
        return restored

    def to_dict(self) -> Dict:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "dry_run": self.dry_run,
            "exit_code": self.exit_code,
            "stages": [s.to_dict() for s in self.stages],
        }

    def save(self, log_dir: str) -> Path:
        """저널을 JSON 파일로 저장"""
        self.finished_at = self.finished_at or datetime.now().isoformat()
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        journal_file = directory / f"journal_{timestamp}.json"

        with open(journal_file, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        self.logger.info(f"Journal saved: {journal_file}")
        return journal_file


def load_journal(path: str) -> Dict:
    """저장된 저널 읽기"""
    journal_path = Path(path)
    if not journal_path.exists():
        raise FileNotFoundError(f"저널 파일을 찾을 수 없습니다: {journal_path}")

    with open(journal_path, "r", encoding="utf-8") as f:
        return json.load(f)
