#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
K8s Control Plane Installer - 실행 리포트 생성기

이 모듈은 실행 저널을 기반으로 다음을 자동 생성합니다:
- 실행 리포트 (Markdown)
- 명령어 기록 스크립트 (Shell)
"""

import shlex
from pathlib import Path
from datetime import datetime
from typing import Dict, List
from jinja2 import Template

from .journal import load_journal
from .logger import get_logger


REPORT_TEMPLATE = """# K8s Control Plane 설치 리포트
## 자동 생성

**생성 시간**: {{ generation_time }}
**저널 파일**: {{ journal_file }}
**시작**: {{ journal.started_at }}
**종료**: {{ journal.finished_at }}
**종료 코드**: {{ journal.exit_code }}{% if journal.dry_run %} (dry-run){% endif %}

---

## 실행 요약

- **실행된 단계**: {{ stages|length }}개
- **변경된 단계**: {{ changed_count }}개
- **무시된 실패**: {{ warnings|length }}개

{% if failed %}
⚠️ **주의**: {{ failed.number }}단계 ({{ failed.key }}) 에서 실패했습니다.

```
{{ failed.message }}
```
{% endif %}

---

## 단계별 결과

| # | 단계 | 상태 | 메시지 |
|---|------|------|--------|
{% for stage in stages -%}
| {{ stage.number }} | {{ stage.title }} | {{ stage.status }} | {{ stage.message|replace("\\n", " ")|truncate(60) }} |
{% endfor %}

{% for stage in stages if stage.actions %}
### {{ stage.number }}. {{ stage.key }}

{% for action in stage.actions -%}
- `{{ action.detail }}`{% if action.user %} (as {{ action.user }}){% endif %}{% if action.dry_run %} [dry-run]{% endif %}{% if action.ignored_failure %} ⚠️ 실패 무시 (exit {{ action.returncode }}){% elif not action.changed %} (변경 없음){% endif %}

{% endfor %}
{% endfor %}

{% if warnings %}
---

## 무시된 실패

{% for action in warnings %}
- `{{ action.detail }}` → exit {{ action.returncode }}
{% endfor %}
{% endif %}

---

**자동 생성**: K8s Control Plane Installer Doc Generator
**버전**: 1.0.0
"""

SCRIPT_TEMPLATE = """#!/bin/bash
# K8s Control Plane Installer 명령어 기록
# 저널: {{ journal_file }}
# 자동 생성: {{ generation_time }}
# 파일 쓰기와 다운로드는 주석으로만 남습니다.

set -euo pipefail
{% for stage in stages %}

# [{{ stage.number }}/11] {{ stage.title }} ({{ stage.status }})
{% for action in stage.actions %}
{% if action.kind == "command" %}{% if action.user %}su - {{ action.user }} -c {{ quote(action.detail) }}{% else %}{{ action.detail }}{% endif %}{% if action.optional %} || true{% endif %}{% else %}# {{ action.kind }}: {{ action.detail }}{% endif %}
{% endfor %}
{% endfor %}
"""


class DocGenerator:
    """저널 기반 문서 생성기"""

    def __init__(self, journal_file: str, output_dir: str = "./docs/generated"):
        """
        Args:
            journal_file: 분석할 저널 파일 경로
            output_dir: 출력 디렉토리
        """
        self.journal_file = Path(journal_file)
        self.output_dir = Path(output_dir)
        self.logger = get_logger()
        self.journal: Dict = {}

    @property
    def stages(self) -> List[Dict]:
        return self.journal.get("stages", [])

    def load(self):
        """저널 파일 읽기"""
        self.logger.info(f"Reading journal: {self.journal_file}")
        self.journal = load_journal(str(self.journal_file))

    def _context(self) -> Dict:
        warnings = [a for s in self.stages for a in s.get("actions", []) if a.get("ignored_failure")]
        failed = next((s for s in self.stages if s.get("status") == "failed"), None)
        return {
            "generation_time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "journal_file": str(self.journal_file),
            "journal": self.journal,
            "stages": self.stages,
            "changed_count": sum(1 for s in self.stages if s.get("status") == "changed"),
            "warnings": warnings,
            "failed": failed,
        }

    def generate_report(self) -> Path:
        """실행 리포트 생성

        Returns:
            Path: 생성된 리포트 파일 경로
        """
        template = Template(REPORT_TEMPLATE)
        content = template.render(**self._context())

        output_file = self.output_dir / "INSTALL_REPORT.md"
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(content)

        self.logger.info(f"Report generated: {output_file}")
        return output_file

    def generate_transcript(self) -> Path:
        """명령어 기록 스크립트 생성

        Returns:
            Path: 생성된 스크립트 파일 경로
        """
        template = Template(SCRIPT_TEMPLATE)
        content = template.render(quote=shlex.quote, **self._context())

        output_file = self.output_dir / "commands.sh"
        with open(output_file, "w", encoding="utf-8") as f:
            f.write(content)

        output_file.chmod(0o755)

        self.logger.info(f"Command transcript generated: {output_file}")
        return output_file

    def generate_all(self) -> Dict[str, Path]:
        """모든 문서 생성

        Returns:
            Dict: 생성된 파일들의 경로
        """
        self.load()
        self.output_dir.mkdir(parents=True, exist_ok=True)

        return {
            "report": self.generate_report(),
            "script": self.generate_transcript(),
        }
