"""
리포트 생성기 테스트
"""

import os

import pytest

from k8s_cp_installer.doc_generator import DocGenerator
from k8s_cp_installer.runner import Policy
from conftest import FakeRunner


@pytest.fixture
def journal_file(tmp_path):
    runner = FakeRunner({("modprobe",): (1, "", "not found")})
    runner.journal.begin(1, "system", "System prep: packages, kernel modules, sysctl...")
    runner.run(["modprobe", "overlay"], Policy.OPTIONAL)
    runner.write_file(str(tmp_path / "k8s.conf"), "overlay\n")
    runner.journal.finish("changed")

    runner.journal.begin(9, "cni", "Install CNI: flannel")
    runner.run(["kubectl", "apply", "-f", "https://example.com/kube-flannel.yml"], user="tester")
    runner.journal.finish("changed", "flannel")
    runner.journal.exit_code = 0

    return runner.journal.save(str(tmp_path / "logs"))


def test_generate_all(journal_file, tmp_path):
    generator = DocGenerator(str(journal_file), str(tmp_path / "docs"))
    generated = generator.generate_all()

    assert set(generated) == {"report", "script"}
    report = generated["report"].read_text(encoding="utf-8")
    assert "| 1 | System prep: packages, kernel modules, sysctl... | changed |" in report
    assert "**변경된 단계**: 2개" in report
    assert "`modprobe overlay` → exit 1" in report


def test_transcript_quotes_user_commands(journal_file, tmp_path):
    """사용자 명령어는 su - <user> -c 로, 선택 단계는 || true 로 기록"""
    script = DocGenerator(str(journal_file), str(tmp_path / "docs")).generate_all()["script"]
    content = script.read_text(encoding="utf-8")

    assert "su - tester -c 'kubectl apply -f https://example.com/kube-flannel.yml'" in content
    assert "modprobe overlay || true" in content
    assert f"# file: write {tmp_path / 'k8s.conf'}" in content
    assert os.access(script, os.X_OK)


def test_missing_journal(tmp_path):
    with pytest.raises(FileNotFoundError):
        DocGenerator(str(tmp_path / "missing.json"), str(tmp_path / "docs")).generate_all()
