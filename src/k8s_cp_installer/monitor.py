#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
K8s Control Plane Installer - 헬스체크 모듈

이 모듈은 다음 기능을 제공합니다:
- 설치 직후 시스템 파드 / 노드 / CNI 파드 목록 출력
- containerd, kubelet 서비스 상태 확인
- 노드 Ready 상태 및 kube-system 파드 상태 확인
- 헬스 리포트 저장
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict

from rich.console import Console

from .cni import CNIInstaller
from .journal import StageResult
from .k8s import K8sManager
from .logger import get_logger
from .runner import CommandRunner

console = Console()


class HealthChecker:
    """클러스터 헬스체크를 수행하는 클래스"""

    def __init__(self, runner: CommandRunner, k8s: K8sManager, cni: CNIInstaller):
        self.runner = runner
        self.k8s = k8s
        self.cni = cni
        self.logger = get_logger()

    def show_cluster_status(self) -> StageResult:
        """kube-system 파드, 노드, CNI 파드 목록 출력 (읽기 전용)"""
        listings = [
            ["-n", "kube-system", "get", "pods", "-o", "wide"],
            ["get", "nodes", "-o", "wide"],
            self.cni.pods_args(),
        ]
        for args in listings:
            result = self.k8s.kubectl(args, changed=False)
            if result.stdout:
                console.print(result.stdout, markup=False, highlight=False)
        return StageResult.from_changes(False)

    def check_all(self) -> Dict:
        """모든 헬스체크 수행

        Returns:
            Dict: 헬스체크 결과
        """
        self.logger.info("Starting health checks")

        results = {
            "timestamp": datetime.now().isoformat(),
            "checks": {
                "containerd": self.check_service("containerd"),
                "kubelet": self.check_service("kubelet"),
                "node_ready": self.check_node_ready_status(),
                "system_pods": self.check_pods("kube-system"),
                "cni": self.check_pods(self.cni.namespace, self.cni.selector),
            },
            "overall_status": "healthy"
        }

        failed_checks = [k for k, v in results["checks"].items() if not v.get("healthy", False)]
        if failed_checks:
            results["overall_status"] = "unhealthy"
            results["failed_checks"] = failed_checks

        self.logger.info(f"Health check finished: {results['overall_status']}")
        return results

    def check_service(self, unit: str) -> Dict:
        """systemd 서비스 상태 확인"""
        result = self.runner.query(["systemctl", "is-active", unit], timeout=10)
        is_active = result.ok and result.stdout.strip() == "active"
        return {
            "healthy": is_active,
            "status": result.stdout.strip() or "unknown",
            "message": f"{unit} 정상 작동" if is_active else f"{unit} 이(가) 실행되지 않음"
        }

    def check_node_ready_status(self) -> Dict:
        """모든 노드의 Ready 상태 확인"""
        result = self.k8s.kubectl_query(["get", "nodes", "-o", "json"], timeout=15)
        if not result.ok:
            return {
                "healthy": False,
                "status": "kubectl_error",
                "message": f"kubectl 실행 실패: {result.stderr.strip()}"
            }

        try:
            nodes = json.loads(result.stdout).get("items", [])
        except ValueError as e:
            return {
                "healthy": False,
                "status": "json_error",
                "message": f"JSON 파싱 오류: {e}"
            }

        not_ready = []
        for node in nodes:
            conditions = node.get("status", {}).get("conditions", [])
            ready = next((c for c in conditions if c.get("type") == "Ready"), None)
            if not ready or ready.get("status") != "True":
                not_ready.append(node["metadata"]["name"])

        is_ready = bool(nodes) and not not_ready
        return {
            "healthy": is_ready,
            "status": "Ready" if is_ready else "NotReady",
            "nodes": len(nodes),
            "message": "모든 노드가 Ready 상태" if is_ready else f"Ready 가 아닌 노드: {', '.join(not_ready) or '없음'}"
        }

    def check_pods(self, namespace: str, selector: str = "") -> Dict:
        """네임스페이스 파드가 모두 Running/Succeeded 인지 확인"""
        args = ["-n", namespace, "get", "pods", "-o", "json"]
        if selector:
            args += ["-l", selector]
        result = self.k8s.kubectl_query(args, timeout=15)
        if not result.ok:
            return {
                "healthy": False,
                "status": "kubectl_error",
                "message": f"kubectl 실행 실패: {result.stderr.strip()}"
            }

        try:
            pods = json.loads(result.stdout).get("items", [])
        except ValueError as e:
            return {
                "healthy": False,
                "status": "json_error",
                "message": f"JSON 파싱 오류: {e}"
            }

        pending = [
            p["metadata"]["name"] for p in pods
            if p.get("status", {}).get("phase") not in ("Running", "Succeeded")
        ]
        is_healthy = bool(pods) and not pending
        return {
            "healthy": is_healthy,
            "status": f"{len(pods) - len(pending)}/{len(pods)} running",
            "message": "파드 정상" if is_healthy else f"비정상 파드: {', '.join(pending) or '파드 없음'}"
        }

    def save_health_report(self, results: Dict, log_dir: str) -> Path:
        """헬스체크 결과를 파일로 저장

        Returns:
            Path: 저장된 파일 경로
        """
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        report_file = directory / f"health_report_{timestamp}.json"

        with open(report_file, "w", encoding="utf-8") as f:
            json.dump(results, f, indent=2, ensure_ascii=False)

        self.logger.info(f"Health report saved: {report_file}")
        return report_file
