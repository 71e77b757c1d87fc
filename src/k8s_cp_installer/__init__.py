"""
K8s Control Plane Installer
새로 설치된 Debian 계열 호스트에 단일 노드 Kubernetes 컨트롤 플레인을 구성하는 설치기

Features:
- containerd / kubeadm / kubelet / kubectl 자동 설치 및 설정
- Flannel 또는 Cilium CNI 선택 설치
- 단계별 상태 확인 (idempotent) 및 dry-run 지원
- 실행 저널 기록 및 파일 롤백
- 설치 후 헬스체크 및 리포트 생성
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
