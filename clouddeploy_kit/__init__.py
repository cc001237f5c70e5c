"""
clouddeploy_kit
---------------

Google Cloud Deploy 데모(GKE 스테이징/프로덕션) 부트스트랩 CLI 패키지.
API 활성화, Artifact Registry/GKE 준비, skaffold 빌드, 딜리버리 파이프라인 적용,
릴리스 생성과 롤아웃 대기/프로모션/승인을 한 번에 수행하는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "orchestrator",
    "poller",
]
