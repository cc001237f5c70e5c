from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import InvalidResourceNameError


ENV_FILES_DEFAULT_ORDER = [".env", ".env.infra"]

DEFAULT_TUTORIAL_REPO_URL = "https://github.com/GoogleCloudPlatform/cloud-deploy-tutorials.git"

ZONE_PATTERN = re.compile(r"^[a-z0-9]+-[a-z0-9]+-[a-z]$")
REGION_PATTERN = re.compile(r"^[a-z0-9]+-[a-z0-9]+$")
# GKE 클러스터 / Cloud Deploy 리소스 이름 (RFC 1035, 최대 40자)
RESOURCE_NAME_PATTERN = re.compile(r"^[a-z]([-a-z0-9]{0,38}[a-z0-9])?$")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def validate_resource_name(kind: str, name: str) -> str:
    if not RESOURCE_NAME_PATTERN.match(name or ""):
        raise InvalidResourceNameError(kind, name)
    return name


def region_from_zone(zone: str) -> str:
    """us-central1-a -> us-central1"""
    return zone.rsplit("-", 1)[0]


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y"}


def _get_float(name: str, default: float, errors: List[str]) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        errors.append(f"{name} 는 숫자여야 합니다: {raw!r}")
        return default


@dataclass(frozen=True)
class DeployConfig:
    # 필수 공통
    gcp_project_id: str
    gcp_region: str
    gcp_zone: str

    artifact_registry_repo: str = "cicd-challenge"

    # GKE
    staging_cluster: str = "cd-staging"
    production_cluster: str = "cd-production"
    cluster_num_nodes: int = 1

    # Cloud Deploy
    delivery_pipeline: str = "web-app"
    release_name: str = "web-app-001"

    # 튜토리얼 소스
    tutorial_repo_url: str = DEFAULT_TUTORIAL_REPO_URL
    workdir: str = "~"

    # 폴링 (초)
    cluster_poll_interval: float = 5.0
    cluster_wait_timeout: float = 1800.0
    rollout_poll_interval: float = 10.0
    rollout_wait_timeout: float = 1800.0
    approval_wait_timeout: float = 120.0
    describe_timeout: float = 60.0

    # 토글
    auto_approve: bool = True
    wait_production: bool = True

    @property
    def clusters(self) -> tuple[str, str]:
        return (self.staging_cluster, self.production_cluster)

    @property
    def image_repo_url(self) -> str:
        return f"{self.gcp_region}-docker.pkg.dev/{self.gcp_project_id}/{self.artifact_registry_repo}"

    @property
    def cloudbuild_bucket(self) -> str:
        return f"{self.gcp_project_id}_cloudbuild"

    @property
    def tutorial_dir(self) -> str:
        """clone 된 튜토리얼의 base 디렉토리 (이후 모든 템플릿/kubectl 경로의 기준)."""
        return os.path.join(
            os.path.expanduser(self.workdir), "cloud-deploy-tutorials", "tutorials", "base"
        )

    @classmethod
    def from_env(cls, detected: Optional[Mapping[str, str]] = None) -> "DeployConfig":
        """
        환경변수에서 설정을 읽는다.

        detected 에는 gcloud 세션에서 감지한 project/zone/region 이 들어오며,
        환경변수가 비어 있을 때만 사용된다.
        """
        detected = detected or {}
        missing: List[str] = []
        errors: List[str] = []

        def req(name: str, fallback_key: str) -> str:
            val = os.getenv(name) or detected.get(fallback_key) or ""
            if not val:
                missing.append(name)
            return val

        project_id = req("GCP_PROJECT_ID", "project")
        zone = req("GCP_ZONE", "zone")
        region = os.getenv("GCP_REGION") or detected.get("region") or ""
        if not region and zone:
            region = region_from_zone(zone)

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다: " + ", ".join(sorted(set(missing)))
            )

        if not ZONE_PATTERN.match(zone):
            errors.append(f"GCP_ZONE 형식이 올바르지 않습니다 (예: us-central1-a): {zone!r}")
        if not REGION_PATTERN.match(region):
            errors.append(f"GCP_REGION 형식이 올바르지 않습니다 (예: us-central1): {region!r}")

        num_nodes_raw = os.getenv("CLUSTER_NUM_NODES", "1")
        try:
            num_nodes = int(num_nodes_raw)
        except ValueError:
            errors.append(f"CLUSTER_NUM_NODES 는 정수여야 합니다: {num_nodes_raw!r}")
            num_nodes = 1

        cfg = cls(
            gcp_project_id=project_id,
            gcp_region=region,
            gcp_zone=zone,
            artifact_registry_repo=os.getenv("ARTIFACT_REGISTRY_REPO", "cicd-challenge"),
            staging_cluster=os.getenv("STAGING_CLUSTER", "cd-staging"),
            production_cluster=os.getenv("PRODUCTION_CLUSTER", "cd-production"),
            cluster_num_nodes=num_nodes,
            delivery_pipeline=os.getenv("DELIVERY_PIPELINE", "web-app"),
            release_name=os.getenv("RELEASE_NAME", "web-app-001"),
            tutorial_repo_url=os.getenv("TUTORIAL_REPO_URL", DEFAULT_TUTORIAL_REPO_URL),
            workdir=os.getenv("WORKDIR", "~"),
            cluster_poll_interval=_get_float("CLUSTER_POLL_INTERVAL_SECONDS", 5.0, errors),
            cluster_wait_timeout=_get_float("CLUSTER_WAIT_TIMEOUT_SECONDS", 1800.0, errors),
            rollout_poll_interval=_get_float("ROLLOUT_POLL_INTERVAL_SECONDS", 10.0, errors),
            rollout_wait_timeout=_get_float("ROLLOUT_WAIT_TIMEOUT_SECONDS", 1800.0, errors),
            approval_wait_timeout=_get_float("APPROVAL_WAIT_TIMEOUT_SECONDS", 120.0, errors),
            describe_timeout=_get_float("DESCRIBE_TIMEOUT_SECONDS", 60.0, errors),
            auto_approve=_get_bool("AUTO_APPROVE", True),
            wait_production=_get_bool("WAIT_PRODUCTION", True),
        )

        errors.extend(cfg.validation_errors())
        if errors:
            raise ValueError("설정 값이 올바르지 않습니다:\n- " + "\n- ".join(errors))

        return cfg

    def validation_errors(self) -> List[str]:
        errors: List[str] = []
        for kind, name in (
            ("ARTIFACT_REGISTRY_REPO", self.artifact_registry_repo),
            ("STAGING_CLUSTER", self.staging_cluster),
            ("PRODUCTION_CLUSTER", self.production_cluster),
            ("DELIVERY_PIPELINE", self.delivery_pipeline),
            ("RELEASE_NAME", self.release_name),
        ):
            if not RESOURCE_NAME_PATTERN.match(name or ""):
                errors.append(f"{kind} 이름 형식이 올바르지 않습니다: {name!r}")

        if self.staging_cluster == self.production_cluster:
            errors.append("STAGING_CLUSTER 와 PRODUCTION_CLUSTER 는 서로 달라야 합니다.")
        if self.cluster_num_nodes < 1:
            errors.append(f"CLUSTER_NUM_NODES 는 1 이상이어야 합니다: {self.cluster_num_nodes}")

        for name, interval in (
            ("CLUSTER_POLL_INTERVAL_SECONDS", self.cluster_poll_interval),
            ("ROLLOUT_POLL_INTERVAL_SECONDS", self.rollout_poll_interval),
        ):
            if interval <= 0:
                errors.append(f"{name} 는 0보다 커야 합니다: {interval}")
        for name, timeout in (
            ("CLUSTER_WAIT_TIMEOUT_SECONDS", self.cluster_wait_timeout),
            ("ROLLOUT_WAIT_TIMEOUT_SECONDS", self.rollout_wait_timeout),
            ("APPROVAL_WAIT_TIMEOUT_SECONDS", self.approval_wait_timeout),
        ):
            if timeout < 0:
                errors.append(f"{name} 는 음수일 수 없습니다: {timeout}")
        if self.describe_timeout <= 0:
            errors.append(f"DESCRIBE_TIMEOUT_SECONDS 는 0보다 커야 합니다: {self.describe_timeout}")
        return errors

    def summary_lines(self) -> List[str]:
        values: Dict[str, object] = {
            "project": self.gcp_project_id,
            "region": self.gcp_region,
            "zone": self.gcp_zone,
            "artifact_registry_repo": self.artifact_registry_repo,
            "clusters": ", ".join(self.clusters),
            "delivery_pipeline": self.delivery_pipeline,
            "release_name": self.release_name,
            "tutorial_dir": self.tutorial_dir,
            "auto_approve": self.auto_approve,
            "wait_production": self.wait_production,
        }
        return [f"- {k}: {v}" for k, v in values.items()]
