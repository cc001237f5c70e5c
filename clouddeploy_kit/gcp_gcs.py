"""
gcp_gcs
-------

Cloud Build 가 소스 업로드에 사용하는 `<project>_cloudbuild` 버킷을 준비하는 모듈.
"""

from __future__ import annotations

from google.api_core.exceptions import Conflict
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import storage

from .config import DeployConfig
from .errors import MissingPrerequisiteError
from .logging_utils import get_logger


logger = get_logger(__name__)


def ensure_cloudbuild_bucket(cfg: DeployConfig) -> None:
    """
    버킷이 존재하는지 확인하고, 없으면 리전 + 균일 버킷 수준 액세스로 생성한다.
    """
    bucket_name = cfg.cloudbuild_bucket
    logger.info("Cloud Build 버킷 확인: gs://%s", bucket_name)

    try:
        client = storage.Client(project=cfg.gcp_project_id)
    except DefaultCredentialsError as e:
        raise MissingPrerequisiteError(
            "application default credentials",
            "gcloud auth application-default login",
        ) from e
    bucket = client.bucket(bucket_name)

    if bucket.exists():
        logger.info("기존 GCS 버킷을 사용합니다: %s", bucket_name)
        return

    bucket.iam_configuration.uniform_bucket_level_access_enabled = True
    try:
        client.create_bucket(bucket, location=cfg.gcp_region)
    except Conflict:
        # exists() 이후 다른 곳에서 먼저 생성된 경우
        logger.info("GCS 버킷이 이미 생성되어 있습니다: %s", bucket_name)
        return
    logger.info("GCS 버킷을 생성했습니다: %s (location=%s)", bucket_name, cfg.gcp_region)

