"""
gcp_artifact_registry
---------------------

Artifact Registry 리포지토리 존재 여부 확인 및
skaffold 를 이용한 이미지 빌드/푸시를 담당하는 모듈.
"""

from __future__ import annotations

import os

from .config import DeployConfig
from .errors import OperationFailedError
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner, run_command


logger = get_logger(__name__)


BUILD_ARTIFACTS_FILE = "artifacts.json"
BUILD_TIMEOUT = 3600.0


def ensure_repository(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    Artifact Registry 리포가 존재하는지 확인하고,
    없으면 생성한다.
    """
    repo = cfg.artifact_registry_repo
    logger.info("Artifact Registry 리포 확인: %s", repo)

    describe = runner.run(
        [
            "gcloud",
            "artifacts",
            "repositories",
            "describe",
            repo,
            f"--location={cfg.gcp_region}",
            f"--project={cfg.gcp_project_id}",
        ],
        operation="describe-repository",
        timeout=cfg.describe_timeout,
    )
    if describe.ok:
        logger.info("기존 Artifact Registry 리포를 사용합니다: %s", repo)
        return

    # describe 실패 시에만 create 시도 (다른 오류일 수도 있으므로 로그 남김)
    logger.warning("리포지토리 조회 실패, 생성 시도: %s", describe.excerpt(500))
    run_command(
        [
            "gcloud",
            "artifacts",
            "repositories",
            "create",
            repo,
            "--repository-format=docker",
            f"--location={cfg.gcp_region}",
            f"--project={cfg.gcp_project_id}",
            "--description=Image registry for tutorial web app",
        ],
        runner=runner,
        operation="create-repository",
    )
    logger.info("Artifact Registry 리포를 생성했습니다: %s", repo)


def recent_builds(cfg: DeployConfig, runner: CommandRunner, limit: int = 5) -> str:
    """
    최근 Cloud Build 작업 목록. 빌드 실패 시 진단 정보로 사용한다.
    목록 조회 자체가 실패해도 예외를 던지지 않는다.
    """
    result = runner.run(
        [
            "gcloud",
            "builds",
            "list",
            f"--project={cfg.gcp_project_id}",
            f"--region={cfg.gcp_region}",
            f"--limit={limit}",
            "--format=table(id,status,createTime,logUrl)",
        ],
        operation="list-builds",
        timeout=cfg.describe_timeout,
    )
    if result.ok:
        return result.stdout.strip() or "(최근 빌드 없음)"
    return f"(빌드 목록 조회 실패: exit={result.returncode}) {result.excerpt(500)}"


def build_images(cfg: DeployConfig, runner: CommandRunner) -> str:
    """
    web/ 디렉토리에서 skaffold build 를 실행하여 이미지를 빌드/푸시하고,
    생성된 artifacts.json 경로를 반환한다.
    """
    web_dir = os.path.join(cfg.tutorial_dir, "web")
    logger.info("skaffold 이미지 빌드: %s -> %s", web_dir, cfg.image_repo_url)

    result = runner.run(
        [
            "skaffold",
            "build",
            "--interactive=false",
            "--default-repo",
            cfg.image_repo_url,
            "--file-output",
            BUILD_ARTIFACTS_FILE,
        ],
        operation="build-images",
        cwd=web_dir,
        timeout=BUILD_TIMEOUT,
        stream_output=True,
    )
    if not result.ok:
        diagnostics = recent_builds(cfg, runner)
        raise OperationFailedError(
            f"이미지 빌드 실패 (skaffold build exit={result.returncode})",
            diagnostics=diagnostics,
        )

    artifacts_path = os.path.join(web_dir, BUILD_ARTIFACTS_FILE)
    logger.info("이미지 빌드/푸시 완료: %s", artifacts_path)
    return artifacts_path
