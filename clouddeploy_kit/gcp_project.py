"""
gcp_project
-----------

gcloud 세션에서 프로젝트/존/리전을 감지하고,
필수 API enable 및 기본 Compute 서비스 계정의 IAM 역할 부여를 담당하는 모듈.
"""

from __future__ import annotations

from typing import Dict, List

from .config import DeployConfig
from .errors import DeployKitError, OperationFailedError
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner, run_command


logger = get_logger(__name__)


REQUIRED_APIS = [
    "container.googleapis.com",
    "clouddeploy.googleapis.com",
    "artifactregistry.googleapis.com",
    "cloudbuild.googleapis.com",
]

COMPUTE_SA_ROLES = [
    "roles/clouddeploy.jobRunner",
    "roles/container.developer",
]


def _value_or_empty(runner: CommandRunner, cmd: List[str], operation: str) -> str:
    try:
        result = runner.run(cmd, operation=operation, timeout=60.0)
    except DeployKitError as e:
        logger.debug("값 감지 실패 [%s]: %s", operation, e)
        return ""
    value = result.stdout.strip() if result.ok else ""
    return "" if value == "(unset)" else value


def detect_defaults(runner: CommandRunner) -> Dict[str, str]:
    """
    gcloud 설정/프로젝트 메타데이터에서 project, zone, region 기본값을 감지한다.
    감지하지 못한 값은 결과에 포함하지 않는다.
    """
    detected: Dict[str, str] = {}

    project = _value_or_empty(
        runner, ["gcloud", "config", "get-value", "project"], "detect-project"
    )
    if not project:
        return detected
    detected["project"] = project

    for key in ("zone", "region"):
        value = _value_or_empty(
            runner,
            [
                "gcloud",
                "compute",
                "project-info",
                "describe",
                f"--project={project}",
                f"--format=value(commonInstanceMetadata.items[google-compute-default-{key}])",
            ],
            f"detect-{key}",
        )
        if value:
            detected[key] = value

    logger.debug("gcloud 기본값 감지 결과: %s", detected)
    return detected


def configure_gcloud_defaults(cfg: DeployConfig, runner: CommandRunner) -> None:
    run_command(
        ["gcloud", "config", "set", "compute/region", cfg.gcp_region],
        runner=runner,
        operation="set-config",
    )
    zone_result = runner.run(
        ["gcloud", "config", "set", "compute/zone", cfg.gcp_zone],
        operation="set-config",
    )
    if not zone_result.ok:
        logger.warning("compute/zone 기본값 설정 실패 (계속 진행): %s", zone_result.excerpt(500))


def ensure_project_and_apis(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    필요한 API 들을 enable 한다. 이미 활성화된 API 는 gcloud 가 그대로 둔다.
    """
    logger.info("프로젝트 및 API 설정 확인: %s", cfg.gcp_project_id)
    configure_gcloud_defaults(cfg, runner)

    logger.info("다음 API 들이 활성화되어 있어야 합니다: %s", REQUIRED_APIS)
    run_command(
        [
            "gcloud",
            "services",
            "enable",
            *REQUIRED_APIS,
            f"--project={cfg.gcp_project_id}",
            "--quiet",
        ],
        runner=runner,
        operation="enable-services",
    )


def get_project_number(cfg: DeployConfig, runner: CommandRunner) -> str:
    result = run_command(
        [
            "gcloud",
            "projects",
            "describe",
            cfg.gcp_project_id,
            "--format=value(projectNumber)",
        ],
        runner=runner,
        operation="describe-project",
    )
    number = result.stdout.strip()
    if not number:
        raise OperationFailedError(f"프로젝트 번호를 확인할 수 없습니다: {cfg.gcp_project_id}")
    return number


def ensure_iam_roles(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    기본 Compute Engine 서비스 계정에 Cloud Deploy 실행에 필요한 역할을 부여한다.

    개별 바인딩 실패는 경고만 남기고 나머지 역할을 계속 시도한 뒤,
    마지막에 실패한 역할들을 OperationFailedError 로 모아서 알린다.
    """
    project_number = get_project_number(cfg, runner)
    member = f"serviceAccount:{project_number}-compute@developer.gserviceaccount.com"

    failed: List[str] = []
    for role in COMPUTE_SA_ROLES:
        result = runner.run(
            [
                "gcloud",
                "projects",
                "add-iam-policy-binding",
                cfg.gcp_project_id,
                f"--member={member}",
                f"--role={role}",
                "--condition=None",
                "--quiet",
            ],
            operation="bind-iam-role",
        )
        if result.ok:
            logger.info("IAM 역할 부여: %s -> %s", role, member)
        else:
            logger.warning("IAM 역할 부여 실패: %s (%s)", role, result.excerpt(500))
            failed.append(role)

    if failed:
        raise OperationFailedError("IAM 역할 부여 실패: " + ", ".join(failed))
