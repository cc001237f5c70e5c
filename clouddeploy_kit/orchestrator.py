from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional

from .config import DeployConfig
from .errors import (
    EXIT_OK,
    EXIT_PARTIAL_FAILURE,
    MissingPrerequisiteError,
    OperationFailedError,
)
from .logging_utils import get_logger
from .poller import StatePoller
from .subprocess_utils import CommandRunner
from . import (
    gcp_project,
    gcp_artifact_registry,
    gcp_gcs,
    gcp_gke,
    gcp_deploy,
    templates,
)


logger = get_logger(__name__)


class StepPolicy(str, Enum):
    FATAL = "FATAL"
    BEST_EFFORT = "BEST_EFFORT"


# 실행 순서대로 나열. CLI 의 --only/--skip 검증에도 사용한다.
ALL_STEPS: List[str] = [
    "services",
    "iam",
    "registry",
    "clusters",
    "source",
    "bucket",
    "build",
    "pipeline",
    "wait-clusters",
    "kubectl",
    "namespaces",
    "targets",
    "release",
    "wait-rollout",
    "promote",
    "approve",
    "wait-production",
]

STEP_POLICIES: Dict[str, StepPolicy] = {name: StepPolicy.FATAL for name in ALL_STEPS}
STEP_POLICIES.update(
    {
        "iam": StepPolicy.BEST_EFFORT,
        "approve": StepPolicy.BEST_EFFORT,
        "wait-production": StepPolicy.BEST_EFFORT,
    }
)


def _step_enabled(name: str, cfg: DeployConfig) -> bool:
    if name == "wait-production":
        return cfg.wait_production
    return name in STEP_POLICIES


def _filter_steps(
    cfg: DeployConfig,
    only_steps: Optional[Iterable[str]] = None,
    skip_steps: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    토글/only/skip 에 따라 실제 실행 대상 스텝 목록을 결정한다. (순서는 ALL_STEPS 기준)
    """
    requested = set(only_steps) if only_steps else set(ALL_STEPS)
    skipped = set(skip_steps or ())
    return [
        s for s in ALL_STEPS
        if s in requested and s not in skipped and _step_enabled(s, cfg)
    ]


def _run_step(name: str, cfg: DeployConfig, runner: CommandRunner, poller: StatePoller) -> None:
    if name == "services":
        gcp_project.ensure_project_and_apis(cfg, runner)
    elif name == "iam":
        gcp_project.ensure_iam_roles(cfg, runner)
    elif name == "registry":
        gcp_artifact_registry.ensure_repository(cfg, runner)
    elif name == "clusters":
        gcp_gke.create_clusters(cfg, runner)
    elif name == "source":
        templates.prepare_source(cfg, runner)
    elif name == "bucket":
        gcp_gcs.ensure_cloudbuild_bucket(cfg)
    elif name == "build":
        gcp_artifact_registry.build_images(cfg, runner)
    elif name == "pipeline":
        gcp_deploy.apply_pipeline(cfg, runner)
    elif name == "wait-clusters":
        gcp_gke.wait_for_clusters(cfg, runner, poller)
    elif name == "kubectl":
        gcp_gke.configure_kubectl(cfg, runner)
    elif name == "namespaces":
        gcp_gke.apply_namespaces(cfg, runner)
    elif name == "targets":
        gcp_deploy.apply_targets(cfg, runner)
    elif name == "release":
        gcp_deploy.create_release(cfg, runner)
    elif name == "wait-rollout":
        gcp_deploy.wait_for_rollout(cfg, runner, poller, cfg.staging_cluster)
    elif name == "promote":
        gcp_deploy.promote_release(cfg, runner)
    elif name == "approve":
        gcp_deploy.approve_pending_rollout(cfg, runner, poller, cfg.production_cluster)
    elif name == "wait-production":
        gcp_deploy.wait_for_rollout(cfg, runner, poller, cfg.production_cluster)
    else:
        raise ValueError(f"알 수 없는 스텝입니다: {name}")


def plan_all(
    cfg: DeployConfig,
    only_steps: Optional[Iterable[str]] = None,
    skip_steps: Optional[Iterable[str]] = None,
) -> str:
    """
    현재 설정과 스텝별 정책/활성 상태 요약 텍스트를 리턴한다. 실제 GCP 호출은 하지 않는다.
    """
    selected = _filter_steps(cfg, only_steps, skip_steps)

    lines: List[str] = []
    lines.append("# Bootstrap plan")
    lines.extend(cfg.summary_lines())
    lines.append("")
    lines.append("## Steps")
    for name in ALL_STEPS:
        status = "ENABLED" if name in selected else "SKIPPED"
        lines.append(f"- {name}: {status} ({STEP_POLICIES[name].value})")
    return "\n".join(lines)


def _section(lines: List[str], title: str, items: List[str]) -> None:
    lines.append("")
    lines.append(f"## {title}")
    if items:
        for item in items:
            lines.append(f"- {item}")
    else:
        lines.append("- (none)")


def apply_all(
    cfg: DeployConfig,
    runner: CommandRunner,
    poller: StatePoller,
    only_steps: Optional[Iterable[str]] = None,
    skip_steps: Optional[Iterable[str]] = None,
) -> tuple[str, int]:
    """
    스텝을 순서대로 실행한다.

    - FATAL 스텝 실패: 이후 스텝은 실행하지 않고 exit 2
    - BEST_EFFORT 스텝 실패: 경고로 기록하고 계속 진행
    - MissingPrerequisiteError / ValueError: 그대로 전파 (호출자가 exit 1 처리)

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        exit_code: 0 (성공) 또는 2 (부분 실패)
    """
    executed: List[str] = []
    skipped: List[str] = []
    warnings: List[str] = []
    failed: List[str] = []
    not_run: List[str] = []
    diagnostics: List[str] = []

    steps = _filter_steps(cfg, only_steps, skip_steps)
    logger.info("실행 대상 스텝: %s", steps)

    aborted = False
    for name in ALL_STEPS:
        if name not in steps:
            skipped.append(name)
            continue
        if aborted:
            not_run.append(name)
            continue

        policy = STEP_POLICIES[name]
        logger.info("스텝 실행: %s (%s)", name, policy.value)

        try:
            _run_step(name, cfg, runner, poller)
        except (MissingPrerequisiteError, ValueError):
            raise
        except Exception as e:  # noqa: BLE001
            if isinstance(e, OperationFailedError) and e.diagnostics:
                diagnostics.append(f"[{name}]\n{e.diagnostics}")

            if policy is StepPolicy.BEST_EFFORT:
                logger.warning("스텝 실패 (best-effort, 계속 진행): %s: %s", name, e)
                warnings.append(f"{name}: {e}")
                continue

            logger.exception("스텝 실행 실패: %s", name)
            failed.append(f"{name}: {e}")
            aborted = True
            continue

        executed.append(name)

    lines: List[str] = []
    lines.append("# Bootstrap summary")
    lines.append(f"- project: {cfg.gcp_project_id}")
    lines.append(f"- pipeline: {cfg.delivery_pipeline} / release: {cfg.release_name}")
    _section(lines, "Executed steps", executed)
    _section(lines, "Skipped steps", skipped)
    _section(lines, "Warnings (best-effort)", warnings)
    _section(lines, "Failed steps", failed)
    if not_run:
        _section(lines, "Not run (aborted)", not_run)
    if diagnostics:
        lines.append("")
        lines.append("## Diagnostics")
        lines.extend(diagnostics)

    exit_code = EXIT_PARTIAL_FAILURE if failed else EXIT_OK
    return "\n".join(lines), exit_code
