"""
gcp_deploy
----------

Cloud Deploy 딜리버리 파이프라인/타겟 적용, 릴리스 생성,
롤아웃 상태 조회/대기, 프로모션 및 승인을 담당하는 모듈.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from .config import DeployConfig, validate_resource_name
from .errors import OperationFailedError, TransientError
from .logging_utils import get_logger
from .poller import Failed, PollSpec, StatePoller, Succeeded, UNKNOWN_STATUS, status_in
from .subprocess_utils import CommandRunner, run_command
from . import templates


logger = get_logger(__name__)


ROLLOUT_SUCCEEDED = "SUCCEEDED"
PENDING_APPROVAL = "PENDING_APPROVAL"
ROLLOUT_FAILED_STATES = ("FAILED", "CANCELLED", "HALTED", "APPROVAL_REJECTED")


@dataclass(frozen=True)
class Rollout:
    name: str
    state: str
    target_id: str

    @property
    def short_name(self) -> str:
        return self.name.rsplit("/", 1)[-1]


def _deploy_cmd(cfg: DeployConfig, *args: str) -> List[str]:
    return [
        "gcloud",
        "deploy",
        *args,
        f"--region={cfg.gcp_region}",
        f"--project={cfg.gcp_project_id}",
    ]


def parse_rollouts(output: str) -> List[Rollout]:
    """`--format=value(name,state,targetId)` 출력(탭 구분)을 파싱한다."""
    rollouts: List[Rollout] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        parts += [""] * (3 - len(parts))
        rollouts.append(Rollout(name=parts[0].strip(), state=parts[1].strip(), target_id=parts[2].strip()))
    return rollouts


def list_rollouts(
    cfg: DeployConfig,
    runner: CommandRunner,
    *,
    target: Optional[str] = None,
    state: Optional[str] = None,
) -> List[Rollout]:
    """
    현재 릴리스의 롤아웃 목록 (최신순). 조회 실패 시 TransientError.
    """
    filters: List[str] = []
    if target:
        filters.append(f"targetId={target}")
    if state:
        filters.append(f"state={state}")

    cmd = _deploy_cmd(
        cfg,
        "rollouts",
        "list",
        f"--delivery-pipeline={cfg.delivery_pipeline}",
        f"--release={cfg.release_name}",
        "--sort-by=~createTime",
        "--format=value(name,state,targetId)",
    )
    if filters:
        cmd.append("--filter=" + " AND ".join(filters))

    result = runner.run(cmd, operation="list-rollouts", timeout=cfg.describe_timeout)
    if not result.ok:
        raise TransientError(f"롤아웃 목록 조회 실패 (exit={result.returncode}): {result.excerpt(500)}")
    return parse_rollouts(result.stdout)


def rollout_state(cfg: DeployConfig, runner: CommandRunner, target: Optional[str] = None) -> str:
    """대상 타겟의 최신 롤아웃 상태. 아직 롤아웃이 없으면 UNKNOWN."""
    if target:
        validate_resource_name("target", target)
    rollouts = list_rollouts(cfg, runner, target=target)
    if not rollouts:
        return UNKNOWN_STATUS
    return rollouts[0].state or UNKNOWN_STATUS


def rollout_spec(
    cfg: DeployConfig,
    runner: CommandRunner,
    target: Optional[str] = None,
    *,
    state: str = ROLLOUT_SUCCEEDED,
    interval: Optional[float] = None,
    timeout: Optional[float] = None,
) -> PollSpec:
    """롤아웃이 원하는 상태(기본 SUCCEEDED)에 도달할 때까지 기다리는 PollSpec."""
    failed_states = tuple(s for s in ROLLOUT_FAILED_STATES if s != state)
    return PollSpec(
        describe=lambda: rollout_state(cfg, runner, target),
        success=status_in(state),
        failure=status_in(*failed_states),
        interval=cfg.rollout_poll_interval if interval is None else interval,
        timeout=cfg.rollout_wait_timeout if timeout is None else timeout,
        description=f"rollout/{cfg.release_name}/{target or '*'}",
    )


def pending_approval_spec(cfg: DeployConfig, runner: CommandRunner, target: str) -> PollSpec:
    """
    프로덕션 롤아웃이 PENDING_APPROVAL 로 들어오는지 감지하는 PollSpec.
    승인 없이 끝나버린 경우(SUCCEEDED)나 실패 상태는 더 기다리지 않는다.
    """
    return PollSpec(
        describe=lambda: rollout_state(cfg, runner, target),
        success=status_in(PENDING_APPROVAL),
        failure=status_in(ROLLOUT_SUCCEEDED, *ROLLOUT_FAILED_STATES),
        interval=cfg.rollout_poll_interval,
        timeout=cfg.approval_wait_timeout,
        description=f"approval/{cfg.release_name}/{target}",
    )


def apply_pipeline(cfg: DeployConfig, runner: CommandRunner) -> None:
    pipeline_file = templates.render_pipeline(cfg)

    run_command(
        ["gcloud", "config", "set", "deploy/region", cfg.gcp_region],
        runner=runner,
        operation="set-config",
    )
    run_command(
        _deploy_cmd(cfg, "apply", f"--file={pipeline_file}"),
        runner=runner,
        operation="apply-pipeline",
    )
    described = run_command(
        _deploy_cmd(cfg, "delivery-pipelines", "describe", cfg.delivery_pipeline, "--format=value(name)"),
        runner=runner,
        operation="describe-pipeline",
    )
    logger.info("딜리버리 파이프라인 적용 완료: %s", described.stdout.strip() or cfg.delivery_pipeline)


def apply_targets(cfg: DeployConfig, runner: CommandRunner) -> None:
    for target_file in templates.render_targets(cfg):
        run_command(
            _deploy_cmd(cfg, "apply", f"--file={target_file}"),
            runner=runner,
            operation="apply-target",
        )
        logger.info("Cloud Deploy 타겟 적용: %s", os.path.basename(target_file))


def create_release(cfg: DeployConfig, runner: CommandRunner) -> None:
    web_dir = os.path.join(cfg.tutorial_dir, "web")
    run_command(
        _deploy_cmd(
            cfg,
            "releases",
            "create",
            cfg.release_name,
            f"--delivery-pipeline={cfg.delivery_pipeline}",
            f"--build-artifacts={os.path.join(web_dir, 'artifacts.json')}",
            f"--source={web_dir}",
        ),
        runner=runner,
        operation="create-release",
    )
    logger.info("릴리스 생성: %s (pipeline=%s)", cfg.release_name, cfg.delivery_pipeline)


def wait_for_rollout(
    cfg: DeployConfig,
    runner: CommandRunner,
    poller: StatePoller,
    target: str,
) -> None:
    result = poller.poll(rollout_spec(cfg, runner, target))
    if not result.ok:
        diagnostics = ""
        try:
            diagnostics = "\n".join(
                f"{r.short_name}\t{r.state}\t{r.target_id}" for r in list_rollouts(cfg, runner)
            )
        except TransientError as e:
            diagnostics = f"(롤아웃 목록 조회 실패: {e})"
        raise OperationFailedError(
            f"롤아웃이 {ROLLOUT_SUCCEEDED} 상태가 되지 않았습니다: {target} ({result})",
            diagnostics=diagnostics,
        )
    logger.info("롤아웃 %s: %s", ROLLOUT_SUCCEEDED, target)


def promote_release(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    다음 단계(프로덕션)로 프로모션. 호출자는 이전 단계 롤아웃 성공을 먼저 확인해야 한다.
    """
    run_command(
        _deploy_cmd(
            cfg,
            "releases",
            "promote",
            f"--delivery-pipeline={cfg.delivery_pipeline}",
            f"--release={cfg.release_name}",
            "--quiet",
        ),
        runner=runner,
        operation="promote-release",
    )
    logger.info("릴리스 프로모션 요청: %s", cfg.release_name)


def approve_rollout(cfg: DeployConfig, runner: CommandRunner, rollout: Rollout) -> None:
    run_command(
        _deploy_cmd(
            cfg,
            "rollouts",
            "approve",
            rollout.name,
            f"--delivery-pipeline={cfg.delivery_pipeline}",
            f"--release={cfg.release_name}",
            "--quiet",
        ),
        runner=runner,
        operation="approve-rollout",
    )
    logger.info("롤아웃 승인: %s", rollout.short_name)


def approve_pending_rollout(
    cfg: DeployConfig,
    runner: CommandRunner,
    poller: StatePoller,
    target: str,
) -> Optional[Rollout]:
    """
    승인 대기 중인 롤아웃을 찾아 승인한다.

    Returns:
        승인한 Rollout, 승인할 롤아웃이 없었으면 None
    """
    result = poller.poll(pending_approval_spec(cfg, runner, target))

    if isinstance(result, Failed):
        if result.reason == ROLLOUT_SUCCEEDED:
            logger.info("승인 없이 롤아웃이 완료되었습니다: %s", target)
            return None
        raise OperationFailedError(f"승인 대기 중 롤아웃 실패: {target} ({result.reason})")

    if not isinstance(result, Succeeded):
        logger.info("승인 대기 중인 롤아웃이 없습니다: %s", target)
        return None

    pending = list_rollouts(cfg, runner, target=target, state=PENDING_APPROVAL)
    if not pending:
        logger.info("승인 대기 롤아웃이 이미 처리되었습니다: %s", target)
        return None

    rollout = pending[0]
    if not cfg.auto_approve:
        logger.warning("AUTO_APPROVE=false 이므로 수동 승인이 필요합니다: %s", rollout.short_name)
        return None

    approve_rollout(cfg, runner, rollout)
    return rollout
