import sys
from typing import Optional

import click

from .config import load_env_files, validate_resource_name, DeployConfig
from .errors import EXIT_FATAL, EXIT_OK, EXIT_PARTIAL_FAILURE, MissingPrerequisiteError
from .logging_utils import setup_logging, get_logger
from .orchestrator import ALL_STEPS, apply_all, plan_all
from .poller import PollProgress, StatePoller
from .subprocess_utils import CommandRunner
from . import gcp_deploy, gcp_gke, gcp_project, prerequisites


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (.env / .env.infra 위치, 기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 는 google 클라이언트 로그까지 출력)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """Cloud Deploy 데모(GKE 스테이징/프로덕션) 부트스트랩 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose
    ctx.obj.setdefault("runner", CommandRunner())


def _load_config_from_ctx(ctx: click.Context) -> DeployConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    detected = gcp_project.detect_defaults(ctx.obj["runner"])
    cfg = DeployConfig.from_env(detected=detected)
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_config_or_exit(ctx: click.Context) -> DeployConfig:
    try:
        return _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(EXIT_FATAL)


def _echo_progress(progress: PollProgress) -> None:
    click.echo(
        f"  ... {progress.description}: {progress.status} "
        f"(#{progress.attempt}, {progress.elapsed:0.0f}s)",
        err=True,
    )


def _parse_step_list(raw: str, option: str) -> Optional[list[str]]:
    if not raw.strip():
        return None
    steps = [p.strip() for p in raw.split(",") if p.strip()]
    invalid = sorted({s for s in steps if s not in ALL_STEPS})
    if invalid:
        click.echo(
            f"[ERROR] {option} 에 잘못된 스텝 이름이 있습니다: "
            + ", ".join(invalid)
            + f"\n허용되는 스텝: {', '.join(ALL_STEPS)}",
            err=True,
        )
        sys.exit(EXIT_FATAL)
    return steps


_STEP_HELP = "쉼표로 구분된 스텝 이름(" + ",".join(ALL_STEPS) + ")."


@main.command()
@click.option("--only", "only", type=str, default="", help=_STEP_HELP)
@click.option("--skip", "skip", type=str, default="", help=_STEP_HELP)
@click.pass_context
def plan(ctx: click.Context, only: str, skip: str) -> None:
    """현재 설정 요약과 스텝별 정책(FATAL/BEST_EFFORT) 및 ENABLED/SKIPPED 상태를 출력"""
    cfg = _load_config_or_exit(ctx)
    only_list = _parse_step_list(only, "--only")
    skip_list = _parse_step_list(skip, "--skip")
    click.echo(plan_all(cfg, only_steps=only_list, skip_steps=skip_list))


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """
    필수 CLI(gcloud/kubectl/skaffold/git) 설치 여부를 점검한다.
    """
    results = prerequisites.check_tools()
    click.echo("# Prerequisites")
    for line in results:
        click.echo(f"- {line}")

    if prerequisites.find_missing_tools():
        sys.exit(EXIT_FATAL)


@main.command()
@click.option("--only", "only", type=str, default="", help=_STEP_HELP + " 기본은 전체 스텝.")
@click.option("--skip", "skip", type=str, default="", help=_STEP_HELP)
@click.pass_context
def bootstrap(ctx: click.Context, only: str, skip: str) -> None:
    """API 활성화부터 릴리스 프로모션/승인까지 전체 흐름을 실행"""
    try:
        prerequisites.ensure_tools()
    except MissingPrerequisiteError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_FATAL)

    cfg = _load_config_or_exit(ctx)
    only_list = _parse_step_list(only, "--only")
    skip_list = _parse_step_list(skip, "--skip")

    poller = StatePoller(progress=_echo_progress)
    try:
        summary, exit_code = apply_all(
            cfg,
            ctx.obj["runner"],
            poller,
            only_steps=only_list,
            skip_steps=skip_list,
        )
    except (MissingPrerequisiteError, ValueError) as e:
        logger.exception("부트스트랩 중단")
        click.echo(f"[ERROR] 부트스트랩 실패: {e}", err=True)
        sys.exit(EXIT_FATAL)

    click.echo(summary)
    if exit_code != EXIT_OK:
        sys.exit(exit_code)


@main.group()
def wait() -> None:
    """단일 리소스 상태 대기 (성공 0, 실패/시간 초과 2)"""


def _finish_wait(result) -> None:  # noqa: ANN001
    click.echo(str(result))
    if not result.ok:
        sys.exit(EXIT_PARTIAL_FAILURE)


@wait.command(name="cluster")
@click.argument("name")
@click.option("--interval", type=float, default=None, help="폴링 간격(초). 기본: CLUSTER_POLL_INTERVAL_SECONDS")
@click.option("--timeout", type=float, default=None, help="최대 대기 시간(초). 기본: CLUSTER_WAIT_TIMEOUT_SECONDS")
@click.pass_context
def wait_cluster(ctx: click.Context, name: str, interval: Optional[float], timeout: Optional[float]) -> None:
    """GKE 클러스터가 RUNNING 이 될 때까지 대기"""
    cfg = _load_config_or_exit(ctx)
    try:
        validate_resource_name("cluster", name)
        spec = gcp_gke.cluster_ready_spec(cfg, ctx.obj["runner"], name, interval=interval, timeout=timeout)
        result = StatePoller(progress=_echo_progress).poll(spec)
    except (MissingPrerequisiteError, ValueError) as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_FATAL)
    _finish_wait(result)


@wait.command(name="rollout")
@click.option("--target", type=str, default=None, help="타겟 ID (기본: 전체 중 최신 롤아웃)")
@click.option("--state", type=str, default=gcp_deploy.ROLLOUT_SUCCEEDED, show_default=True, help="기다릴 롤아웃 상태")
@click.option("--interval", type=float, default=None, help="폴링 간격(초). 기본: ROLLOUT_POLL_INTERVAL_SECONDS")
@click.option("--timeout", type=float, default=None, help="최대 대기 시간(초). 기본: ROLLOUT_WAIT_TIMEOUT_SECONDS")
@click.pass_context
def wait_rollout(
    ctx: click.Context,
    target: Optional[str],
    state: str,
    interval: Optional[float],
    timeout: Optional[float],
) -> None:
    """현재 릴리스의 롤아웃이 지정한 상태가 될 때까지 대기"""
    cfg = _load_config_or_exit(ctx)
    try:
        if target:
            validate_resource_name("target", target)
        spec = gcp_deploy.rollout_spec(
            cfg, ctx.obj["runner"], target, state=state.upper(), interval=interval, timeout=timeout
        )
        result = StatePoller(progress=_echo_progress).poll(spec)
    except (MissingPrerequisiteError, ValueError) as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_FATAL)
    _finish_wait(result)
