"""
gcp_gke
-------

스테이징/프로덕션 GKE 클러스터 생성, RUNNING 대기,
kubectl 컨텍스트 구성 및 네임스페이스 적용을 담당하는 모듈.
"""

from __future__ import annotations

import os
from typing import Callable

from .config import DeployConfig, validate_resource_name
from .errors import OperationFailedError, TransientError
from .logging_utils import get_logger
from .poller import PollSpec, StatePoller, UNKNOWN_STATUS, status_in
from .subprocess_utils import CommandRunner, run_command


logger = get_logger(__name__)


CLUSTER_READY_STATES = ("RUNNING",)
CLUSTER_FAILED_STATES = ("ERROR", "STOPPING")

NAMESPACE_MANIFEST = os.path.join("kubernetes-config", "web-app-namespace.yaml")


def describe_cluster_status(cfg: DeployConfig, runner: CommandRunner, name: str) -> str:
    """
    클러스터 상태 문자열(PROVISIONING, RUNNING, ...)을 반환한다.

    이름 형식이 잘못되었으면 InvalidResourceNameError(ValueError),
    gcloud 가 실패하면 TransientError 를 던진다.
    """
    validate_resource_name("cluster", name)
    result = runner.run(
        [
            "gcloud",
            "container",
            "clusters",
            "describe",
            name,
            f"--zone={cfg.gcp_zone}",
            f"--project={cfg.gcp_project_id}",
            "--format=value(status)",
        ],
        operation="describe-cluster",
        timeout=cfg.describe_timeout,
    )
    if not result.ok:
        raise TransientError(f"클러스터 상태 조회 실패: {name} (exit={result.returncode})")
    return result.stdout.strip() or UNKNOWN_STATUS


def cluster_ready_spec(
    cfg: DeployConfig,
    runner: CommandRunner,
    name: str,
    *,
    interval: float | None = None,
    timeout: float | None = None,
) -> PollSpec:
    describe: Callable[[], str] = lambda: describe_cluster_status(cfg, runner, name)  # noqa: E731
    return PollSpec(
        describe=describe,
        success=status_in(*CLUSTER_READY_STATES),
        failure=status_in(*CLUSTER_FAILED_STATES),
        interval=cfg.cluster_poll_interval if interval is None else interval,
        timeout=cfg.cluster_wait_timeout if timeout is None else timeout,
        description=f"cluster/{name}",
    )


def cluster_exists(cfg: DeployConfig, runner: CommandRunner, name: str) -> bool:
    try:
        describe_cluster_status(cfg, runner, name)
    except TransientError:
        return False
    return True


def create_clusters(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    두 클러스터를 --async 로 생성 요청한다. 이미 존재하는 클러스터는 건너뛴다.
    생성 완료 대기는 wait_for_clusters 에서 한다.
    """
    for name in cfg.clusters:
        if cluster_exists(cfg, runner, name):
            logger.info("기존 GKE 클러스터를 사용합니다: %s", name)
            continue
        run_command(
            [
                "gcloud",
                "container",
                "clusters",
                "create",
                name,
                f"--zone={cfg.gcp_zone}",
                f"--project={cfg.gcp_project_id}",
                f"--num-nodes={cfg.cluster_num_nodes}",
                "--async",
            ],
            runner=runner,
            operation="create-cluster",
        )
        logger.info("GKE 클러스터 생성 요청: %s (zone=%s)", name, cfg.gcp_zone)


def wait_for_clusters(cfg: DeployConfig, runner: CommandRunner, poller: StatePoller) -> None:
    for name in cfg.clusters:
        result = poller.poll(cluster_ready_spec(cfg, runner, name))
        if not result.ok:
            raise OperationFailedError(f"클러스터가 RUNNING 상태가 되지 않았습니다: {name} ({result})")
        logger.info("클러스터 RUNNING: %s", name)


def kube_context_name(cfg: DeployConfig, cluster: str) -> str:
    """get-credentials 가 만드는 기본 컨텍스트 이름."""
    return f"gke_{cfg.gcp_project_id}_{cfg.gcp_zone}_{cluster}"


def configure_kubectl(cfg: DeployConfig, runner: CommandRunner) -> None:
    """
    클러스터별 자격 증명을 받아오고, 컨텍스트 이름을 클러스터 이름으로 바꾼다.
    이름 변경은 이미 바뀌어 있을 수 있으므로 실패해도 경고만 남긴다.
    """
    for name in cfg.clusters:
        run_command(
            [
                "gcloud",
                "container",
                "clusters",
                "get-credentials",
                name,
                f"--zone={cfg.gcp_zone}",
                f"--project={cfg.gcp_project_id}",
            ],
            runner=runner,
            operation="get-credentials",
        )
        rename = runner.run(
            ["kubectl", "config", "rename-context", kube_context_name(cfg, name), name],
            operation="rename-context",
        )
        if not rename.ok:
            logger.warning("kubectl 컨텍스트 이름 변경 실패 (계속 진행): %s", rename.excerpt(500))


def apply_namespaces(cfg: DeployConfig, runner: CommandRunner) -> None:
    for name in cfg.clusters:
        run_command(
            ["kubectl", "--context", name, "apply", "-f", NAMESPACE_MANIFEST],
            runner=runner,
            operation="apply-namespace",
            cwd=cfg.tutorial_dir,
        )
