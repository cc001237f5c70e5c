from __future__ import annotations

import pytest

from clouddeploy_kit import gcp_gke
from clouddeploy_kit.errors import CommandTimeoutError, OperationFailedError
from clouddeploy_kit.poller import Failed, StatePoller, Succeeded, TimedOut

from conftest import fail, ok


def _poller(clock) -> StatePoller:  # noqa: ANN001
    return StatePoller(clock=clock, sleep=clock.sleep)


def test_cluster_wait_succeeds_after_provisioning(cfg, fake_runner, fake_clock) -> None:
    fake_runner.on("describe-cluster", ok("PROVISIONING\n"), ok("PROVISIONING\n"), ok("RUNNING\n"))

    result = _poller(fake_clock).poll(gcp_gke.cluster_ready_spec(cfg, fake_runner, "cd-staging"))

    assert isinstance(result, Succeeded)
    assert result.attempts == 3
    call = fake_runner.calls_for("describe-cluster")[0]
    assert "--zone=us-central1-a" in call.cmd
    assert call.kwargs["timeout"] == cfg.describe_timeout


def test_cluster_describe_failures_are_tolerated(cfg, fake_runner, fake_clock) -> None:
    fake_runner.on(
        "describe-cluster",
        fail(1, "503 backend error"),
        CommandTimeoutError(["gcloud"], 60.0),
        ok("RUNNING"),
    )

    result = _poller(fake_clock).poll(gcp_gke.cluster_ready_spec(cfg, fake_runner, "cd-staging"))

    assert isinstance(result, Succeeded)
    assert result.attempts == 3


def test_cluster_error_state_fails(cfg, fake_runner, fake_clock) -> None:
    fake_runner.on("describe-cluster", ok("PROVISIONING"), ok("ERROR"))

    result = _poller(fake_clock).poll(gcp_gke.cluster_ready_spec(cfg, fake_runner, "cd-staging"))

    assert isinstance(result, Failed)
    assert result.reason == "ERROR"


def test_invalid_cluster_name_fails_without_calling_gcloud(cfg, fake_runner, fake_clock) -> None:
    result = _poller(fake_clock).poll(gcp_gke.cluster_ready_spec(cfg, fake_runner, "Not_A_Cluster"))

    assert isinstance(result, Failed)
    assert "Not_A_Cluster" in result.reason
    assert fake_runner.calls == []


def test_cluster_never_ready_times_out(cfg, fake_runner, fake_clock) -> None:
    fake_runner.on("describe-cluster", ok("PROVISIONING"))

    result = _poller(fake_clock).poll(
        gcp_gke.cluster_ready_spec(cfg, fake_runner, "cd-production", interval=1.0, timeout=2.0)
    )

    assert isinstance(result, TimedOut)
    assert result.last_status == "PROVISIONING"


def test_create_clusters_skips_existing(cfg, fake_runner) -> None:
    # 첫 번째(staging) 는 존재, 두 번째(production) 는 describe 실패 -> 생성
    fake_runner.on("describe-cluster", ok("RUNNING"), fail(1, "NOT_FOUND"))

    gcp_gke.create_clusters(cfg, fake_runner)

    created = fake_runner.calls_for("create-cluster")
    assert len(created) == 1
    assert "cd-production" in created[0].cmd
    assert "--async" in created[0].cmd
    assert "--num-nodes=1" in created[0].cmd


def test_wait_for_clusters_raises_on_timeout(cfg, fake_runner, fake_clock) -> None:
    fake_runner.on("describe-cluster", ok("PROVISIONING"))

    with pytest.raises(OperationFailedError):
        gcp_gke.wait_for_clusters(cfg, fake_runner, _poller(fake_clock))


def test_configure_kubectl_tolerates_rename_failure(cfg, fake_runner) -> None:
    fake_runner.on("rename-context", fail(1, "context not found"))

    gcp_gke.configure_kubectl(cfg, fake_runner)

    renames = fake_runner.calls_for("rename-context")
    assert [c.cmd[-1] for c in renames] == ["cd-staging", "cd-production"]
    assert renames[0].cmd[-2] == "gke_test-project_us-central1-a_cd-staging"
    assert len(fake_runner.calls_for("get-credentials")) == 2


def test_apply_namespaces_uses_each_context(cfg, fake_runner) -> None:
    gcp_gke.apply_namespaces(cfg, fake_runner)

    calls = fake_runner.calls_for("apply-namespace")
    assert [c.cmd[2] for c in calls] == ["cd-staging", "cd-production"]
    assert all(c.kwargs["cwd"] == cfg.tutorial_dir for c in calls)
