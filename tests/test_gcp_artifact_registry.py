import pytest

from clouddeploy_kit import gcp_artifact_registry as ar
from clouddeploy_kit.errors import OperationFailedError

from conftest import fail, ok


def test_existing_repository_is_reused(cfg, fake_runner) -> None:
    ar.ensure_repository(cfg, fake_runner)

    assert fake_runner.operations == ["describe-repository"]


def test_missing_repository_is_created(cfg, fake_runner) -> None:
    fake_runner.on("describe-repository", fail(1, "NOT_FOUND"))

    ar.ensure_repository(cfg, fake_runner)

    create = fake_runner.calls_for("create-repository")[0].cmd
    assert "--repository-format=docker" in create
    assert "--location=us-central1" in create


def test_build_images_runs_skaffold_in_web_dir(cfg, fake_runner) -> None:
    path = ar.build_images(cfg, fake_runner)

    call = fake_runner.calls_for("build-images")[0]
    assert call.cmd[:2] == ["skaffold", "build"]
    assert "us-central1-docker.pkg.dev/test-project/cicd-challenge" in call.cmd
    assert call.kwargs["stream_output"] is True
    assert call.kwargs["cwd"].endswith("web")
    assert path.endswith("artifacts.json")


def test_build_failure_collects_recent_builds(cfg, fake_runner) -> None:
    fake_runner.on("build-images", fail(1, ""))
    fake_runner.on("list-builds", ok("ID  STATUS\nabc FAILURE\n"))

    with pytest.raises(OperationFailedError) as excinfo:
        ar.build_images(cfg, fake_runner)

    assert "abc FAILURE" in excinfo.value.diagnostics
