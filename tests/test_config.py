import dataclasses

import pytest

from clouddeploy_kit.config import DeployConfig, load_env_files, region_from_zone, validate_resource_name
from clouddeploy_kit.errors import InvalidResourceNameError


_ENV_KEYS = (
    "GCP_PROJECT_ID",
    "GCP_REGION",
    "GCP_ZONE",
    "STAGING_CLUSTER",
    "PRODUCTION_CLUSTER",
    "CLUSTER_POLL_INTERVAL_SECONDS",
    "ROLLOUT_WAIT_TIMEOUT_SECONDS",
    "AUTO_APPROVE",
    "CLUSTER_NUM_NODES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _base_env() -> dict[str, str]:
    return {
        "GCP_PROJECT_ID": "test-project",
        "GCP_ZONE": "us-central1-a",
    }


def _set_env(monkeypatch: pytest.MonkeyPatch, env: dict[str, str]) -> None:
    for key, value in env.items():
        monkeypatch.setenv(key, value)


def test_missing_required_env_raises_value_error(monkeypatch: pytest.MonkeyPatch) -> None:
    # GCP_PROJECT_ID 만 비워둔다.
    _set_env(monkeypatch, {"GCP_ZONE": "us-central1-a"})

    with pytest.raises(ValueError) as excinfo:
        DeployConfig.from_env()

    assert "GCP_PROJECT_ID" in str(excinfo.value)
    assert "GCP_ZONE" not in str(excinfo.value)


def test_region_is_derived_from_zone(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_env(monkeypatch, _base_env())

    cfg = DeployConfig.from_env()

    assert cfg.gcp_region == "us-central1"
    assert cfg.image_repo_url == "us-central1-docker.pkg.dev/test-project/cicd-challenge"
    assert cfg.cloudbuild_bucket == "test-project_cloudbuild"
    assert cfg.clusters == ("cd-staging", "cd-production")


def test_detected_defaults_fill_missing_env(monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = DeployConfig.from_env(
        detected={"project": "detected-project", "zone": "europe-west1-b", "region": "europe-west1"}
    )

    assert cfg.gcp_project_id == "detected-project"
    assert cfg.gcp_zone == "europe-west1-b"
    assert cfg.gcp_region == "europe-west1"


def test_env_overrides_detected_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_env(monkeypatch, _base_env())

    cfg = DeployConfig.from_env(detected={"project": "other", "zone": "europe-west1-b"})

    assert cfg.gcp_project_id == "test-project"
    assert cfg.gcp_zone == "us-central1-a"


@pytest.mark.parametrize("zone", ["us-central1", "US-CENTRAL1-A", "us_central1_a", "us-central1-ab"])
def test_invalid_zone_format_rejected(monkeypatch: pytest.MonkeyPatch, zone: str) -> None:
    _set_env(monkeypatch, {"GCP_PROJECT_ID": "test-project", "GCP_ZONE": zone})

    with pytest.raises(ValueError) as excinfo:
        DeployConfig.from_env()

    assert "GCP_ZONE" in str(excinfo.value)


def test_invalid_values_are_reported_together(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.update(
        {
            "STAGING_CLUSTER": "Staging_Cluster",
            "CLUSTER_POLL_INTERVAL_SECONDS": "0",
            "ROLLOUT_WAIT_TIMEOUT_SECONDS": "soon",
        }
    )
    _set_env(monkeypatch, env)

    with pytest.raises(ValueError) as excinfo:
        DeployConfig.from_env()

    message = str(excinfo.value)
    assert "STAGING_CLUSTER" in message
    assert "CLUSTER_POLL_INTERVAL_SECONDS" in message
    assert "ROLLOUT_WAIT_TIMEOUT_SECONDS" in message


def test_same_cluster_names_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    env = _base_env()
    env.update({"STAGING_CLUSTER": "demo", "PRODUCTION_CLUSTER": "demo"})
    _set_env(monkeypatch, env)

    with pytest.raises(ValueError):
        DeployConfig.from_env()


def test_config_is_immutable(cfg: DeployConfig) -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.gcp_project_id = "other"  # type: ignore[misc]


def test_load_env_files_later_file_overrides(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".env").write_text("GCP_PROJECT_ID=from-env\nGCP_ZONE=us-east1-b\n", encoding="utf-8")
    (tmp_path / ".env.infra").write_text("GCP_PROJECT_ID=from-infra\n", encoding="utf-8")
    # load_dotenv 가 os.environ 을 직접 바꾸므로 테스트 종료 시 복원되도록 먼저 등록한다.
    monkeypatch.setenv("GCP_PROJECT_ID", "placeholder")
    monkeypatch.setenv("GCP_ZONE", "placeholder")

    load_env_files(str(tmp_path))
    cfg = DeployConfig.from_env()

    assert cfg.gcp_project_id == "from-infra"
    assert cfg.gcp_region == "us-east1"


def test_region_from_zone() -> None:
    assert region_from_zone("asia-northeast3-a") == "asia-northeast3"


def test_validate_resource_name() -> None:
    assert validate_resource_name("cluster", "cd-staging") == "cd-staging"
    with pytest.raises(InvalidResourceNameError):
        validate_resource_name("cluster", "-bad")
