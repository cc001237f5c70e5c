"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 clouddeploy_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


@dataclass
class RecordedCall:
    cmd: List[str]
    operation: Optional[str]
    kwargs: Dict[str, Any] = field(default_factory=dict)


class FakeRunner:
    """
    CommandRunner 대역. operation 이름별로 응답(RunResult 또는 예외)을 순서대로 돌려준다.
    응답이 하나 남으면 그 응답을 계속 반복한다. 등록되지 않은 operation 은 exit 0.
    """

    def __init__(self) -> None:
        self.calls: List[RecordedCall] = []
        self._responses: Dict[str, list] = {}

    def on(self, operation: str, *responses: Any) -> "FakeRunner":
        self._responses[operation] = list(responses)
        return self

    def run(self, cmd: Sequence[str], *, operation: Optional[str] = None, **kwargs: Any):
        from clouddeploy_kit.subprocess_utils import RunResult

        self.calls.append(RecordedCall(cmd=list(cmd), operation=operation, kwargs=kwargs))
        queue = self._responses.get(operation or "")
        if not queue:
            return RunResult(returncode=0, stdout="", stderr="")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def operations(self) -> List[Optional[str]]:
        return [c.operation for c in self.calls]

    def calls_for(self, operation: str) -> List[RecordedCall]:
        return [c for c in self.calls if c.operation == operation]


def ok(stdout: str = ""):
    from clouddeploy_kit.subprocess_utils import RunResult

    return RunResult(returncode=0, stdout=stdout, stderr="")


def fail(returncode: int = 1, stderr: str = "boom"):
    from clouddeploy_kit.subprocess_utils import RunResult

    return RunResult(returncode=returncode, stdout="", stderr=stderr)


class FakeClock:
    """sleep 이 호출되면 시간만 앞으로 보내는 가짜 시계."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cfg(tmp_path):
    from clouddeploy_kit.config import DeployConfig

    return DeployConfig(
        gcp_project_id="test-project",
        gcp_region="us-central1",
        gcp_zone="us-central1-a",
        workdir=str(tmp_path),
        cluster_poll_interval=1.0,
        cluster_wait_timeout=10.0,
        rollout_poll_interval=1.0,
        rollout_wait_timeout=10.0,
        approval_wait_timeout=3.0,
    )
