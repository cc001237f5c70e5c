"""
poller
------

외부 시스템의 상태 문자열을 반복 조회하여
성공/실패 조건을 만족하거나 timeout 이 지날 때까지 기다리는 공통 폴링 루프.

클러스터 RUNNING 대기, 롤아웃 SUCCEEDED 대기, PENDING_APPROVAL 감지가
모두 같은 루프를 쓰고 describe/조건 함수만 바꿔 끼운다.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .errors import MissingPrerequisiteError
from .logging_utils import get_logger


logger = get_logger(__name__)


UNKNOWN_STATUS = "UNKNOWN"


@dataclass(frozen=True)
class PollSpec:
    describe: Callable[[], str]
    success: Callable[[str], bool]
    failure: Optional[Callable[[str], bool]] = None
    interval: float = 5.0
    timeout: float = 600.0
    description: str = "status"

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"폴링 간격은 0보다 커야 합니다: {self.interval}")
        if self.timeout < 0:
            raise ValueError(f"timeout 은 음수일 수 없습니다: {self.timeout}")


@dataclass(frozen=True)
class Succeeded:
    status: str
    attempts: int
    elapsed: float

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    reason: str
    attempts: int
    elapsed: float

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class TimedOut:
    elapsed: float
    attempts: int
    last_status: str = UNKNOWN_STATUS

    @property
    def ok(self) -> bool:
        return False


PollResult = Union[Succeeded, Failed, TimedOut]


@dataclass(frozen=True)
class PollProgress:
    description: str
    attempt: int
    status: str
    elapsed: float


ProgressCallback = Callable[[PollProgress], None]


class StatePoller:
    """
    poll(spec) 은 예외를 던지지 않고 항상 PollResult 중 하나를 돌려준다.

    - describe 가 ValueError(설정/이름 오류)를 던지면 재시도 없이 즉시 Failed
    - MissingPrerequisiteError 는 그대로 전파
    - 그 밖의 예외(TransientError, 네트워크/프로세스 오류 등)는 상태를 UNKNOWN 으로 보고 계속 폴링
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._progress = progress

    def poll(self, spec: PollSpec) -> PollResult:
        started = self._clock()
        attempts = 0
        status = UNKNOWN_STATUS

        logger.info("상태 대기 시작: %s (interval=%ss, timeout=%ss)", spec.description, spec.interval, spec.timeout)

        while True:
            attempts += 1
            try:
                status = spec.describe()
            except MissingPrerequisiteError:
                raise
            except ValueError as e:
                elapsed = self._clock() - started
                logger.error("상태 조회 설정 오류: %s (%s)", spec.description, e)
                return Failed(reason=str(e), attempts=attempts, elapsed=elapsed)
            except Exception as e:  # noqa: BLE001
                logger.warning("상태 조회 실패, 재시도합니다: %s (%s: %s)", spec.description, type(e).__name__, e)
                status = UNKNOWN_STATUS

            elapsed = self._clock() - started
            logger.debug("상태 조회 #%d: %s = %s (%.1fs)", attempts, spec.description, status, elapsed)

            if spec.success(status):
                logger.info("상태 도달: %s = %s (%d회, %.1fs)", spec.description, status, attempts, elapsed)
                return Succeeded(status=status, attempts=attempts, elapsed=elapsed)

            if spec.failure is not None and spec.failure(status):
                logger.error("실패 상태 감지: %s = %s", spec.description, status)
                return Failed(reason=status, attempts=attempts, elapsed=elapsed)

            if self._progress is not None:
                self._progress(
                    PollProgress(
                        description=spec.description,
                        attempt=attempts,
                        status=status,
                        elapsed=elapsed,
                    )
                )

            remaining = spec.timeout - elapsed
            if remaining <= 0:
                break

            self._sleep(min(spec.interval, remaining))
            if self._clock() - started >= spec.timeout:
                break

        elapsed = self._clock() - started
        logger.warning("상태 대기 시간 초과: %s (마지막 상태=%s, %.1fs)", spec.description, status, elapsed)
        return TimedOut(elapsed=elapsed, attempts=attempts, last_status=status)


def status_in(*states: str) -> Callable[[str], bool]:
    """상태 문자열이 주어진 값 중 하나인지 검사하는 predicate."""
    wanted = frozenset(states)
    return lambda status: status in wanted
