"""
errors
------

배포 흐름 전체에서 사용하는 예외 계층.

- MissingPrerequisiteError : 필수 도구/자격 증명 없음 (즉시 중단, exit 1)
- TransientError           : 상태 조회 일시 실패 (폴링 중에는 무시하고 재시도)
- CommandFailedError       : check=True 로 실행한 명령의 nonzero exit
- OperationFailedError     : 빌드/배포 단계 실패 (진단 정보 포함, exit 2)
"""

from __future__ import annotations

from typing import Sequence


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


class DeployKitError(RuntimeError):
    """clouddeploy_kit 공통 베이스 예외."""


class MissingPrerequisiteError(DeployKitError):
    def __init__(self, prerequisite: str, hint: str = "") -> None:
        self.prerequisite = prerequisite
        message = f"필수 구성요소를 찾을 수 없습니다: {prerequisite}"
        if hint:
            message += f" ({hint})"
        super().__init__(message)


class TransientError(DeployKitError):
    """재시도하면 회복될 수 있는 일시적 실패."""


class CommandTimeoutError(TransientError):
    def __init__(self, cmd: Sequence[str], timeout: float) -> None:
        self.cmd = list(cmd)
        self.timeout = timeout
        super().__init__(f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}")


class CommandFailedError(DeployKitError):
    def __init__(self, cmd: Sequence[str], returncode: int, output: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        detail = f"\n{output}" if output else ""
        super().__init__(f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){detail}")


class OperationFailedError(DeployKitError):
    """
    외부 작업 실패. diagnostics 에는 원인 파악에 필요한 최근 빌드/작업 목록 등을 담는다.
    """

    def __init__(self, message: str, diagnostics: str = "") -> None:
        self.diagnostics = diagnostics
        super().__init__(message)


class InvalidResourceNameError(ValueError):
    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} 이름 형식이 올바르지 않습니다: {name!r}")
