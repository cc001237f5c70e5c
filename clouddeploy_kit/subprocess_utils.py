from __future__ import annotations

import subprocess
import sys
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Sequence

from .errors import CommandFailedError, CommandTimeoutError, MissingPrerequisiteError
from .logging_utils import get_logger


logger = get_logger(__name__)


DEFAULT_TIMEOUT = 900.0


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def excerpt(self, width: int = 2000) -> str:
        """실패 메시지에 붙일 출력 요약 (stderr 우선)."""
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        return shorten(text, width=width, placeholder="…") if text else ""


def _missing_command(cmd: Sequence[str]) -> MissingPrerequisiteError:
    return MissingPrerequisiteError(
        cmd[0], "gcloud/kubectl/skaffold/git 가 설치되어 PATH 에 있는지 확인하세요"
    )


class CommandRunner:
    """
    외부 CLI 실행기.

    nonzero exit 에 대해서는 예외를 던지지 않고 RunResult 를 그대로 돌려준다.
    치명/무시 여부는 호출하는 쪽이 returncode 를 보고 결정한다.

    - 실행 파일이 없으면 MissingPrerequisiteError
    - timeout 초과 시 프로세스를 종료하고 CommandTimeoutError (TransientError)
    """

    def __init__(self, default_timeout: float | None = DEFAULT_TIMEOUT) -> None:
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: Sequence[str],
        *,
        operation: str | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        stream_output: bool = False,
    ) -> RunResult:
        effective_timeout = self.default_timeout if timeout is None else timeout
        label = operation or cmd[0]
        logger.info("명령 실행 [%s]: %s", label, " ".join(cmd))

        if stream_output:
            result = self._run_streaming(cmd, cwd=cwd, env=env, timeout=effective_timeout)
        else:
            result = self._run_captured(cmd, cwd=cwd, env=env, timeout=effective_timeout)

        if result.stdout:
            logger.debug("명령 stdout [%s]: %s", label, shorten(result.stdout.strip(), width=2000))
        if result.stderr:
            logger.debug("명령 stderr [%s]: %s", label, shorten(result.stderr.strip(), width=2000))
        if not result.ok:
            logger.debug("명령 종료 코드 [%s]: %s", label, result.returncode)
        return result

    def _run_captured(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> RunResult:
        try:
            proc = subprocess.run(  # noqa: S603
                list(cmd),
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=cwd,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as e:
            raise _missing_command(cmd) from e
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(cmd, timeout or 0.0) from e
        return RunResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")

    def _run_streaming(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | None,
        env: Mapping[str, str] | None,
        timeout: float | None,
    ) -> RunResult:
        # skaffold/gcloud 는 stderr 로도 진행 로그를 내보내므로 STDOUT 으로 합친다.
        try:
            proc = subprocess.Popen(  # noqa: S603
                list(cmd),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise _missing_command(cmd) from e

        deadline = None if timeout is None else time.monotonic() + float(timeout)
        out_lines: list[str] = []
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                out_lines.append(line)
                sys.stdout.write(line)
                sys.stdout.flush()
                if deadline is not None and time.monotonic() >= deadline:
                    proc.kill()
                    raise CommandTimeoutError(cmd, timeout or 0.0)

            wait_timeout = None
            if deadline is not None:
                wait_timeout = max(deadline - time.monotonic(), 0.0)
            returncode = proc.wait(timeout=wait_timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            raise CommandTimeoutError(cmd, timeout or 0.0) from e
        finally:
            if proc.stdout is not None:
                proc.stdout.close()

        return RunResult(returncode=returncode, stdout="".join(out_lines), stderr="")


def run_command(
    cmd: Sequence[str],
    *,
    runner: CommandRunner | None = None,
    check: bool = True,
    **kwargs,
) -> RunResult:
    """
    CommandRunner.run 의 편의 래퍼.

    check=True 이면 nonzero exit 를 CommandFailedError 로 바꿔서 던진다.
    """
    result = (runner or CommandRunner()).run(cmd, **kwargs)
    if check and not result.ok:
        raise CommandFailedError(cmd, result.returncode, result.excerpt())
    return result
