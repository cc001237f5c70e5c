"""
prerequisites
-------------

배포 흐름에 필요한 외부 CLI 가 설치되어 있는지 점검한다.
"""

from __future__ import annotations

import shutil
from typing import Callable, Dict, List, Optional

from .errors import MissingPrerequisiteError
from .logging_utils import get_logger


logger = get_logger(__name__)


REQUIRED_TOOLS: Dict[str, str] = {
    "gcloud": "https://cloud.google.com/sdk/docs/install",
    "kubectl": "gcloud components install kubectl",
    "skaffold": "gcloud components install skaffold",
    "git": "https://git-scm.com/downloads",
}


def find_missing_tools(which: Optional[Callable[[str], Optional[str]]] = None) -> List[str]:
    which = which or shutil.which
    return [tool for tool in REQUIRED_TOOLS if not which(tool)]


def check_tools(which: Optional[Callable[[str], Optional[str]]] = None) -> List[str]:
    """
    사람이 읽을 수 있는 점검 결과 라인을 반환한다. (예외는 던지지 않는다)
    """
    missing = set(find_missing_tools(which))
    results: List[str] = []
    for tool, hint in REQUIRED_TOOLS.items():
        if tool in missing:
            results.append(f"{tool}: 없음 (설치 필요: {hint})")
        else:
            results.append(f"{tool}: 설치됨")
    return results


def ensure_tools(which: Optional[Callable[[str], Optional[str]]] = None) -> None:
    missing = find_missing_tools(which)
    if not missing:
        logger.debug("필수 도구 확인 완료: %s", ", ".join(REQUIRED_TOOLS))
        return
    first = missing[0]
    raise MissingPrerequisiteError(
        ", ".join(missing),
        f"설치 안내: {REQUIRED_TOOLS[first]}",
    )
