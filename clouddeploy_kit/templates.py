"""
templates
---------

튜토리얼 저장소 clone 과 설정 템플릿 렌더링.

- ${VAR} 치환은 envsubst 와 같은 규칙(string.Template)으로 처리한다.
- 타겟 이름 변경(staging -> cd-staging 등)은 줄 단위 정규식 치환으로 처리한다.
"""

from __future__ import annotations

import os
import re
from string import Template
from typing import Dict, List, Mapping

from .config import DeployConfig
from .logging_utils import get_logger
from .subprocess_utils import CommandRunner, run_command


logger = get_logger(__name__)


CONFIG_DIR = "clouddeploy-config"
REPO_DIR_NAME = "cloud-deploy-tutorials"

# 템플릿의 타겟 이름 -> DeployConfig 필드
TEMPLATE_TARGETS = {
    "staging": "staging_cluster",
    "prod": "production_cluster",
}
DROPPED_TARGETS = ("test",)


def template_vars(cfg: DeployConfig) -> Dict[str, str]:
    return {
        "PROJECT_ID": cfg.gcp_project_id,
        "REGION": cfg.gcp_region,
        "ZONE": cfg.gcp_zone,
    }


def substitute(text: str, values: Mapping[str, str]) -> str:
    rendered = Template(text).safe_substitute(values)
    project_id = values.get("PROJECT_ID")
    if project_id:
        rendered = rendered.replace("{{project-id}}", project_id)
    return rendered


def rename_first_per_line(text: str, old: str, new: str) -> str:
    pattern = re.compile(rf"\b{re.escape(old)}\b")
    return "".join(pattern.sub(new, line, count=1) for line in text.splitlines(keepends=True))


def rewrite_pipeline_targets(text: str, renames: Mapping[str, str], dropped=DROPPED_TARGETS) -> str:
    """
    딜리버리 파이프라인의 serialPipeline stage 를 실제 타겟 이름으로 바꾸고,
    사용하지 않는 stage 는 제거한다.
    """
    lines: List[str] = []
    for line in text.splitlines(keepends=True):
        match = re.match(r"^(\s*-?\s*targetId:\s*)(\S+)(.*)$", line, flags=re.DOTALL)
        if match:
            target = match.group(2)
            if target in dropped:
                continue
            if target in renames:
                line = f"{match.group(1)}{renames[target]}{match.group(3)}"
        lines.append(line)
    return "".join(lines)


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _write(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    logger.debug("템플릿 렌더링: %s", path)


def clone_tutorials(cfg: DeployConfig, runner: CommandRunner) -> str:
    """
    튜토리얼 저장소를 workdir 에 clone 한다. 이미 있으면 그대로 사용한다.
    """
    workdir = os.path.expanduser(cfg.workdir)
    repo_dir = os.path.join(workdir, REPO_DIR_NAME)
    if os.path.isdir(repo_dir):
        logger.info("기존 튜토리얼 저장소를 사용합니다: %s", repo_dir)
        return repo_dir

    os.makedirs(workdir, exist_ok=True)
    run_command(
        ["git", "clone", cfg.tutorial_repo_url, REPO_DIR_NAME],
        runner=runner,
        operation="clone-repository",
        cwd=workdir,
    )
    logger.info("튜토리얼 저장소 clone 완료: %s", repo_dir)
    return repo_dir


def render_skaffold(cfg: DeployConfig) -> str | None:
    base = cfg.tutorial_dir
    template_path = os.path.join(base, CONFIG_DIR, "skaffold.yaml.template")
    if not os.path.exists(template_path):
        logger.info("skaffold 템플릿이 없어 기존 web/skaffold.yaml 을 사용합니다.")
        return None

    output_path = os.path.join(base, "web", "skaffold.yaml")
    _write(output_path, substitute(_read(template_path), template_vars(cfg)))
    return output_path


def prepare_source(cfg: DeployConfig, runner: CommandRunner) -> None:
    clone_tutorials(cfg, runner)
    render_skaffold(cfg)


def target_renames(cfg: DeployConfig) -> Dict[str, str]:
    return {name: getattr(cfg, field) for name, field in TEMPLATE_TARGETS.items()}


def render_pipeline(cfg: DeployConfig) -> str:
    config_dir = os.path.join(cfg.tutorial_dir, CONFIG_DIR)
    template = _read(os.path.join(config_dir, "delivery-pipeline.yaml.template"))
    rendered = rewrite_pipeline_targets(substitute(template, template_vars(cfg)), target_renames(cfg))
    output_path = os.path.join(config_dir, "delivery-pipeline.yaml")
    _write(output_path, rendered)
    return output_path


def render_targets(cfg: DeployConfig) -> List[str]:
    """
    target-staging / target-prod 템플릿을 target-<cluster>.yaml 로 렌더링하고 경로 목록을 반환한다.
    """
    config_dir = os.path.join(cfg.tutorial_dir, CONFIG_DIR)
    values = template_vars(cfg)
    outputs: List[str] = []
    for template_name, cluster in target_renames(cfg).items():
        template = _read(os.path.join(config_dir, f"target-{template_name}.yaml.template"))
        rendered = rename_first_per_line(substitute(template, values), template_name, cluster)
        output_path = os.path.join(config_dir, f"target-{cluster}.yaml")
        _write(output_path, rendered)
        outputs.append(output_path)
    return outputs
