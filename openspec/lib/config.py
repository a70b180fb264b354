"""
Configuration loaders for openspec.

Locates the openspec root and loads project-level settings from
<root>/project.env.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from openspec.lib import envparse
from openspec.lib.rules import ValidationRules, load_rules

logger = logging.getLogger(__name__)

ROOT_ENV_VAR = "OPENSPEC_ROOT"
ROOT_DIR_NAME = "openspec"
PROJECT_FILE = "project.env"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class ProjectConfig:
    """Project-level configuration from project.env and rules.yaml"""
    root: Path
    name: str
    default_author: str
    strict_validation: bool  # validate behaves as --strict by default
    log_level: str
    rules: ValidationRules = field(default_factory=ValidationRules)


def find_root(explicit: str | None = None, cwd: Path | None = None) -> Path | None:
    """Resolve the openspec root.

    Order: explicit --root, $OPENSPEC_ROOT, then the nearest `openspec/`
    directory walking up from cwd. A directory that already contains
    changes/ or specs/ counts as a root itself.
    """
    if explicit:
        return Path(explicit).resolve()

    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return Path(env_root).resolve()

    start = (cwd or Path.cwd()).resolve()
    for candidate in [start, *start.parents]:
        if candidate.name == ROOT_DIR_NAME and (
            (candidate / "changes").is_dir() or (candidate / "specs").is_dir()
        ):
            return candidate
        nested = candidate / ROOT_DIR_NAME
        if nested.is_dir():
            return nested
    return None


def default_author() -> str:
    return os.environ.get("OPENSPEC_AUTHOR") or os.environ.get("USER") or "unknown"


def load_project_config(root: Path) -> ProjectConfig:
    """Load project.env (optional) and rules.yaml (optional) for a root."""
    env = {}
    env_path = root / PROJECT_FILE
    if env_path.exists():
        env = envparse.load_env(env_path)

    log_level = env.get("LOG_LEVEL", "WARNING").upper()
    if log_level not in VALID_LOG_LEVELS:
        logger.warning(f"Unknown LOG_LEVEL '{log_level}' in {env_path}, using WARNING")
        log_level = "WARNING"

    return ProjectConfig(
        root=root,
        name=env.get("PROJECT_NAME", root.parent.name or root.name),
        default_author=env.get("DEFAULT_AUTHOR") or default_author(),
        strict_validation=env.get("STRICT_VALIDATION", "false").lower() == "true",
        log_level=log_level,
        rules=load_rules(root),
    )
