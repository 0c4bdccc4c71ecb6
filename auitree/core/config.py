"""Engine settings: built-in defaults, ``.aui/settings.yml`` overlay, env overrides."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml  # type: ignore[import-not-found]

logger = logging.getLogger("auitree.config")

SETTINGS_FILE = "settings.yml"
ENV_PREFIX = "AUITREE_"
PLATFORMS = ("auto", "posix", "windows")


def _default_cli_flags() -> list[str]:
    return ["--dangerously-skip-permissions"]


@dataclass(frozen=True)
class EngineSettings:
    """Directory names and deploy knobs used across the package."""

    config_dir: str = ".claude"
    tooling_dir: str = ".aui"
    default_owner: str = "Owner"
    debounce_ms: int = 300
    cli_command: str = "claude"
    cli_flags: list[str] = field(default_factory=_default_cli_flags)
    nested_session_env: str = "CLAUDECODE"
    platform: str = "auto"

    def resolved_platform(self) -> str:
        if self.platform in {"posix", "windows"}:
            return self.platform
        return "windows" if sys.platform.startswith("win") else "posix"

    def merged(self, overrides: Mapping[str, Any]) -> "EngineSettings":
        known = {item.name: item for item in fields(self)}
        updates: dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known or value is None:
                continue
            updates[key] = _coerce(key, value, getattr(self, key))
        settings = replace(self, **updates)
        if settings.platform not in PLATFORMS:
            raise ValueError(
                f"platform must be one of {', '.join(PLATFORMS)}; got {settings.platform!r}"
            )
        return settings


@dataclass(frozen=True)
class ProjectPaths:
    """Locations inside one project, derived from its settings."""

    root: Path
    config_dir: str = ".claude"
    tooling_dir: str = ".aui"

    @classmethod
    def for_project(cls, root: str | Path, settings: EngineSettings) -> "ProjectPaths":
        return cls(Path(root), settings.config_dir, settings.tooling_dir)

    @property
    def config_path(self) -> Path:
        return self.root / self.config_dir

    @property
    def tooling_path(self) -> Path:
        return self.root / self.tooling_dir

    @property
    def agents_path(self) -> Path:
        return self.config_path / "agents"

    @property
    def skills_path(self) -> Path:
        return self.config_path / "skills"


def _coerce(key: str, value: Any, current: Any) -> Any:
    if isinstance(current, bool):
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(current, int):
        return int(value)
    if isinstance(current, list):
        if isinstance(value, str):
            return value.split()
        return [str(item) for item in value]
    return str(value)


def _load_yaml_overrides(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a mapping", path)
        return {}
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for item in fields(EngineSettings):
        raw = environ.get(ENV_PREFIX + item.name.upper())
        if raw is not None:
            overrides[item.name] = raw
    return overrides


def load_settings(
    project_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Resolve settings for a project.

    Priority (highest last): defaults, ``<project>/.aui/settings.yml``,
    ``AUITREE_<FIELD>`` environment variables.
    """
    settings = EngineSettings()
    if project_path is not None:
        yaml_path = Path(project_path) / settings.tooling_dir / SETTINGS_FILE
        settings = settings.merged(_load_yaml_overrides(yaml_path))
    return settings.merged(_env_overrides(os.environ if environ is None else environ))
