"""Discover the configuration files of a project."""

from __future__ import annotations

import logging
from pathlib import Path

from .parsers import CONTEXT_FILES, SKILL_FILE
from .paths import normalize_path

logger = logging.getLogger("auitree.scanner")


def _markdown_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return [entry for entry in directory.iterdir() if entry.is_file() and entry.suffix == ".md"]


def scan_project(root: str | Path, config_dir: str = ".claude") -> list[str]:
    """Return every file of ``root`` that can become a node.

    Missing directories contribute nothing. Paths are normalised and sorted.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise FileNotFoundError(f"Project directory not found: {root_path}")

    found: list[Path] = [root_path / name for name in CONTEXT_FILES]
    found = [path for path in found if path.is_file()]

    claude_dir = root_path / config_dir
    if claude_dir.is_dir():
        found.extend(
            path for path in claude_dir.glob("settings*.json") if path.is_file()
        )
    found.extend(_markdown_files(claude_dir / "agents"))
    skills_dir = claude_dir / "skills"
    if skills_dir.is_dir():
        for entry in skills_dir.iterdir():
            skill_file = entry / SKILL_FILE
            if entry.is_dir() and skill_file.is_file():
                found.append(skill_file)
    found.extend(_markdown_files(claude_dir / "rules"))

    paths = sorted(normalize_path(path) for path in found)
    logger.debug("Scanned %s: %d file(s)", root_path, len(paths))
    return paths
