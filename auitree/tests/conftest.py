"""Shared fixtures: a small project on disk and an engine loaded from it."""

from __future__ import annotations

from pathlib import Path

import pytest

from auitree.core import EngineSettings, TreeEngine

AGENT_DOC = """---
name: Reviewer
description: Reviews pull requests.
model: sonnet
---

You review code carefully.
"""

SKILL_DOC = """---
name: lint
description: Run the linters.
---

# Lint

Run every linter.
"""


class RecordingSpawner:
    def __init__(self) -> None:
        self.launched: list[str] = []

    def open_terminal(self, script_path: str | Path) -> None:
        self.launched.append(str(script_path))


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    write(root / "CLAUDE.md", "# Project notes\n")
    write(root / ".claude" / "settings.json", '{"model": "sonnet"}\n')
    write(root / ".claude" / "agents" / "reviewer.md", AGENT_DOC)
    write(root / ".claude" / "skills" / "lint" / "SKILL.md", SKILL_DOC)
    write(root / ".claude" / "rules" / "style.md", "Use four spaces.\n")
    return root


@pytest.fixture
def spawner() -> RecordingSpawner:
    return RecordingSpawner()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(platform="posix")


@pytest.fixture
def engine(project: Path, settings: EngineSettings, spawner: RecordingSpawner) -> TreeEngine:
    tree = TreeEngine(settings=settings, spawner=spawner)
    tree.load_project(project)
    return tree


def node_named(engine: TreeEngine, name: str):
    matches = [node for node in engine.nodes.values() if node.name == name]
    assert len(matches) == 1, f"expected one node named {name!r}, got {len(matches)}"
    return matches[0]
