"""Tests for copy, duplicate and paste."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import node_named

from auitree.core import ROOT_ID, NodeKind, TreeEngine
from auitree.core.clone import find_unique_path
from auitree.core.parsers import parse_file


def test_find_unique_path_probes_numbered_names(tmp_path: Path) -> None:
    taken = {tmp_path / "a.md", tmp_path / "a-2.md"}
    path = find_unique_path(lambda name: tmp_path / f"{name}.md", "a", taken.__contains__)
    assert path == tmp_path / "a-3.md"


def test_find_unique_path_falls_back_to_random_suffix(tmp_path: Path) -> None:
    def make(name: str) -> Path:
        return tmp_path / f"{name}.md"

    numbered = {make("a")} | {make(f"a-{idx}") for idx in range(2, 21)}
    path = find_unique_path(make, "a", numbered.__contains__)
    assert path not in numbered
    assert path.name.startswith("a-")


def test_duplicate_agent_writes_a_new_file(engine: TreeEngine, project: Path) -> None:
    reviewer = node_named(engine, "Reviewer")
    new_id = engine.duplicate_nodes(reviewer.id)

    clone = engine.get_node(new_id)
    assert new_id != reviewer.id
    assert clone.name == "Reviewer (copy)"
    assert clone.parent_id == reviewer.parent_id
    path = project / ".claude/agents/reviewer-copy.md"
    assert clone.source_path == str(path).replace("\\", "/")

    reparsed = parse_file(path, NodeKind.AGENT)
    assert reparsed.id == new_id
    assert reparsed.name == "Reviewer (copy)"
    assert reparsed.config.model == "sonnet"


def test_duplicate_group_remaps_subtree(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Team")
    reviewer = node_named(engine, "Reviewer")
    lint = node_named(engine, "lint")
    engine.reparent_node(reviewer.id, team.id)
    engine.reparent_node(lint.id, team.id)
    before = set(engine.nodes)

    new_root = engine.duplicate_nodes(team.id)
    added = set(engine.nodes) - before
    assert len(added) == 3
    assert new_root in added

    clones = [engine.get_node(node_id) for node_id in added if node_id != new_root]
    assert {node.parent_id for node in clones} == {new_root}
    assert (project / ".claude/agents/reviewer-2.md").exists()
    assert (project / ".claude/skills/lint-2/SKILL.md").exists()
    assert engine.get_node(reviewer.id).parent_id == team.id


def test_duplicate_context_uses_copy_suffix(engine: TreeEngine, project: Path) -> None:
    style = node_named(engine, "style")
    new_id = engine.duplicate_nodes(style.id)
    assert (project / ".claude/rules/style-copy.md").read_text(encoding="utf-8") == (
        "Use four spaces.\n"
    )
    assert engine.get_node(new_id).kind is NodeKind.CONTEXT


def test_copy_then_paste_twice_gives_fresh_ids(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team")
    target = engine.create_group_node("Target")
    pipeline = engine.create_pipeline_node("Flow", parent_id=team.id)
    inner = engine.create_group_node("Inner", parent_id=team.id)
    engine.update_pipeline_steps(pipeline.id, [{"id": "s1", "teamId": inner.id}])

    engine.copy_nodes(team.id)
    first = engine.paste_nodes(target.id)
    second = engine.paste_nodes(target.id)
    assert first and second and first != second
    assert engine.get_node(first).parent_id == target.id

    pasted = [node for node in engine.descendants_of(first) if node.kind is NodeKind.PIPELINE]
    inner_clone = [node for node in engine.descendants_of(first) if node.name == "Inner"]
    assert pasted[0].pipeline_steps[0].teamId == inner_clone[0].id
    assert pasted[0].pipeline_steps[0].id != "s1"


def test_paste_with_empty_clipboard(engine: TreeEngine) -> None:
    assert engine.paste_nodes(ROOT_ID) is None


def test_root_cannot_be_copied(engine: TreeEngine) -> None:
    with pytest.raises(ValueError):
        engine.copy_nodes(ROOT_ID)
    with pytest.raises(ValueError):
        engine.duplicate_nodes(ROOT_ID)
