"""Tests for removing nodes from the tree and from disk."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import node_named

from auitree.core import ROOT_ID, NodeNotFoundError, TreeEngine


def test_removing_a_group_cascades(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Team")
    sub = engine.create_group_node("Sub", parent_id=team.id)
    reviewer = node_named(engine, "Reviewer")
    engine.reparent_node(reviewer.id, sub.id)
    engine.save_node_position(team.id, 10, 10)

    assert engine.remove_node_from_canvas(team.id) == "Team"
    for node_id in (team.id, sub.id, reviewer.id):
        assert node_id not in engine.nodes
    assert team.id not in engine.metadata.positions
    assert (project / ".claude/agents/reviewer.md").exists()


def test_removing_a_file_node_reparents_children(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team")
    reviewer = node_named(engine, "Reviewer")
    style = node_named(engine, "style")
    engine.reparent_node(reviewer.id, team.id)
    engine.reparent_node(style.id, reviewer.id)

    engine.remove_node_from_canvas(reviewer.id)
    assert engine.get_node(style.id).parent_id == team.id


def test_root_cannot_be_removed(engine: TreeEngine) -> None:
    with pytest.raises(ValueError):
        engine.remove_node_from_canvas(ROOT_ID)
    with pytest.raises(ValueError):
        engine.delete_node_from_disk(ROOT_ID)
    with pytest.raises(NodeNotFoundError):
        engine.remove_node_from_canvas("missing")


def test_delete_group_removes_member_files(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Team")
    reviewer = node_named(engine, "Reviewer")
    lint = node_named(engine, "lint")
    engine.reparent_node(reviewer.id, team.id)
    engine.reparent_node(lint.id, reviewer.id)

    removed = engine.delete_node_from_disk(team.id)
    assert set(removed) == {team.id, reviewer.id, lint.id}
    assert not (project / ".claude/agents/reviewer.md").exists()
    assert not (project / ".claude/skills/lint").exists()

    stored = json.loads((project / ".aui/tree.json").read_text(encoding="utf-8"))
    assert team.id not in stored["hierarchy"]
    assert reviewer.id not in stored["hierarchy"]


def test_delete_file_node_keeps_children_unless_cascading(
    engine: TreeEngine, project: Path
) -> None:
    reviewer = node_named(engine, "Reviewer")
    style = node_named(engine, "style")
    engine.reparent_node(style.id, reviewer.id)

    assert engine.delete_node_from_disk(reviewer.id) == [reviewer.id]
    assert not (project / ".claude/agents/reviewer.md").exists()
    assert engine.get_node(style.id).parent_id == ROOT_ID
    assert (project / ".claude/rules/style.md").exists()


def test_cascade_flag_deletes_subtree(engine: TreeEngine, project: Path) -> None:
    reviewer = node_named(engine, "Reviewer")
    style = node_named(engine, "style")
    engine.reparent_node(style.id, reviewer.id)

    engine.delete_node_from_disk(reviewer.id, cascade=True)
    assert style.id not in engine.nodes
    assert not (project / ".claude/rules/style.md").exists()


def test_delete_tolerates_missing_file(engine: TreeEngine, project: Path) -> None:
    reviewer = node_named(engine, "Reviewer")
    (project / ".claude/agents/reviewer.md").unlink()
    assert engine.delete_node_from_disk(reviewer.id) == [reviewer.id]
    assert reviewer.id not in engine.nodes
