"""Tests for JSON/ZIP export and import, and the company plan."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import pytest
from conftest import node_named

from auitree.core import ROOT_ID, EngineSettings, ImportFormatError, NodeKind, TreeEngine
from auitree.core.export import TREE_ENTRY, render_company_plan


def test_export_document_shape(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team", "Does things")
    engine.save_node_position(team.id, 5, 6)
    data = json.loads(engine.export_tree_as_json())

    assert data["version"] == "1.0"
    assert data["owner"]["name"] == "Owner"
    assert ROOT_ID not in data["hierarchy"]
    assert data["hierarchy"][team.id] == ROOT_ID
    assert data["positions"][team.id] == {"x": 5.0, "y": 6.0}
    assert [group["id"] for group in data["groups"]] == [team.id]
    assert len(data["nodes"]) == len(engine.nodes) - 1


def test_json_import_replaces_tree(engine: TreeEngine, tmp_path: Path) -> None:
    team = engine.create_group_node("Team")
    engine.reparent_node(node_named(engine, "Reviewer").id, team.id)
    exported = engine.export_tree_as_json()

    other = TreeEngine(settings=EngineSettings())
    other.load_project(tmp_path)
    other.import_tree_from_json(exported)

    assert set(other.nodes) == set(engine.nodes)
    assert other.get_node(node_named(engine, "Reviewer").id).parent_id == team.id
    assert other.get_node(team.id).kind is NodeKind.GROUP
    stored = json.loads((tmp_path / ".aui" / "tree.json").read_text(encoding="utf-8"))
    assert stored["hierarchy"][team.id] == ROOT_ID


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        json.dumps({"version": "2.0", "owner": {"name": "x"}, "nodes": [], "hierarchy": {}}),
        json.dumps({"version": "1.0", "owner": {"name": "x"}, "nodes": "nope", "hierarchy": {}}),
        json.dumps({"version": "1.0", "nodes": [], "hierarchy": {}}),
    ],
)
def test_invalid_imports_leave_state_alone(engine: TreeEngine, payload: str) -> None:
    before = set(engine.nodes)
    with pytest.raises(ImportFormatError):
        engine.import_tree_from_json(payload)
    assert set(engine.nodes) == before


def test_zip_round_trip_restores_skill_files(engine: TreeEngine, tmp_path: Path) -> None:
    bundle = engine.export_tree_as_zip()
    with zipfile.ZipFile(io.BytesIO(bundle)) as archive:
        names = set(archive.namelist())
    assert TREE_ENTRY in names
    assert "skills/lint/SKILL.md" in names

    target = tmp_path / "fresh"
    target.mkdir()
    other = TreeEngine(settings=EngineSettings())
    other.load_project(target)
    other.import_tree_from_zip(bundle)

    assert (target / ".claude/skills/lint/SKILL.md").exists()
    assert any(node.name == "lint" for node in other.nodes.values())


def test_zip_without_tree_is_rejected(engine: TreeEngine) -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("skills/x/SKILL.md", "x")
    with pytest.raises(ImportFormatError):
        engine.import_tree_from_zip(buffer.getvalue())
    with pytest.raises(ImportFormatError):
        engine.import_tree_from_zip(b"not a zip")


def test_company_plan(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Platform Team", "Keeps things running")
    reviewer = node_named(engine, "Reviewer")
    lint = node_named(engine, "lint")
    engine.reparent_node(reviewer.id, team.id)
    engine.assign_skill_to_node(reviewer.id, lint.id)

    directory = engine.save_company_plan()
    assert directory == project / ".aui" / "company-plan"
    readme = (directory / "README.md").read_text(encoding="utf-8")
    assert "- **Teams:** 1" in readme
    assert "| Reviewer | Reviews pull requests. | lint |" in readme
    team_doc = (directory / "platform-team.md").read_text(encoding="utf-8")
    assert team_doc.startswith("# Platform Team\n")
    assert "**Skills:** lint" in team_doc


def test_company_plan_date_is_injectable(engine: TreeEngine) -> None:
    files = render_company_plan(engine.nodes, engine.resolve_skill_name, today="2024-05-01")
    assert "> Generated on 2024-05-01" in files["README.md"]
    assert "## Skills Library" in files["README.md"]
