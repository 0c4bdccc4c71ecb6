"""Tests for loading, syncing and editing a tree."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import node_named, write

from auitree.core import (
    ROOT_ID,
    EngineSettings,
    NodeConflictError,
    NodeKind,
    NodeNotFoundError,
    ProjectLoadError,
    TreeEngine,
)
from auitree.core.paths import generate_node_id


def _id(path: Path) -> str:
    return generate_node_id(path)


def test_load_builds_expected_nodes(engine: TreeEngine, project: Path) -> None:
    kinds = sorted(node.kind.value for node in engine.nodes.values())
    assert kinds == ["agent", "context", "context", "human", "skill"]
    assert engine.root.name == "Owner"
    assert [node.name for node in engine.settings_nodes.values()] == ["settings"]
    assert all(node.parent_id == ROOT_ID for node in engine.nodes.values() if node.id != ROOT_ID)
    assert engine.skill_name_cache[_id(project / ".claude/skills/lint/SKILL.md")] == "lint"
    assert (project / ".aui" / "tree.json").exists()
    assert engine.current_layout_id is not None


def test_empty_project_has_only_root(tmp_path: Path) -> None:
    tree = TreeEngine(settings=EngineSettings())
    tree.load_project(tmp_path)
    assert list(tree.nodes) == [ROOT_ID]
    assert tree.root.name == "Owner"
    assert tree.root.kind is NodeKind.HUMAN


def test_missing_project_keeps_previous_state(engine: TreeEngine, tmp_path: Path) -> None:
    before = dict(engine.nodes)
    with pytest.raises(ProjectLoadError):
        engine.load_project(tmp_path / "does-not-exist")
    assert engine.nodes == before


def test_load_is_deterministic(project: Path) -> None:
    first = TreeEngine(settings=EngineSettings())
    first.load_project(project)
    second = TreeEngine(settings=EngineSettings())
    second.load_project(project)
    assert {key: node.parent_id for key, node in first.nodes.items()} == {
        key: node.parent_id for key, node in second.nodes.items()
    }
    assert set(first.settings_nodes) == set(second.settings_nodes)


def test_hierarchy_survives_reload(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Review Team", "Reviews everything")
    reviewer = node_named(engine, "Reviewer")
    engine.reparent_node(reviewer.id, team.id)

    reloaded = TreeEngine(settings=EngineSettings())
    reloaded.load_project(project)
    assert reloaded.get_node(reviewer.id).parent_id == team.id
    assert reloaded.get_node(team.id).kind is NodeKind.GROUP
    assert reloaded.get_node(team.id).description == "Reviews everything"


def test_stale_parents_and_cycles_fall_back_to_root(project: Path) -> None:
    agent_id = _id(project / ".claude/agents/reviewer.md")
    write(
        project / ".aui" / "tree.json",
        json.dumps(
            {
                "owner": {"name": "Ada"},
                "hierarchy": {agent_id: "gone", "g1": "g2", "g2": "g1"},
                "positions": {},
                "groups": [
                    {"id": "g1", "name": "One", "parentId": "g2"},
                    {"id": "g2", "name": "Two", "parentId": "g1"},
                ],
                "lastModified": 0,
            }
        ),
    )
    tree = TreeEngine(settings=EngineSettings())
    tree.load_project(project)
    assert tree.root.name == "Ada"
    assert tree.get_node(agent_id).parent_id == ROOT_ID

    def reaches_root(node_id: str) -> bool:
        seen = set()
        while node_id != ROOT_ID:
            if node_id in seen:
                return False
            seen.add(node_id)
            node_id = tree.get_node(node_id).parent_id
        return True

    assert reaches_root("g1") and reaches_root("g2")


def test_corrupt_metadata_is_ignored(project: Path) -> None:
    write(project / ".aui" / "tree.json", "{broken")
    tree = TreeEngine(settings=EngineSettings())
    tree.load_project(project)
    assert tree.root.name == "Owner"
    assert len(tree.nodes) == 5


def test_sync_adds_new_files_under_root(engine: TreeEngine, project: Path) -> None:
    path = write(project / ".claude/agents/writer.md", "---\nname: Writer\n---\nWrite.\n")
    assert engine.sync_from_disk([str(path)]) == [_id(path)]
    assert engine.get_node(_id(path)).parent_id == ROOT_ID


def test_sync_keeps_parent_and_assignments(engine: TreeEngine, project: Path) -> None:
    team = engine.create_group_node("Team")
    path = project / ".claude/agents/reviewer.md"
    reviewer = engine.get_node(_id(path))
    engine.reparent_node(reviewer.id, team.id)
    engine.assign_skill_to_node(reviewer.id, "skill-x")

    path.write_text("---\nname: Senior Reviewer\n---\nNew body\n", encoding="utf-8")
    engine.sync_from_disk([str(path)])

    refreshed = engine.get_node(reviewer.id)
    assert refreshed.name == "Senior Reviewer"
    assert refreshed.parent_id == team.id
    assert refreshed.assigned_skills == ["skill-x"]


def test_sync_is_idempotent(engine: TreeEngine, project: Path) -> None:
    path = str(project / ".claude/agents/reviewer.md")
    engine.sync_from_disk([path])
    snapshot = engine.get_node(_id(Path(path)))
    engine.sync_from_disk([path])
    again = engine.get_node(snapshot.id)
    assert (again.name, again.parent_id, again.prompt_body) == (
        snapshot.name,
        snapshot.parent_id,
        snapshot.prompt_body,
    )


def test_sync_skips_vanished_malformed_and_foreign_paths(
    engine: TreeEngine, project: Path
) -> None:
    bad = write(project / ".claude/agents/bad.md", "---\nname: [oops\n---\n")
    before = set(engine.nodes)
    changed = engine.sync_from_disk(
        [
            str(project / ".claude/agents/ghost.md"),
            str(bad),
            str(project / "README.md"),
        ]
    )
    assert changed == []
    assert set(engine.nodes) == before


def test_sync_never_removes_nodes(engine: TreeEngine, project: Path) -> None:
    path = project / ".claude/agents/reviewer.md"
    path.unlink()
    engine.sync_from_disk([str(path)])
    assert _id(path) in engine.nodes


def test_sync_refreshes_settings_nodes(engine: TreeEngine, project: Path) -> None:
    path = project / ".claude/settings.json"
    path.write_text("{bad", encoding="utf-8")
    engine.sync_from_disk([str(path)])
    node = engine.settings_nodes[_id(path)]
    assert node.validation_errors[0].startswith("Invalid JSON")
    assert _id(path) not in engine.nodes


def test_create_agent_writes_template(engine: TreeEngine, project: Path) -> None:
    node = engine.create_agent_node("Code Reviewer", "Checks code")
    path = project / ".claude/agents/code-reviewer.md"
    assert path.exists()
    assert node.id == _id(path)
    assert node.name == "Code Reviewer"
    assert node.description == "Checks code"
    with pytest.raises(NodeConflictError):
        engine.create_agent_node("Code Reviewer")


def test_create_skill_caches_name(engine: TreeEngine, project: Path) -> None:
    node = engine.create_skill_node("Data Cleanup", "Tidy data")
    assert (project / ".claude/skills/data-cleanup/SKILL.md").exists()
    assert engine.resolve_skill_name(node.id) == "data-cleanup"


def test_create_places_children_near_parent(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team")
    engine.save_node_position(team.id, 100, 50)
    first = engine.create_group_node("A", parent_id=team.id)
    second = engine.create_group_node("B", parent_id=team.id)
    positions = engine.metadata.positions
    assert (positions[first.id].x, positions[first.id].y) == (100, 210)
    assert (positions[second.id].x, positions[second.id].y) == (400, 210)


def test_create_under_unknown_parent(engine: TreeEngine) -> None:
    with pytest.raises(NodeNotFoundError):
        engine.create_group_node("Orphans", parent_id="nope")


def test_update_node_rules(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team")
    engine.update_node(team.id, name="Platform Team", launch_prompt="Ship it")
    assert engine.get_node(team.id).name == "Platform Team"
    with pytest.raises(ValueError):
        engine.update_node(team.id, kind=NodeKind.PIPELINE)
    with pytest.raises(ValueError):
        engine.update_node(team.id, id="other")
    with pytest.raises(ValueError):
        engine.update_node(team.id, colour="red")


def test_reparent_rejects_cycles(engine: TreeEngine) -> None:
    outer = engine.create_group_node("Outer")
    inner = engine.create_group_node("Inner", parent_id=outer.id)
    with pytest.raises(ValueError):
        engine.reparent_node(outer.id, inner.id)
    with pytest.raises(ValueError):
        engine.reparent_node(outer.id, outer.id)
    with pytest.raises(ValueError):
        engine.reparent_node(ROOT_ID, outer.id)


def test_remove_node_only_touches_the_map(engine: TreeEngine, project: Path) -> None:
    agent_id = _id(project / ".claude/agents/reviewer.md")
    engine.remove_node(agent_id)
    assert agent_id not in engine.nodes
    assert (project / ".claude/agents/reviewer.md").exists()
    with pytest.raises(NodeNotFoundError):
        engine.get_node(agent_id)


def test_assignments_persist_for_file_backed_nodes(engine: TreeEngine, project: Path) -> None:
    agent_id = _id(project / ".claude/agents/reviewer.md")
    skill_id = _id(project / ".claude/skills/lint/SKILL.md")
    engine.assign_skill_to_node(agent_id, skill_id)
    engine.assign_skill_to_node(agent_id, skill_id)
    assert engine.get_node(agent_id).assigned_skills == [skill_id]

    stored = json.loads((project / ".aui/tree.json").read_text(encoding="utf-8"))
    assert stored["nodeState"][agent_id]["assignedSkills"] == [skill_id]

    reloaded = TreeEngine(settings=EngineSettings())
    reloaded.load_project(project)
    assert reloaded.get_node(agent_id).assigned_skills == [skill_id]

    reloaded.remove_skill_from_node(agent_id, skill_id)
    assert reloaded.get_node(agent_id).assigned_skills == []


def test_skill_name_survives_skill_deletion(engine: TreeEngine, project: Path) -> None:
    agent_id = _id(project / ".claude/agents/reviewer.md")
    skill_id = _id(project / ".claude/skills/lint/SKILL.md")
    engine.assign_skill_to_node(agent_id, skill_id)
    engine.delete_node_from_disk(skill_id)

    assert not (project / ".claude/skills/lint").exists()
    assert engine.resolve_skill_name(skill_id) == "lint"

    reloaded = TreeEngine(settings=EngineSettings())
    reloaded.load_project(project)
    assert reloaded.resolve_skill_name(skill_id) == "lint"


def test_pipeline_steps(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team")
    pipeline = engine.create_pipeline_node("Release")
    engine.update_pipeline_steps(
        pipeline.id, [{"id": "step-1", "teamId": team.id, "prompt": "Build it"}]
    )
    assert engine.get_node(pipeline.id).pipeline_steps[0].teamId == team.id
    with pytest.raises(ValueError):
        engine.update_pipeline_steps(team.id, [])


def test_positions(engine: TreeEngine) -> None:
    engine.save_node_positions({"a": (1, 2), "b": {"x": 3, "y": 4}})
    assert engine.metadata.positions["b"].x == 3
    engine.clear_node_position("a")
    assert "a" not in engine.metadata.positions


class _Generator:
    def __init__(self, answer: str | Exception) -> None:
        self.answer = answer

    def generate(self, prompt: str) -> str:
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


def test_draft_description_updates_file(engine: TreeEngine, project: Path) -> None:
    agent_id = _id(project / ".claude/agents/reviewer.md")
    assert engine.draft_description(agent_id, _Generator("  A careful reviewer. ")) == (
        "A careful reviewer."
    )
    text = (project / ".claude/agents/reviewer.md").read_text(encoding="utf-8")
    assert "description: A careful reviewer." in text


def test_draft_description_leaves_node_on_failure(engine: TreeEngine) -> None:
    team = engine.create_group_node("Team", "Original")
    assert engine.draft_description(team.id, _Generator(RuntimeError("offline"))) is None
    assert engine.draft_description(team.id, _Generator("   ")) is None
    assert engine.get_node(team.id).description == "Original"
    assert engine.draft_description(team.id, _Generator("Better")) == "Better"
    assert engine.get_node(team.id).description == "Better"
