"""Tests for the path and identifier helpers."""

from __future__ import annotations

from auitree.core.paths import (
    file_stem,
    generate_node_id,
    generate_virtual_id,
    join_path,
    parent_dir,
    slugify,
    title_case,
    to_base36,
)


def test_node_id_is_stable_and_separator_agnostic() -> None:
    first = generate_node_id("/work/app/.claude/agents/reviewer.md")
    assert first == generate_node_id("/work/app/.claude/agents/reviewer.md")
    assert first == generate_node_id("\\work\\app\\.claude\\agents\\reviewer.md")
    assert first != generate_node_id("/work/app/.claude/agents/writer.md")
    assert set(first) <= set("0123456789abcdefghijklmnopqrstuvwxyz")


def test_node_id_fits_in_32_bits() -> None:
    node_id = generate_node_id("/" + "very-long-segment/" * 40 + "SKILL.md")
    assert int(node_id, 36) < 2**32


def test_base36() -> None:
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_virtual_ids_are_prefixed_and_unique() -> None:
    ids = {generate_virtual_id("group") for _ in range(50)}
    assert len(ids) == 50
    assert all(item.startswith("group-") for item in ids)


def test_name_helpers() -> None:
    assert slugify("Code Reviewer!") == "code-reviewer"
    assert slugify("  --Data  Team--") == "data-team"
    assert title_case("code-reviewer") == "Code Reviewer"
    assert title_case("data_team") == "Data Team"
    assert file_stem("a/b/notes.md") == "notes"
    assert file_stem(".env") == ".env"
    assert parent_dir("a/b/SKILL.md") == "a/b"
    assert parent_dir("SKILL.md") == ""
    assert join_path("a/", "/b", "c.md") == "a/b/c.md"
