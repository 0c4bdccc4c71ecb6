"""Tests for file classification and parsing."""

from __future__ import annotations

from pathlib import Path

import pytest

from auitree.core import NodeKind, NodeParseError, TreeError
from auitree.core.parsers import (
    classify,
    parse_agent_file,
    parse_context_file,
    parse_file,
    parse_settings_file,
    parse_skill_file,
    render_node_file,
    split_front_matter,
    validate_node,
    write_node_file,
)


@pytest.mark.parametrize(
    ("path", "kind"),
    [
        ("/p/.claude/agents/reviewer.md", NodeKind.AGENT),
        ("/p/.claude/skills/lint/SKILL.md", NodeKind.SKILL),
        ("/p/.claude/settings.json", NodeKind.SETTINGS),
        ("/p/.claude/settings.local.json", NodeKind.SETTINGS),
        ("/p/CLAUDE.md", NodeKind.CONTEXT),
        ("/p/CLAUDE.local.md", NodeKind.CONTEXT),
        ("/p/.claude/rules/style.md", NodeKind.CONTEXT),
        ("C:\\p\\.claude\\agents\\a.md", NodeKind.AGENT),
        ("/p/README.md", None),
        ("/p/.claude/skills/lint/notes.md", None),
        ("/p/.claude/agents/data.json", None),
    ],
)
def test_classify(path: str, kind: NodeKind | None) -> None:
    assert classify(path) is kind


def test_classify_honours_config_dir() -> None:
    assert classify("/p/.agents/agents/a.md", config_dir=".agents") is NodeKind.AGENT
    assert classify("/p/.agents/agents/a.md") is None


def test_agent_front_matter_and_body() -> None:
    node = parse_agent_file(
        "/p/.claude/agents/reviewer.md",
        "---\nname: Reviewer\ndescription: Reviews code\ntools: [Read, Grep]\n---\n\nBody text\n",
    )
    assert node.kind is NodeKind.AGENT
    assert node.name == "Reviewer"
    assert node.description == "Reviews code"
    assert node.config.tools == ["Read", "Grep"]
    assert node.prompt_body.strip() == "Body text"
    assert node.validation_errors == []


def test_agent_name_falls_back_to_file_name() -> None:
    node = parse_agent_file("/p/.claude/agents/code-reviewer.md", "Just a body\n")
    assert node.name == "Code Reviewer"
    assert node.prompt_body == "Just a body\n"


def test_invalid_field_is_reported_not_raised() -> None:
    node = parse_agent_file(
        "/p/.claude/agents/a.md", "---\nname: A\npermissionMode: sometimes\n---\nbody\n"
    )
    assert node.validation_errors
    assert "permissionMode" in node.validation_errors[0]
    assert node.config.permissionMode == "sometimes"


def test_malformed_front_matter_raises() -> None:
    with pytest.raises(NodeParseError):
        split_front_matter("---\nname: [unclosed\n---\nbody\n", "a.md")
    with pytest.raises(NodeParseError):
        split_front_matter("---\n- just\n- a list\n---\nbody\n", "a.md")


def test_skill_name_falls_back_to_directory() -> None:
    node = parse_skill_file("/p/.claude/skills/data-cleanup/SKILL.md", "Steps\n")
    assert node.name == "Data Cleanup"
    assert node.kind is NodeKind.SKILL


def test_settings_invalid_json_keeps_node() -> None:
    node = parse_settings_file("/p/.claude/settings.json", "{not json")
    assert node.kind is NodeKind.SETTINGS
    assert node.config is None
    assert node.validation_errors[0].startswith("Invalid JSON")


def test_settings_config_parsed() -> None:
    node = parse_settings_file(
        "/p/.claude/settings.json", '{"permissions": {"allow": ["Bash(ls)"]}, "extra": 1}'
    )
    assert node.name == "settings"
    assert node.config.permissions.allow == ["Bash(ls)"]
    assert node.validation_errors == []


def test_context_body_is_whole_file() -> None:
    node = parse_context_file("/p/CLAUDE.md", "---\nnot: front matter\n---\n")
    assert node.name == "CLAUDE"
    assert node.prompt_body.startswith("---")


def test_parse_file_rejects_virtual_kinds() -> None:
    with pytest.raises(ValueError):
        parse_file("/p/x.md", NodeKind.GROUP)


def test_write_round_trip(tmp_path: Path) -> None:
    path = tmp_path / ".claude" / "agents" / "writer.md"
    path.parent.mkdir(parents=True)
    path.write_text("---\nname: Writer\ncolor: blue\n---\n\nWrite things.\n", encoding="utf-8")
    node = parse_file(path, NodeKind.AGENT)
    node.prompt_body = "Write better things.\n"
    write_node_file(node)

    reparsed = parse_file(path, NodeKind.AGENT)
    assert reparsed.id == node.id
    assert reparsed.config.color == "blue"
    assert reparsed.prompt_body.strip() == "Write better things."


def test_render_refuses_invalid_config() -> None:
    node = parse_agent_file("/p/.claude/agents/a.md", "---\nname: A\nmaxTurns: many\n---\n")
    assert validate_node(node)
    with pytest.raises(TreeError):
        render_node_file(node)


def test_indented_first_body_line_survives_round_trip(tmp_path: Path) -> None:
    path = tmp_path / ".claude" / "agents" / "coder.md"
    path.parent.mkdir(parents=True)
    path.write_text("---\nname: Coder\n---\n    indented first line\nrest\n", encoding="utf-8")

    node = parse_file(path, NodeKind.AGENT)
    assert node.prompt_body == "    indented first line\nrest\n"

    write_node_file(node)
    assert parse_file(path, NodeKind.AGENT).prompt_body == node.prompt_body
    write_node_file(node)
    assert parse_file(path, NodeKind.AGENT).prompt_body == "    indented first line\nrest\n"


def test_blank_separator_line_is_not_part_of_body() -> None:
    _, body = split_front_matter("---\nname: A\n---\n\nBody\n")
    assert body == "Body\n"
    _, body = split_front_matter("---\r\nname: A\r\n---\r\n  code\r\n")
    assert body == "  code\r\n"
