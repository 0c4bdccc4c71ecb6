"""Classify project files and parse them into nodes."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-not-found]
from pydantic import BaseModel, ValidationError

from .errors import NodeParseError, TreeError
from .fileio import write_text_atomic
from .node import (
    CONFIG_MODELS,
    Node,
    NodeConfig,
    NodeKind,
    config_to_dict,
)
from .paths import (
    file_stem,
    generate_node_id,
    normalize_path,
    parent_dir,
    title_case,
)

logger = logging.getLogger("auitree.parsers")

# A single blank line after the closing delimiter belongs to the block.
FRONT_MATTER_PATTERN = re.compile(
    r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)(?:[ \t]*\r?\n)?", re.DOTALL
)
CONTEXT_FILES = ("CLAUDE.md", "CLAUDE.local.md")
SKILL_FILE = "SKILL.md"


def classify(path: str | Path, config_dir: str = ".claude") -> NodeKind | None:
    """Map a path to the kind of node it materialises, or ``None``."""
    p = normalize_path(path)
    prefix = f"/{config_dir}/"
    if p.endswith("/" + SKILL_FILE) and f"{prefix}skills/" in p:
        return NodeKind.SKILL
    if f"{prefix}agents/" in p and p.endswith(".md"):
        return NodeKind.AGENT
    if f"{prefix}settings" in p and p.endswith(".json"):
        return NodeKind.SETTINGS
    if any(p.endswith("/" + name) or p == name for name in CONTEXT_FILES):
        return NodeKind.CONTEXT
    if f"{prefix}rules/" in p and p.endswith(".md"):
        return NodeKind.CONTEXT
    return None


def split_front_matter(text: str, path: str = "<memory>") -> tuple[dict[str, Any], str]:
    """Return ``(front_matter, body)``; documents without a block get ``{}``."""
    match = FRONT_MATTER_PATTERN.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise NodeParseError(path, f"invalid front matter: {exc}") from exc
    if not isinstance(data, dict):
        raise NodeParseError(path, "front matter must be a mapping object")
    return data, text[match.end():]


def _issues(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def validate_config(kind: NodeKind, raw: dict[str, Any]) -> tuple[NodeConfig | None, list[str]]:
    """Validate ``raw`` against the schema for ``kind``.

    On failure the payload is kept as an unvalidated model so that no user
    data is dropped, and the schema issues are returned.
    """
    model = CONFIG_MODELS[kind]
    try:
        return model.model_validate(raw), []  # type: ignore[return-value]
    except ValidationError as exc:
        return model.model_construct(**raw), _issues(exc)  # type: ignore[return-value]


def _read(path: str, content: str | None) -> str:
    if content is not None:
        return content
    return Path(path).read_text(encoding="utf-8")


def parse_agent_file(path: str, content: str | None = None) -> Node:
    path = normalize_path(path)
    data, body = split_front_matter(_read(path, content), path)
    name = str(data["name"]) if data.get("name") else title_case(file_stem(path))
    config, errors = validate_config(NodeKind.AGENT, {**data, "name": name})
    return Node(
        id=generate_node_id(path),
        name=name,
        kind=NodeKind.AGENT,
        source_path=path,
        config=config,
        prompt_body=body,
        validation_errors=errors,
    )


def parse_skill_file(path: str, content: str | None = None) -> Node:
    path = normalize_path(path)
    data, body = split_front_matter(_read(path, content), path)
    fallback = title_case(file_stem(parent_dir(path)))
    name = str(data["name"]) if data.get("name") else fallback
    config, errors = validate_config(NodeKind.SKILL, {**data, "name": name})
    return Node(
        id=generate_node_id(path),
        name=name,
        kind=NodeKind.SKILL,
        source_path=path,
        config=config,
        prompt_body=body,
        validation_errors=errors,
    )


def parse_settings_file(path: str, content: str | None = None) -> Node:
    path = normalize_path(path)
    node = Node(
        id=generate_node_id(path),
        name=file_stem(path),
        kind=NodeKind.SETTINGS,
        source_path=path,
    )
    try:
        raw = json.loads(_read(path, content))
    except json.JSONDecodeError as exc:
        node.validation_errors = [f"Invalid JSON: {exc}"]
        return node
    if not isinstance(raw, dict):
        node.validation_errors = ["Invalid JSON: settings must be an object"]
        return node
    node.config, node.validation_errors = validate_config(NodeKind.SETTINGS, raw)
    return node


def parse_context_file(path: str, content: str | None = None) -> Node:
    path = normalize_path(path)
    return Node(
        id=generate_node_id(path),
        name=file_stem(path),
        kind=NodeKind.CONTEXT,
        source_path=path,
        prompt_body=_read(path, content),
    )


_PARSERS = {
    NodeKind.AGENT: parse_agent_file,
    NodeKind.SKILL: parse_skill_file,
    NodeKind.SETTINGS: parse_settings_file,
    NodeKind.CONTEXT: parse_context_file,
}


def parse_file(path: str | Path, kind: NodeKind, content: str | None = None) -> Node:
    """Parse ``path`` as ``kind``.

    Raises ``OSError`` when the file cannot be read and ``NodeParseError``
    when an agent or skill document has malformed front matter.
    """
    parser = _PARSERS.get(kind)
    if parser is None:
        raise ValueError(f"Kind {kind.value!r} has no file representation")
    return parser(normalize_path(path), content)


def validate_node(node: Node) -> list[str]:
    """Recompute the derived ``validation_errors`` of a node."""
    errors: list[str] = []
    if not node.id:
        errors.append("Missing node id")
    if not node.name:
        errors.append("Missing node name")
    if node.kind.is_file_backed and not node.source_path:
        errors.append("Missing source path")
    model = CONFIG_MODELS.get(node.kind)
    if model is not None and node.config is not None:
        try:
            model.model_validate(config_to_dict(node.config))
        except ValidationError as exc:
            errors.extend(_issues(exc))
    return errors


def _validated(node: Node) -> BaseModel:
    model = CONFIG_MODELS[node.kind]
    if node.config is None:
        raise TreeError(f"Cannot write {node.kind.value} file: config is missing")
    try:
        return model.model_validate(config_to_dict(node.config))
    except ValidationError as exc:
        raise TreeError(f"Validation failed: {'; '.join(_issues(exc))}") from exc


def render_front_matter(data: dict[str, Any], body: str) -> str:
    front_matter = yaml.safe_dump(data, sort_keys=False, allow_unicode=True).strip()
    return f"---\n{front_matter}\n---\n\n{body.lstrip(chr(10))}"


def render_node_file(node: Node) -> str:
    """Serialise a node back to the text of its source document."""
    if node.kind in {NodeKind.AGENT, NodeKind.SKILL}:
        config = _validated(node)
        return render_front_matter(config.model_dump(exclude_none=True), node.prompt_body)
    if node.kind is NodeKind.SETTINGS:
        config = _validated(node)
        return json.dumps(config.model_dump(exclude_none=True), indent=2) + "\n"
    if node.kind is NodeKind.CONTEXT:
        return node.prompt_body
    raise TreeError(f'Cannot write node of kind "{node.kind.value}"')


def write_node_file(node: Node) -> Path:
    if not node.source_path:
        raise TreeError(f"Node {node.id} has no source file")
    return write_text_atomic(node.source_path, render_node_file(node))
