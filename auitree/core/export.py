"""Portable snapshots of a tree and the company plan documents."""

from __future__ import annotations

import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from .clone import children
from .errors import ImportFormatError
from .fileio import write_text_atomic
from .metadata import GroupRecord, TreeMetadata, group_record, node_from_group
from .node import ROOT_ID, Node, NodeKind, create_root_node
from .paths import normalize_path, now_ms, slugify
from .schema import EXPORT_SCHEMA, SchemaValidator

logger = logging.getLogger("auitree.export")

EXPORT_VERSION = "1.0"
TREE_ENTRY = "tree.aui.json"
SKILLS_PREFIX = "skills/"


def build_export(
    nodes: Mapping[str, Node],
    metadata: TreeMetadata,
    skill_name_cache: Mapping[str, str],
    app_version: str,
) -> dict[str, Any]:
    """Snapshot every non-root node plus the metadata needed to rebuild the tree."""
    members = [node for node_id, node in nodes.items() if node_id != ROOT_ID]
    return {
        "version": EXPORT_VERSION,
        "exportedAt": now_ms(),
        "appVersion": app_version,
        "owner": metadata.owner.model_dump(mode="json"),
        "nodes": [node.to_dict() for node in members],
        "hierarchy": {node.id: node.parent_id for node in members},
        "positions": {
            key: value.model_dump(mode="json") for key, value in metadata.positions.items()
        },
        "groups": [
            group_record(node).model_dump(mode="json", exclude_none=True)
            for node in members
            if node.kind.is_virtual
        ],
        "skillNameCache": dict(skill_name_cache),
    }


def parse_export(payload: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    """Decode and validate an export document.

    Raises ``ImportFormatError`` for malformed JSON, a version other than
    ``1.0`` or a document that does not match the export schema.
    """
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Invalid export JSON: {exc}") from exc
    else:
        data = dict(payload)
    if not isinstance(data, dict):
        raise ImportFormatError("Export document must be a JSON object")
    if data.get("version") != EXPORT_VERSION:
        raise ImportFormatError(f"Unsupported export version: {data.get('version')}")
    SchemaValidator(EXPORT_SCHEMA, ImportFormatError, "export").validate(data)
    return data


def nodes_from_export(data: Mapping[str, Any]) -> dict[str, Node]:
    """Rebuild the node map of a validated export document."""
    owner = data["owner"]
    nodes: dict[str, Node] = {ROOT_ID: create_root_node(owner["name"], owner.get("description", ""))}
    try:
        for raw in data["nodes"]:
            node = Node.from_dict(raw)
            if node.id == ROOT_ID:
                continue
            node.parent_id = data["hierarchy"].get(node.id, node.parent_id)
            nodes[node.id] = node
        for raw in data.get("groups") or []:
            record = GroupRecord.model_validate(raw)
            if record.id not in nodes:
                nodes[record.id] = node_from_group(record)
    except (KeyError, ValueError, ValidationError) as exc:
        raise ImportFormatError(f"Invalid node in export: {exc}") from exc
    return nodes


def skill_relative_path(source_path: str) -> str | None:
    """``.../skills/<name>/SKILL.md`` -> ``<name>/SKILL.md``."""
    parts = normalize_path(source_path).split("/")
    if "skills" not in parts:
        return None
    idx = len(parts) - 1 - parts[::-1].index("skills")
    if idx >= len(parts) - 1:
        return None
    return "/".join(parts[idx + 1:])


def collect_skill_files(nodes: Mapping[str, Node]) -> dict[str, str]:
    files: dict[str, str] = {}
    for node in nodes.values():
        if node.kind is not NodeKind.SKILL or not node.source_path:
            continue
        relative = skill_relative_path(node.source_path)
        if relative is None or relative in files:
            continue
        try:
            files[relative] = Path(node.source_path).read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not read skill file %s: %s", node.source_path, exc)
    return files


def pack_zip(tree_json: str, skill_files: Mapping[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(TREE_ENTRY, tree_json)
        for relative, content in sorted(skill_files.items()):
            archive.writestr(SKILLS_PREFIX + relative, content)
    return buffer.getvalue()


def _safe_relative(name: str) -> str | None:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts or not path.parts:
        return None
    return str(path)


def unpack_zip(data: bytes) -> tuple[str, dict[str, str]]:
    """Split a bundle into the tree document and ``{relative path: content}`` skills."""
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ImportFormatError(f"Invalid export archive: {exc}") from exc
    tree_json: str | None = None
    skill_files: dict[str, str] = {}
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            if info.filename == TREE_ENTRY:
                tree_json = archive.read(info).decode("utf-8")
            elif info.filename.startswith(SKILLS_PREFIX):
                relative = _safe_relative(info.filename[len(SKILLS_PREFIX):])
                if relative is None:
                    logger.warning("Skipping unsafe archive entry %s", info.filename)
                    continue
                skill_files[relative] = archive.read(info).decode("utf-8")
    if tree_json is None:
        raise ImportFormatError(f"Export archive has no {TREE_ENTRY}")
    return tree_json, skill_files


def _first_prose_line(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", "---")):
            return stripped[:100]
    return ""


def render_company_plan(
    nodes: Mapping[str, Node],
    resolve: Callable[[str], str | None],
    today: str | None = None,
) -> dict[str, str]:
    """Return ``{file name: markdown}`` for ``README.md`` and one file per team."""

    def names(node: Node) -> list[str]:
        resolved = (resolve(skill_id) for skill_id in node.assigned_skills)
        return [name for name in resolved if name]

    top_level = [
        node
        for node_id, node in nodes.items()
        if node_id != ROOT_ID and node.parent_id in (ROOT_ID, None)
    ]
    teams = [node for node in top_level if node.kind is NodeKind.GROUP]
    agents = [node for node in top_level if node.kind is NodeKind.AGENT]
    skills = [node for node in top_level if node.kind is NodeKind.SKILL]
    date = today or datetime.now(timezone.utc).date().isoformat()

    readme = [
        "# Company Plan",
        "",
        f"> Generated on {date}",
        "",
        "## Overview",
        "",
        f"- **Teams:** {len(teams)}",
        f"- **Standalone Agents:** {len(agents)}",
        f"- **Skills:** {len(skills)}",
        "",
    ]
    files: dict[str, str] = {}
    if teams:
        readme += ["## Teams", ""]
    for team in teams:
        members = children(nodes, team.id)
        readme += [f"### {team.name}", ""]
        if team.description.strip():
            readme += [team.description.strip(), ""]
        readme.append(f"- **Agents:** {len(members)}")
        if names(team):
            readme.append(f"- **Team Skills:** {', '.join(names(team))}")
        readme.append("")
        if members:
            readme += ["| Agent | Role | Skills |", "|-------|------|--------|"]
            for member in members:
                role = member.description.strip().replace("\n", " ") or "-"
                readme.append(f"| {member.name} | {role} | {', '.join(names(member)) or '-'} |")
            readme.append("")

        team_doc = [f"# {team.name}", ""]
        if team.description.strip():
            team_doc += [team.description.strip(), ""]
        if names(team):
            team_doc += ["## Team Skills", "", *(f"- {name}" for name in names(team)), ""]
        team_doc += ["## Agents", ""]
        for member in members:
            team_doc += [f"### {member.name}", ""]
            if member.description.strip():
                team_doc += [member.description.strip(), ""]
            if names(member):
                team_doc += [f"**Skills:** {', '.join(names(member))}", ""]
            subs = children(nodes, member.id)
            if subs:
                team_doc += ["**Sub-agents:**", ""]
                for sub in subs:
                    detail = sub.description.strip()
                    team_doc.append(f"- {sub.name}" + (f": {detail}" if detail else ""))
                team_doc.append("")
        files[f"{slugify(team.name) or team.id}.md"] = "\n".join(team_doc) + "\n"

    if agents:
        readme += ["## Standalone Agents", ""]
        for agent in agents:
            detail = agent.description.strip()
            readme.append(f"- **{agent.name}**" + (f": {detail}" if detail else ""))
        readme.append("")
    if skills:
        readme += ["## Skills Library", ""]
        for skill in skills:
            summary = _first_prose_line(skill.description)
            readme.append(f"- **{skill.name}**" + (f": {summary}" if summary else ""))
        readme.append("")
    files["README.md"] = "\n".join(readme)
    return files


def write_company_plan(plan_dir: str | Path, files: Mapping[str, str]) -> Path:
    directory = Path(plan_dir)
    for name, content in files.items():
        write_text_atomic(directory / name, content)
    return directory
