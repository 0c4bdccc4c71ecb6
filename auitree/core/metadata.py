"""Side-car metadata: ``.aui/tree.json`` and the saved layout documents."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import LayoutError, MetadataWriteError
from .fileio import remove_file, write_text_atomic
from .node import Node, NodeKind, NodeVariable, PipelineStep
from .paths import now_ms

logger = logging.getLogger("auitree.metadata")

TREE_FILE = "tree.json"
LAYOUTS_DIR = "layouts"
INDEX_FILE = "index.json"
_LAYOUT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class Owner(BaseModel):
    name: str
    description: str = ""

    model_config = ConfigDict(extra="allow")


class Position(BaseModel):
    x: float
    y: float


class GroupRecord(BaseModel):
    """Persisted form of a virtual (group or pipeline) node."""

    id: str
    name: str
    description: str = ""
    parentId: str | None = None
    team: str | None = None
    assignedSkills: list[str] = Field(default_factory=list)
    variables: list[NodeVariable] = Field(default_factory=list)
    launchPrompt: str = ""
    kind: Literal["group", "pipeline"] = "group"
    pipelineSteps: list[PipelineStep] | None = None

    model_config = ConfigDict(extra="allow")


class NodeState(BaseModel):
    """Assignments of a file-backed node that have no place in its file."""

    assignedSkills: list[str] = Field(default_factory=list)
    variables: list[NodeVariable] = Field(default_factory=list)
    launchPrompt: str = ""

    model_config = ConfigDict(extra="allow")

    def is_empty(self) -> bool:
        return not (self.assignedSkills or self.variables or self.launchPrompt)


class TreeMetadata(BaseModel):
    owner: Owner
    hierarchy: dict[str, str | None] = Field(default_factory=dict)
    positions: dict[str, Position] = Field(default_factory=dict)
    groups: list[GroupRecord] | None = None
    lastModified: int = Field(default_factory=now_ms)
    skillNameCache: dict[str, str] | None = None
    nodeState: dict[str, NodeState] | None = None

    model_config = ConfigDict(extra="allow")

    def to_document(self) -> dict[str, Any]:
        """JSON-ready dict; optional sections that are unset are omitted."""
        data = self.model_dump(mode="json")
        for key in ("groups", "skillNameCache", "nodeState"):
            if data.get(key) is None:
                data.pop(key, None)
        for group in data.get("groups") or []:
            if group.get("pipelineSteps") is None:
                group.pop("pipelineSteps", None)
        return data


class LayoutEntry(BaseModel):
    id: str
    name: str
    lastModified: int = Field(default_factory=now_ms)


class LayoutIndex(BaseModel):
    activeLayoutId: str
    layouts: list[LayoutEntry] = Field(default_factory=list)


def empty_metadata(owner_name: str, description: str = "") -> TreeMetadata:
    return TreeMetadata(owner=Owner(name=owner_name, description=description))


def group_record(node: Node) -> GroupRecord:
    return GroupRecord(
        id=node.id,
        name=node.name,
        description=node.prompt_body,
        parentId=node.parent_id,
        team=node.team,
        assignedSkills=list(node.assigned_skills),
        variables=list(node.variables),
        launchPrompt=node.launch_prompt,
        kind="pipeline" if node.kind is NodeKind.PIPELINE else "group",
        pipelineSteps=list(node.pipeline_steps) or None,
    )


def node_from_group(record: GroupRecord) -> Node:
    return Node(
        id=record.id,
        name=record.name,
        kind=NodeKind.PIPELINE if record.kind == "pipeline" else NodeKind.GROUP,
        parent_id=record.parentId,
        team=record.team,
        prompt_body=record.description,
        assigned_skills=list(record.assignedSkills),
        variables=list(record.variables),
        launch_prompt=record.launchPrompt,
        pipeline_steps=list(record.pipelineSteps or []),
    )


def node_state(node: Node) -> NodeState:
    return NodeState(
        assignedSkills=list(node.assigned_skills),
        variables=list(node.variables),
        launchPrompt=node.launch_prompt,
    )


def apply_node_state(node: Node, state: NodeState) -> None:
    node.assigned_skills = list(state.assignedSkills)
    node.variables = list(state.variables)
    node.launch_prompt = state.launchPrompt


def _check_layout_id(layout_id: str) -> str:
    if not _LAYOUT_ID_PATTERN.match(layout_id):
        raise LayoutError(f"Invalid layout id: {layout_id!r}")
    return layout_id


class MetadataStore:
    """Read and write the documents under a project's tooling directory."""

    def __init__(self, project_path: str | Path, tooling_dir: str = ".aui") -> None:
        self.project_path = Path(project_path)
        self.tooling_path = self.project_path / tooling_dir
        self.tree_path = self.tooling_path / TREE_FILE
        self.layouts_path = self.tooling_path / LAYOUTS_DIR
        self.index_path = self.layouts_path / INDEX_FILE

    def _read_json(self, path: Path) -> Any | None:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable document %s: %s", path, exc)
            return None

    def _write_json(self, path: Path, payload: Any) -> None:
        try:
            write_text_atomic(path, json.dumps(payload, indent=2) + "\n")
        except OSError as exc:
            raise MetadataWriteError(f"Failed to write {path}: {exc}") from exc

    def _read_metadata(self, path: Path) -> TreeMetadata | None:
        raw = self._read_json(path)
        if raw is None:
            return None
        try:
            return TreeMetadata.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring corrupt metadata %s: %s", path, exc)
            return None

    def load(self) -> TreeMetadata | None:
        """Return the persisted tree metadata; absent or corrupt yields ``None``."""
        return self._read_metadata(self.tree_path)

    def save(self, metadata: TreeMetadata) -> None:
        self._write_json(self.tree_path, metadata.to_document())

    def layout_path(self, layout_id: str) -> Path:
        return self.layouts_path / f"{_check_layout_id(layout_id)}.json"

    def save_layout(self, layout_id: str, metadata: TreeMetadata) -> None:
        self._write_json(self.layout_path(layout_id), metadata.to_document())

    def load_layout(self, layout_id: str) -> TreeMetadata | None:
        return self._read_metadata(self.layout_path(layout_id))

    def delete_layout(self, layout_id: str) -> bool:
        return remove_file(self.layout_path(layout_id))

    def load_index(self) -> LayoutIndex | None:
        raw = self._read_json(self.index_path)
        if raw is None:
            return None
        try:
            return LayoutIndex.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring corrupt layout index %s: %s", self.index_path, exc)
            return None

    def save_index(self, index: LayoutIndex) -> None:
        self._write_json(self.index_path, index.model_dump(mode="json"))


def load_metadata(project_path: str | Path) -> TreeMetadata | None:
    return MetadataStore(project_path).load()


def save_metadata(project_path: str | Path, metadata: TreeMetadata) -> None:
    MetadataStore(project_path).save(metadata)
