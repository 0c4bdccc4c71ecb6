"""Node data structures for the agent tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict

from .paths import now_ms

ROOT_ID = "root"


class NodeKind(str, Enum):
    HUMAN = "human"
    AGENT = "agent"
    SKILL = "skill"
    SETTINGS = "settings"
    CONTEXT = "context"
    GROUP = "group"
    PIPELINE = "pipeline"

    @property
    def is_virtual(self) -> bool:
        return self in {NodeKind.GROUP, NodeKind.PIPELINE}

    @property
    def is_file_backed(self) -> bool:
        return self in {
            NodeKind.AGENT,
            NodeKind.SKILL,
            NodeKind.SETTINGS,
            NodeKind.CONTEXT,
        }


VariableType = Literal["text", "api-key", "password", "note"]


class NodeVariable(BaseModel):
    name: str
    value: str = ""
    type: VariableType = "text"

    def to_summary(self) -> str:
        return f"[{self.type}] {self.name}: {self.value or '(not set)'}"


class PipelineStep(BaseModel):
    id: str
    teamId: str
    prompt: str = ""


class AgentConfig(BaseModel):
    """Front matter of an agent document."""

    name: str
    description: str | None = None
    model: str | None = None
    tools: list[str] | None = None
    disallowedTools: list[str] | None = None
    permissionMode: (
        Literal["default", "acceptEdits", "bypassPermissions", "plan", "dontAsk"]
        | None
    ) = None
    maxTurns: int | None = None
    skills: list[str] | None = None
    color: str | None = None
    hooks: dict[str, Any] | None = None
    allowedCommands: list[str] | None = None

    model_config = ConfigDict(extra="allow")


class SkillConfig(BaseModel):
    """Front matter of a ``SKILL.md`` document."""

    name: str
    description: str | None = None
    version: str | None = None
    license: str | None = None

    model_config = ConfigDict(extra="allow")


class SettingsPermissions(BaseModel):
    allow: list[str] | None = None
    deny: list[str] | None = None

    model_config = ConfigDict(extra="allow")


class SettingsConfig(BaseModel):
    """Content of a ``settings*.json`` document."""

    permissions: SettingsPermissions | None = None
    defaultMode: str | None = None
    env: dict[str, str] | None = None
    hooks: dict[str, Any] | None = None
    model: str | None = None
    allowedTools: list[str] | None = None

    model_config = ConfigDict(extra="allow")


NodeConfig = Union[AgentConfig, SkillConfig, SettingsConfig]

CONFIG_MODELS: dict[NodeKind, type[BaseModel]] = {
    NodeKind.AGENT: AgentConfig,
    NodeKind.SKILL: SkillConfig,
    NodeKind.SETTINGS: SettingsConfig,
}


def config_to_dict(config: BaseModel | None) -> dict[str, Any] | None:
    if config is None:
        return None
    return config.model_dump(exclude_none=True)


def config_from_dict(kind: NodeKind, data: Mapping[str, Any] | None) -> NodeConfig | None:
    """Rebuild a config without validation; unknown keys are kept as extras."""
    model = CONFIG_MODELS.get(kind)
    if model is None or data is None:
        return None
    return model.model_construct(**dict(data))  # type: ignore[return-value]


def _default_list() -> list[Any]:
    return []


@dataclass
class Node:
    """One entry in the hierarchy. Parent links form a forest under ``root``."""

    id: str
    name: str
    kind: NodeKind
    parent_id: str | None = None
    team: str | None = None
    source_path: str = ""
    config: NodeConfig | None = None
    prompt_body: str = ""
    tags: list[str] = field(default_factory=_default_list)
    last_modified: int = field(default_factory=now_ms)
    validation_errors: list[str] = field(default_factory=_default_list)
    assigned_skills: list[str] = field(default_factory=_default_list)
    variables: list[NodeVariable] = field(default_factory=_default_list)
    launch_prompt: str = ""
    pipeline_steps: list[PipelineStep] = field(default_factory=_default_list)

    @property
    def description(self) -> str:
        """Free text shown as the node's description.

        Virtual nodes and the root keep it in ``prompt_body``; file-backed
        nodes prefer the front matter ``description`` when present.
        """
        if self.config is not None:
            value = getattr(self.config, "description", None)
            if value:
                return str(value)
        return self.prompt_body

    def to_dict(self) -> dict[str, Any]:
        """Serialise using the camelCase keys of the export document."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "parentId": self.parent_id,
            "team": self.team,
            "sourcePath": self.source_path,
            "config": config_to_dict(self.config),
            "promptBody": self.prompt_body,
            "tags": list(self.tags),
            "lastModified": self.last_modified,
            "validationErrors": list(self.validation_errors),
            "assignedSkills": list(self.assigned_skills),
            "variables": [var.model_dump() for var in self.variables],
            "launchPrompt": self.launch_prompt,
            "pipelineSteps": [step.model_dump() for step in self.pipeline_steps],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        kind = NodeKind(data["kind"])
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            kind=kind,
            parent_id=data.get("parentId"),
            team=data.get("team"),
            source_path=str(data.get("sourcePath") or ""),
            config=config_from_dict(kind, data.get("config")),
            prompt_body=str(data.get("promptBody") or ""),
            tags=list(data.get("tags") or []),
            last_modified=int(data.get("lastModified") or now_ms()),
            validation_errors=list(data.get("validationErrors") or []),
            assigned_skills=list(data.get("assignedSkills") or []),
            variables=[
                NodeVariable.model_validate(var) for var in data.get("variables") or []
            ],
            launch_prompt=str(data.get("launchPrompt") or ""),
            pipeline_steps=[
                PipelineStep.model_validate(step)
                for step in data.get("pipelineSteps") or []
            ],
        )


def create_root_node(owner_name: str, description: str = "") -> Node:
    return Node(
        id=ROOT_ID,
        name=owner_name,
        kind=NodeKind.HUMAN,
        prompt_body=description,
    )
