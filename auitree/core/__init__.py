"""auitree core package - tree engine, metadata and deploy compiler."""

from .config import EngineSettings, ProjectPaths, load_settings
from .deploy import DeployArtifacts, DeployCompiler, DeployPlan
from .engine import APP_VERSION, Clipboard, TreeEngine
from .errors import (
    CloneError,
    DeployError,
    ImportFormatError,
    LayoutError,
    MetadataWriteError,
    NodeConflictError,
    NodeNotFoundError,
    NodeParseError,
    ProjectLoadError,
    TreeError,
)
from .metadata import MetadataStore, TreeMetadata
from .node import ROOT_ID, Node, NodeKind, NodeVariable, PipelineStep
from .status import DeployStatus, load_status

__all__ = [
    "APP_VERSION",
    "Clipboard",
    "CloneError",
    "DeployArtifacts",
    "DeployCompiler",
    "DeployError",
    "DeployPlan",
    "DeployStatus",
    "EngineSettings",
    "ImportFormatError",
    "LayoutError",
    "MetadataStore",
    "MetadataWriteError",
    "Node",
    "NodeConflictError",
    "NodeKind",
    "NodeNotFoundError",
    "NodeParseError",
    "NodeVariable",
    "PipelineStep",
    "ProjectLoadError",
    "ProjectPaths",
    "ROOT_ID",
    "TreeEngine",
    "TreeError",
    "TreeMetadata",
    "load_settings",
    "load_status",
]
