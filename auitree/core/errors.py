"""Exception taxonomy for the tree engine and deploy compiler."""

from __future__ import annotations


class TreeError(RuntimeError):
    """Base class for user-visible failures raised by auitree."""


class ProjectLoadError(TreeError):
    """Raised when a project cannot be loaded at all; prior state is kept."""


class NodeParseError(TreeError):
    """Raised when an agent or skill document cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class NodeNotFoundError(TreeError, KeyError):
    """Raised when an operation references an unknown node id."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Unknown node: {node_id}")
        self.node_id = node_id

    def __str__(self) -> str:
        return self.args[0]


class NodeConflictError(TreeError):
    """Raised when a node would overwrite an existing file or id."""


class MetadataWriteError(TreeError):
    """Raised when the metadata document or a layout file cannot be written."""


class LayoutError(TreeError):
    """Raised for invalid layout operations (unknown id, deleting the active one)."""


class CloneError(TreeError):
    """Raised when a clone cannot materialise one of its files."""


class DeployError(TreeError):
    """Raised when deploy artifacts cannot be compiled for a team or pipeline."""


class ImportFormatError(TreeError):
    """Raised when an export document is malformed or has an unsupported version."""
