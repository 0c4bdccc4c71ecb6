"""auitree package root exposing the tree engine."""

from .core import (  # isort: skip
    Node,
    NodeKind,
    TreeEngine,
    TreeError,
)

__version__ = "0.1.0"

__all__ = [
    "Node",
    "NodeKind",
    "TreeEngine",
    "TreeError",
    "__version__",
]
