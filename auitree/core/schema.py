"""JSON Schema validation for the documents auitree reads back."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from jsonschema import Draft202012Validator  # type: ignore[import-not-found]

from .errors import TreeError

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
SCHEMA_DIR = PACKAGE_ROOT / "schemas"
STATUS_SCHEMA = SCHEMA_DIR / "deploy-status.schema.json"
EXPORT_SCHEMA = SCHEMA_DIR / "tree-export.schema.json"


class SchemaValidator:
    """Validate payloads against a schema shipped with the package."""

    def __init__(
        self,
        schema_path: Path,
        error_cls: type[TreeError] = TreeError,
        label: str = "document",
    ) -> None:
        self.schema_path = schema_path
        self.error_cls = error_cls
        self.label = label
        self.validator = self._build_validator()

    def _build_validator(self) -> Draft202012Validator:
        if not self.schema_path.exists():
            raise self.error_cls(f"Schema missing at {self.schema_path}.")
        schema = json.loads(self.schema_path.read_text(encoding="utf-8"))
        return Draft202012Validator(schema)

    def iter_error_messages(self, payload: Any) -> Iterable[str]:
        for error in self.validator.iter_errors(payload):
            path = ".".join(str(idx) for idx in error.path) or self.label
            yield f"{path}: {error.message}"

    def validate(self, payload: Any) -> None:
        errors = list(self.iter_error_messages(payload))
        if errors:
            raise self.error_cls("\n".join(errors))
