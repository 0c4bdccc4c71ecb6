"""Path and identifier helpers shared by the scanner, parsers and engine."""

from __future__ import annotations

import re
import secrets
import string
import time
from pathlib import Path

_BASE36 = string.digits + string.ascii_lowercase
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_WORD_PATTERN = re.compile(r"\b\w")


def normalize_path(path: str | Path) -> str:
    """Return ``path`` as a string with forward slashes only."""
    return str(path).replace("\\", "/")


def join_path(*parts: str | Path) -> str:
    joined = "/".join(normalize_path(part) for part in parts)
    return re.sub(r"/+", "/", joined)


def file_stem(path: str | Path) -> str:
    """Return the file name without its final extension.

    Dot-files keep their leading dot (``.env`` stays ``.env``).
    """
    base = normalize_path(path).rsplit("/", 1)[-1]
    dot = base.rfind(".")
    return base[:dot] if dot > 0 else base


def parent_dir(path: str | Path) -> str:
    normalized = normalize_path(path)
    if "/" not in normalized:
        return ""
    return normalized.rsplit("/", 1)[0]


def title_case(value: str) -> str:
    """Humanise a slug: ``code-reviewer`` -> ``Code Reviewer``."""
    spaced = re.sub(r"[-_]+", " ", value)
    return _WORD_PATTERN.sub(lambda match: match.group(0).upper(), spaced)


def slugify(value: str) -> str:
    return _SLUG_PATTERN.sub("-", value.lower()).strip("-")


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_node_id(file_path: str | Path) -> str:
    """Deterministic short id for a file-backed node.

    djb2 over the UTF-16 code units of the normalised path, truncated to 32
    bits and rendered in base 36. The same path always yields the same id.
    """
    normalized = normalize_path(file_path)
    encoded = normalized.encode("utf-16-le")
    value = 5381
    for idx in range(0, len(encoded), 2):
        unit = encoded[idx] | (encoded[idx + 1] << 8)
        value = ((value << 5) + value + unit) & 0xFFFFFFFF
    return to_base36(value)


def random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_virtual_id(prefix: str) -> str:
    """Unique id for nodes that have no file, e.g. ``group-1718000000000-k3x9qa``."""
    return f"{prefix}-{now_ms()}-{random_token()}"
