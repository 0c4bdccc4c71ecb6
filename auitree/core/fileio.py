"""Small filesystem helpers with the write/remove semantics the engine relies on."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger("auitree.fileio")


def write_text_atomic(path: str | Path, text: str, *, newline: str | None = None) -> Path:
    """Write ``text`` next to ``path`` and move it into place.

    A crash mid-write leaves the previous document untouched.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(target.name + ".tmp")
    try:
        with tmp_path.open("w", encoding="utf-8", newline=newline) as handle:
            handle.write(text)
        tmp_path.replace(target)
    except (OSError, ValueError):
        tmp_path.unlink(missing_ok=True)
        raise
    return target


def remove_file(path: str | Path) -> bool:
    """Delete a file; a file that is already gone is not an error."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        logger.warning("Could not delete %s: %s", path, exc)
        return False
    return True


def remove_dir_if_empty(path: str | Path) -> bool:
    try:
        os.rmdir(path)
    except OSError:
        return False
    return True
