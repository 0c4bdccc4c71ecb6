"""Tests for debounced change delivery."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from conftest import write

from auitree.core import TreeEngine
from auitree.core.paths import generate_node_id
from auitree.core.watcher import DebouncedBatcher, FileWatcher, watch


class _Collector:
    def __init__(self) -> None:
        self.batches: list[list[str]] = []
        self.event = threading.Event()

    def __call__(self, batch: list[str]) -> None:
        self.batches.append(batch)
        self.event.set()


def test_batcher_coalesces_and_deduplicates() -> None:
    collector = _Collector()
    batcher = DebouncedBatcher(0.05, collector)
    batcher.add("/p/a.md")
    batcher.add("/p/b.md", "/p/a.md")
    batcher.add("C:\\p\\c.md")
    assert collector.event.wait(2.0)
    time.sleep(0.1)
    assert collector.batches == [["/p/a.md", "/p/b.md", "C:/p/c.md"]]


def test_batcher_cancel_drops_pending_paths() -> None:
    collector = _Collector()
    batcher = DebouncedBatcher(0.05, collector)
    batcher.add("/p/a.md")
    batcher.cancel()
    batcher.add("/p/b.md")
    time.sleep(0.2)
    assert collector.batches == []
    assert batcher.cancelled


def test_batcher_flush_delivers_immediately() -> None:
    collector = _Collector()
    batcher = DebouncedBatcher(60.0, collector)
    batcher.add("/p/a.md")
    batcher.flush()
    assert collector.batches == [["/p/a.md"]]
    batcher.flush()
    assert len(collector.batches) == 1


def test_two_edits_in_one_window_reparse_once(engine: TreeEngine, project: Path) -> None:
    path = project / ".claude/agents/reviewer.md"
    synced: list[list[str]] = []

    def apply(batch: list[str]) -> None:
        synced.append(engine.sync_from_disk(batch))

    batcher = DebouncedBatcher(0.1, apply)
    path.write_text("---\nname: First Edit\n---\n", encoding="utf-8")
    batcher.add(str(path))
    path.write_text("---\nname: Second Edit\n---\n", encoding="utf-8")
    batcher.add(str(path))
    batcher.flush()

    assert synced == [[generate_node_id(path)]]
    assert engine.get_node(generate_node_id(path)).name == "Second Edit"


def test_watcher_without_config_dir_is_inert(tmp_path: Path) -> None:
    watcher = FileWatcher(tmp_path, _Collector())
    assert watcher.start() is False
    watcher.stop()
    cancel = watch(tmp_path, _Collector())
    cancel()


def test_engine_picks_up_new_files(engine: TreeEngine, project: Path) -> None:
    changed = _Collector()
    cancel = engine.start_watching(changed)
    try:
        path = write(project / ".claude/agents/watched.md", "---\nname: Watched\n---\n")
        deadline = time.monotonic() + 10
        while generate_node_id(path) not in engine.nodes and time.monotonic() < deadline:
            time.sleep(0.05)
    finally:
        cancel()
    assert engine.get_node(generate_node_id(path)).name == "Watched"
    assert changed.event.is_set()
