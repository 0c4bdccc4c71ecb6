"""Debounced filesystem notifications for the configuration directory."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable

from watchdog.events import (  # type: ignore[import-not-found]
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer  # type: ignore[import-not-found]

from .paths import normalize_path

logger = logging.getLogger("auitree.watcher")

BatchCallback = Callable[[list[str]], None]
_CHANGE_EVENTS = {
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
}


class DebouncedBatcher:
    """Collect paths and deliver them once the stream has been quiet for ``window`` seconds.

    Paths are deduplicated and delivered in arrival order. After ``cancel()``
    returns no further batch is delivered.
    """

    def __init__(self, window: float, on_batch: BatchCallback) -> None:
        self.window = window
        self.on_batch = on_batch
        self._pending: dict[str, None] = {}
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._cancelled = False
        self._lock = threading.RLock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add(self, *paths: str) -> None:
        with self._lock:
            if self._cancelled:
                return
            for path in paths:
                self._pending[normalize_path(path)] = None
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = threading.Timer(
                self.window, self._fire, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer replaced while it was waiting for the lock must not deliver.
            if generation != self._generation:
                return
            self._deliver()

    def flush(self) -> None:
        """Deliver pending paths now instead of waiting for the timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._deliver()

    def _deliver(self) -> None:
        self._timer = None
        if self._cancelled or not self._pending:
            return
        batch = list(self._pending)
        self._pending.clear()
        try:
            self.on_batch(batch)
        except Exception:  # pragma: no cover - surfaced in the log
            logger.exception("File change handler failed for %d path(s)", len(batch))

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, batcher: DebouncedBatcher) -> None:
        super().__init__()
        self.batcher = batcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        self.batcher.add(*paths)


class FileWatcher:
    """Recursive watchdog observer on ``<root>/<config_dir>`` feeding a batcher."""

    def __init__(
        self,
        root: str | Path,
        on_batch: BatchCallback,
        debounce_ms: int = 300,
        config_dir: str = ".claude",
    ) -> None:
        self.watch_path = Path(root) / config_dir
        self.batcher = DebouncedBatcher(debounce_ms / 1000.0, on_batch)
        self._observer: Observer | None = None
        self._stopped = False

    def start(self) -> bool:
        if not self.watch_path.is_dir():
            logger.warning("Not watching %s: directory does not exist", self.watch_path)
            return False
        observer = Observer()
        try:
            observer.schedule(
                _ChangeHandler(self.batcher), str(self.watch_path), recursive=True
            )
            observer.daemon = True
            observer.start()
        except OSError as exc:
            logger.warning("Could not watch %s: %s", self.watch_path, exc)
            return False
        self._observer = observer
        logger.info("Watching %s", self.watch_path)
        return True

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self.batcher.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info("Stopped watching %s", self.watch_path)


def watch(
    root: str | Path,
    on_batch: BatchCallback,
    debounce_ms: int = 300,
    config_dir: str = ".claude",
) -> Callable[[], None]:
    """Start watching ``root`` and return a cancel function.

    When the observer cannot start the failure is logged and the returned
    function does nothing.
    """
    watcher = FileWatcher(root, on_batch, debounce_ms=debounce_ms, config_dir=config_dir)
    if not watcher.start():
        return lambda: None
    return watcher.stop
