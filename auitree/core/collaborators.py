"""Interfaces to the processes and services auitree hands work to."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Protocol, Sequence

from .errors import DeployError

logger = logging.getLogger("auitree.collaborators")

LINUX_TERMINALS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("x-terminal-emulator", ("-e",)),
    ("gnome-terminal", ("--",)),
    ("xterm", ("-e",)),
)


class ProcessSpawner(Protocol):
    def open_terminal(self, script_path: str | Path) -> None:
        """Start ``script_path`` in a new terminal; do not wait for it."""


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class TaskScheduler(Protocol):
    def register(self, cron: str, script_path: str | Path) -> None:
        ...


class TerminalSpawner:
    """Open a visible terminal window running a deploy script."""

    def __init__(self, platform: str | None = None) -> None:
        self.platform = platform or sys.platform

    def command_for(self, script_path: str | Path) -> list[str]:
        script = str(script_path)
        if self.platform.startswith("win"):
            return [
                "cmd.exe",
                "/c",
                "start",
                "Deploy",
                "powershell.exe",
                "-NoExit",
                "-ExecutionPolicy",
                "Bypass",
                "-File",
                script,
            ]
        if self.platform == "darwin":
            quoted = script.replace("'", "'\\''")
            apple_script = (
                'tell application "Terminal"\n'
                "  activate\n"
                f"  do script \"bash '{quoted}'\"\n"
                "end tell"
            )
            return ["osascript", "-e", apple_script]
        for terminal, args in LINUX_TERMINALS:
            if shutil.which(terminal):
                return [terminal, *args, script]
        raise DeployError("No terminal emulator found")

    def open_terminal(self, script_path: str | Path) -> None:
        command = self.command_for(script_path)
        self._spawn(command)
        logger.info("Launched %s", script_path)

    def _spawn(self, command: Sequence[str]) -> None:
        try:
            subprocess.Popen(list(command), start_new_session=True)  # noqa: S603
        except OSError as exc:
            raise DeployError(f"Failed to open terminal: {exc}") from exc
