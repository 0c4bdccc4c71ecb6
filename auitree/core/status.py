"""The ``status.json`` document a deploy script updates as it runs."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .errors import DeployError
from .fileio import write_text_atomic
from .schema import STATUS_SCHEMA, SchemaValidator

StepState = Literal["pending", "running", "completed", "failed"]


def iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StepStatus(BaseModel):
    step: int
    team: str
    status: StepState = "pending"
    startedAt: str | None = None
    completedAt: str | None = None

    model_config = ConfigDict(extra="allow")


class DeployStatus(BaseModel):
    pipeline: str
    totalSteps: int
    startedAt: str
    steps: list[StepStatus]

    model_config = ConfigDict(extra="allow")

    @property
    def failed(self) -> bool:
        return any(step.status == "failed" for step in self.steps)

    @property
    def interrupted(self) -> bool:
        """A step still ``running`` on read means its terminal was closed mid-step."""
        return not self.failed and any(step.status == "running" for step in self.steps)

    @property
    def finished(self) -> bool:
        return (
            self.failed
            or self.interrupted
            or all(step.status == "completed" for step in self.steps)
        )


def initial_status(name: str, teams: list[str], started_at: str | None = None) -> DeployStatus:
    """Every step ``pending`` with no timestamps."""
    return DeployStatus(
        pipeline=name,
        totalSteps=len(teams),
        startedAt=started_at or iso_now(),
        steps=[StepStatus(step=idx, team=team) for idx, team in enumerate(teams, start=1)],
    )


def write_status(path: str | Path, status: DeployStatus) -> Path:
    return write_text_atomic(path, json.dumps(status.model_dump(mode="json"), indent=2) + "\n")


def load_status(path: str | Path) -> DeployStatus:
    """Read and validate a status document.

    PowerShell writes UTF-8 with a byte order mark; it is accepted.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as exc:
        raise DeployError(f"Cannot read deploy status {path}: {exc}") from exc
    SchemaValidator(STATUS_SCHEMA, DeployError, "status").validate(raw)
    return DeployStatus.model_validate(raw)


def last_attempted(status: DeployStatus) -> StepStatus | None:
    """The last step that left ``pending``, if any."""
    attempted = [step for step in status.steps if step.status != "pending"]
    return attempted[-1] if attempted else None


def abandoned_steps(status: DeployStatus) -> list[StepStatus]:
    """Steps that will never complete.

    After a failure these are the pending steps behind it. A step left
    ``running`` is abandoned together with every pending step after it.
    """
    for idx, step in enumerate(status.steps):
        if step.status == "failed":
            return [later for later in status.steps[idx + 1:] if later.status == "pending"]
    for idx, step in enumerate(status.steps):
        if step.status == "running":
            return [step] + [later for later in status.steps[idx + 1:] if later.status == "pending"]
    return []
