"""Render the per-OS orchestration script for a deploy plan.

Both renderers produce a script that runs the CLI once per step, keeps
``status.json`` current and skips every later step after the first failure.
"""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass, field
from pathlib import Path, PureWindowsPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import EngineSettings
    from .deploy import DeployPlan

RULE = "=" * 64
PRIMER_INSTRUCTION = (
    "Read the deployment primer at '{path}' using the Read tool and follow ALL "
    "instructions in it exactly. Start immediately."
)


@dataclass(frozen=True)
class ScriptOptions:
    cli_command: str = "claude"
    cli_flags: list[str] = field(default_factory=lambda: ["--dangerously-skip-permissions"])
    nested_session_env: str = "CLAUDECODE"

    @classmethod
    def from_settings(cls, settings: "EngineSettings") -> "ScriptOptions":
        return cls(
            cli_command=settings.cli_command,
            cli_flags=list(settings.cli_flags),
            nested_session_env=settings.nested_session_env,
        )


def _banner_label(plan: "DeployPlan") -> str:
    return "PIPELINE" if plan.kind == "pipeline" else "TEAM"


def render_posix_script(plan: "DeployPlan", options: ScriptOptions) -> str:
    total = len(plan.steps)
    label = _banner_label(plan)
    q = shlex.quote
    teams = " ".join(q(json.dumps(step.team_name)) for step in plan.steps)
    pending = " ".join("pending" for _ in plan.steps)
    nulls = " ".join("null" for _ in plan.steps)
    command = " ".join(q(part) for part in [options.cli_command, *options.cli_flags])

    lines = [
        "#!/bin/bash",
        f"unset {options.nested_session_env}",
        "START_TIME=$(date +%s)",
        f"STATUS_FILE={q(str(plan.status_path))}",
        f"RUN_NAME={q(json.dumps(plan.name))}",
        f"RUN_STARTED={q(json.dumps(plan.started_at))}",
        f"STEP_TEAMS=({teams})",
        f"STEP_STATUS=({pending})",
        f"STEP_STARTED=({nulls})",
        f"STEP_COMPLETED=({nulls})",
        "",
        "now_iso() {",
        "  date -u +%Y-%m-%dT%H:%M:%SZ",
        "}",
        "",
        "write_status() {",
        '  local tmp="$STATUS_FILE.tmp"',
        "  local last=$(( ${#STEP_TEAMS[@]} - 1 ))",
        "  local i sep",
        "  {",
        "    printf '{\\n  \"pipeline\": %s,\\n  \"totalSteps\": %d,\\n  \"startedAt\": %s,\\n  \"steps\": [\\n' \\",
        '      "$RUN_NAME" "${#STEP_TEAMS[@]}" "$RUN_STARTED"',
        '    for i in "${!STEP_TEAMS[@]}"; do',
        "      sep=','",
        "      if [ \"$i\" -eq \"$last\" ]; then sep=''; fi",
        "      printf '    {\"step\": %d, \"team\": %s, \"status\": \"%s\", \"startedAt\": %s, \"completedAt\": %s}%s\\n' \\",
        '        $((i + 1)) "${STEP_TEAMS[$i]}" "${STEP_STATUS[$i]}" "${STEP_STARTED[$i]}" "${STEP_COMPLETED[$i]}" "$sep"',
        "    done",
        "    printf '  ]\\n}\\n'",
        '  } > "$tmp" && mv "$tmp" "$STATUS_FILE"',
        "}",
        "",
        "echo ''",
        f"echo '{RULE}'",
        f"echo {q(f'  {label}: {plan.name}')}",
        f'echo "  Steps: {total} | Started: $(date +%H:%M:%S)"',
        f"echo '{RULE}'",
        "echo ''",
        "",
        "FAILED=0",
    ]

    for offset, step in enumerate(plan.steps):
        instruction = PRIMER_INSTRUCTION.format(path=step.primer_path)
        lines += [
            "",
            f"# --- Step {step.index} ---",
            "if [ $FAILED -eq 0 ]; then",
            "  STEP_START=$(date +%s)",
            f'  echo "[$(date +%H:%M:%S)] Step {step.index}/{total}: "{q(step.team_name)}',
            '  echo "  Starting CLI session..."',
            f"  STEP_STATUS[{offset}]=running",
            f'  STEP_STARTED[{offset}]="\\"$(now_iso)\\""',
            "  write_status",
            f"  {command} {q(instruction)}",
            "  EXIT_CODE=$?",
            "  STEP_ELAPSED=$(( $(date +%s) - STEP_START ))",
            f'  STEP_COMPLETED[{offset}]="\\"$(now_iso)\\""',
            "  if [ $EXIT_CODE -ne 0 ]; then",
            f"    STEP_STATUS[{offset}]=failed",
            '    echo "  FAILED (exit code $EXIT_CODE) after $((STEP_ELAPSED/60))m $((STEP_ELAPSED%60))s"',
            "    FAILED=1",
            "  else",
            f"    STEP_STATUS[{offset}]=completed",
            '    echo "  Completed in $((STEP_ELAPSED/60))m $((STEP_ELAPSED%60))s"',
            "  fi",
            "  write_status",
            "  echo ''",
            "fi",
        ]

    lines += [
        "",
        "TOTAL_ELAPSED=$(( $(date +%s) - START_TIME ))",
        f"echo '{RULE}'",
        "if [ $FAILED -ne 0 ]; then",
        f"  echo '  {label} FAILED -- check output above'",
        "else",
        f"  echo '  {label} COMPLETE'",
        "fi",
        'echo "  Total time: $((TOTAL_ELAPSED/60))m $((TOTAL_ELAPSED%60))s"',
        f"echo '{RULE}'",
        "echo ''",
        "read -r -p 'Press Enter to close' _ || true",
        "exit $FAILED",
    ]
    return "\n".join(lines) + "\n"


def _ps_single(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _ps_double(value: str) -> str:
    escaped = value.replace("`", "``").replace("$", "`$").replace('"', '`"')
    return f'"{escaped}"'


def _windows_path(path: Path) -> str:
    return str(PureWindowsPath(str(path)))


def render_powershell_script(plan: "DeployPlan", options: ScriptOptions) -> str:
    total = len(plan.steps)
    label = _banner_label(plan)
    status_path = _ps_single(_windows_path(plan.status_path))
    command = " ".join(_ps_single(part) for part in [options.cli_command, *options.cli_flags])
    stamp = "(Get-Date).ToUniversalTime().ToString('yyyy-MM-ddTHH:mm:ssZ')"

    lines = [
        f"Remove-Item Env:{options.nested_session_env} -ErrorAction SilentlyContinue",
        "$ErrorActionPreference = 'Continue'",
        "$startTime = Get-Date",
        f"$statusPath = {status_path}",
        "",
        "function Set-StepStatus([int]$Index, [string]$State, [string]$Field) {",
        "  $status = Get-Content -Raw $statusPath | ConvertFrom-Json",
        "  $status.steps[$Index].status = $State",
        f"  $status.steps[$Index].$Field = {stamp}",
        "  $status | ConvertTo-Json -Depth 5 | Set-Content $statusPath -Encoding UTF8",
        "}",
        "",
        'Write-Host ""',
        f'Write-Host "{RULE}" -ForegroundColor Cyan',
        f"Write-Host {_ps_double(f'  {label}: {plan.name}')} -ForegroundColor Cyan",
        f"Write-Host \"  Steps: {total} | Started: $(Get-Date -Format 'HH:mm:ss')\" -ForegroundColor Yellow",
        f'Write-Host "{RULE}" -ForegroundColor Cyan',
        'Write-Host ""',
        "",
        "$failed = $false",
    ]

    for offset, step in enumerate(plan.steps):
        instruction = PRIMER_INSTRUCTION.format(path=_windows_path(step.primer_path))
        team = _ps_double(f"Step {step.index}/{total}: {step.team_name}")[1:-1]
        lines += [
            "",
            f"# --- Step {step.index} ---",
            "if (-not $failed) {",
            "  $stepStart = Get-Date",
            f"  Write-Host \"[$((Get-Date).ToString('HH:mm:ss'))] {team}\" -ForegroundColor Green",
            '  Write-Host "  Starting CLI session..." -ForegroundColor DarkGray',
            f"  Set-StepStatus {offset} 'running' 'startedAt'",
            f"  & {command} {_ps_single(instruction)}",
            "  $exitCode = $LASTEXITCODE",
            "  $elapsed = (Get-Date) - $stepStart",
            "  if ($exitCode -ne 0) {",
            f"    Set-StepStatus {offset} 'failed' 'completedAt'",
            "    Write-Host \"  FAILED (exit code $exitCode) after $($elapsed.ToString('hh\\:mm\\:ss'))\" -ForegroundColor Red",
            "    $failed = $true",
            "  } else {",
            f"    Set-StepStatus {offset} 'completed' 'completedAt'",
            "    Write-Host \"  Completed in $($elapsed.ToString('hh\\:mm\\:ss'))\" -ForegroundColor Green",
            "  }",
            '  Write-Host ""',
            "}",
        ]

    lines += [
        "",
        "$totalElapsed = (Get-Date) - $startTime",
        f'Write-Host "{RULE}" -ForegroundColor Cyan',
        "if ($failed) {",
        f'  Write-Host "  {label} FAILED -- check output above" -ForegroundColor Red',
        "} else {",
        f'  Write-Host "  {label} COMPLETE" -ForegroundColor Green',
        "}",
        "Write-Host \"  Total time: $($totalElapsed.ToString('hh\\:mm\\:ss'))\" -ForegroundColor Yellow",
        f'Write-Host "{RULE}" -ForegroundColor Cyan',
        'Write-Host ""',
        'Read-Host "Press Enter to close"',
        "if ($failed) { exit 1 }",
    ]
    return "\r\n".join(lines) + "\r\n"
