"""Compile a team or pipeline into briefings, a status document and a run script."""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from .clone import children
from .config import EngineSettings, ProjectPaths
from .errors import DeployError
from .fileio import write_text_atomic
from .node import ROOT_ID, Node, NodeKind, NodeVariable, config_to_dict
from .parsers import SKILL_FILE
from .scripts import ScriptOptions, render_posix_script, render_powershell_script
from .skillgen import agent_slug, manager_slug, node_slug, skill_names
from .status import (
    abandoned_steps,
    initial_status,
    iso_now,
    last_attempted,
    load_status,
    write_status,
)

logger = logging.getLogger("auitree.deploy")

DEFAULT_OBJECTIVE = "Complete the tasks assigned to this team."
STATUS_FILE = "status.json"
SCRIPT_FILES = {"posix": "deploy.sh", "windows": "deploy.ps1"}


@dataclass
class MemberContext:
    node: Node
    slug: str
    role: str
    variables: list[NodeVariable]
    skill_names: list[str]
    config: dict[str, Any] | None
    skill_file: str


@dataclass
class TeamContext:
    """Everything a briefing needs to know about one team."""

    owner_name: str
    owner_description: str
    global_skills: list[str]
    global_variables: list[NodeVariable]
    sibling_teams: list[str]
    team: Node
    team_slug: str
    team_skills: list[str]
    team_variables: list[NodeVariable]
    manager_skill: str
    members: list[MemberContext] = field(default_factory=list)


@dataclass
class DeployStep:
    index: int
    team_id: str
    team_name: str
    team_slug: str
    objective: str
    primer_path: Path
    output_path: Path


@dataclass
class DeployPlan:
    """Ordered steps shared by the briefing and script renderers."""

    name: str
    kind: Literal["pipeline", "team"]
    directory: Path
    steps: list[DeployStep]
    variables: list[NodeVariable] = field(default_factory=list)
    started_at: str = field(default_factory=iso_now)

    @property
    def status_path(self) -> Path:
        return self.directory / STATUS_FILE

    def script_path(self, platform: str) -> Path:
        return self.directory / SCRIPT_FILES[platform]


@dataclass
class DeployArtifacts:
    plan: DeployPlan
    primers: list[Path]
    status_path: Path
    script_path: Path


def _named(variables: list[NodeVariable]) -> list[NodeVariable]:
    return [var for var in variables if var.name.strip()]


def _read_skill(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except OSError as exc:
        logger.warning("Could not read skill file %s: %s", path, exc)
        return ""


class DeployCompiler:
    def __init__(
        self,
        nodes: Mapping[str, Node],
        skill_names: Mapping[str, str],
        paths: ProjectPaths,
        settings: EngineSettings | None = None,
    ) -> None:
        self.nodes = nodes
        self.skill_name_cache = skill_names
        self.paths = paths
        self.settings = settings or EngineSettings()

    def resolve_skill_name(self, skill_id: str) -> str | None:
        node = self.nodes.get(skill_id)
        if node is not None and node.name:
            return node.name
        return self.skill_name_cache.get(skill_id)

    def _require(self, node_id: str, kind: NodeKind) -> Node:
        node = self.nodes.get(node_id)
        if node is None or node.kind is not kind:
            raise DeployError(f"{node_id} is not a {kind.value} node")
        return node

    def team_context(self, team_id: str) -> TeamContext:
        team = self._require(team_id, NodeKind.GROUP)
        root = self.nodes.get(ROOT_ID)
        team_slug = node_slug(team)
        skills_dir = self.paths.skills_path
        members = [
            MemberContext(
                node=member,
                slug=node_slug(member),
                role=member.description.strip(),
                variables=_named(member.variables),
                skill_names=skill_names(member, self.resolve_skill_name),
                config=config_to_dict(member.config),
                skill_file=_read_skill(skills_dir / agent_slug(team, member) / SKILL_FILE),
            )
            for member in children(self.nodes, team_id)
        ]
        return TeamContext(
            owner_name=root.name if root else "Unknown",
            owner_description=root.description.strip() if root else "",
            global_skills=skill_names(root, self.resolve_skill_name) if root else [],
            global_variables=_named(root.variables) if root else [],
            sibling_teams=[
                node.name
                for node in self.nodes.values()
                if node.kind is NodeKind.GROUP
                and node.parent_id == ROOT_ID
                and node.id != team_id
            ],
            team=team,
            team_slug=team_slug,
            team_skills=skill_names(team, self.resolve_skill_name),
            team_variables=_named(team.variables),
            manager_skill=_read_skill(skills_dir / manager_slug(team) / SKILL_FILE),
            members=members,
        )

    def _step(self, directory: Path, index: int, team: Node, objective: str) -> DeployStep:
        return DeployStep(
            index=index,
            team_id=team.id,
            team_name=team.name,
            team_slug=node_slug(team),
            objective=objective.strip() or DEFAULT_OBJECTIVE,
            primer_path=directory / f"step-{index}-primer.md",
            output_path=directory / f"step-{index}-output.md",
        )

    def plan_pipeline(self, pipeline_id: str) -> DeployPlan:
        pipeline = self._require(pipeline_id, NodeKind.PIPELINE)
        if not pipeline.pipeline_steps:
            raise DeployError(f'Pipeline "{pipeline.name}" has no steps')
        directory = self.paths.tooling_path / f"pipeline-{node_slug(pipeline)}"
        steps: list[DeployStep] = []
        for step in pipeline.pipeline_steps:
            team = self.nodes.get(step.teamId)
            if team is None or team.kind is not NodeKind.GROUP:
                logger.warning(
                    "Skipping step %s of %s: team %s no longer exists",
                    step.id,
                    pipeline.name,
                    step.teamId,
                )
                continue
            steps.append(self._step(directory, len(steps) + 1, team, step.prompt))
        if not steps:
            raise DeployError(f'Pipeline "{pipeline.name}" has no runnable steps')
        return DeployPlan(
            name=pipeline.name,
            kind="pipeline",
            directory=directory,
            steps=steps,
            variables=_named(pipeline.variables),
        )

    def plan_team(self, team_id: str, objective: str = "") -> DeployPlan:
        team = self._require(team_id, NodeKind.GROUP)
        directory = self.paths.tooling_path / f"team-{node_slug(team)}"
        step = self._step(directory, 1, team, objective or team.launch_prompt)
        return DeployPlan(name=team.name, kind="team", directory=directory, steps=[step])

    def render_briefing(self, plan: DeployPlan, index: int) -> str:
        """Briefing for step ``index`` (1-based) of ``plan``."""
        step = plan.steps[index - 1]
        ctx = self.team_context(step.team_id)
        total = len(plan.steps)
        out: list[str] = [f'You are being deployed as the senior team manager for "{step.team_name}".']
        if plan.kind == "pipeline":
            out.append(f'This is step {index} of {total} in pipeline "{plan.name}".')

        out += ["", "## Company / Organization Context", f"- **Owner:** {ctx.owner_name}"]
        if ctx.owner_description:
            out.append(f"- **Description:** {ctx.owner_description}")
        if ctx.global_skills:
            out.append(f"- **Global Skills:** {', '.join(ctx.global_skills)}")
        if ctx.sibling_teams:
            out.append(f"- **Other Teams:** {', '.join(ctx.sibling_teams)}")
        if ctx.global_variables:
            out += ["", "### Global Variables", *(var.to_summary() for var in ctx.global_variables)]
        if plan.variables:
            title = "Pipeline Variables" if plan.kind == "pipeline" else "Variables"
            out += ["", f"### {title}", *(var.to_summary() for var in plan.variables)]

        if index > 1:
            out += ["", "## Previous Steps (completed before you)"]
            out += [
                f"  {prev.index}. **{prev.team_name}**: {prev.objective}"
                for prev in plan.steps[: index - 1]
            ]
            out += [
                "",
                "**IMPORTANT:** The previous step wrote a handoff summary. Read it now:",
                f"`{plan.steps[index - 2].output_path}`",
                "Use the Read tool to read this file and carry its context, decisions "
                "and outputs into your work.",
            ]

        out += ["", f"## Team: {step.team_name}", ctx.team.description.strip() or "(no description)"]
        if ctx.team_skills:
            out += ["", "### Team Skills", *(f"- /{name}" for name in ctx.team_skills)]
        if ctx.team_variables:
            out += ["", "### Team Variables", *(var.to_summary() for var in ctx.team_variables)]

        out += ["", "## Your Manager Skill File"]
        if ctx.manager_skill:
            out += [f'<skill-file name="{manager_slug(ctx.team)}">', ctx.manager_skill, "</skill-file>"]
        else:
            out.append("(no manager skill file found)")

        out += ["", f"## Team Roster ({len(ctx.members)} agents)"]
        for member in ctx.members:
            out += ["", f'### Agent: {member.node.name} (slug: "{member.slug}")']
            if member.role:
                out.append(f"Role: {member.role}")
            if member.skill_names:
                out.append(f"Skills: {', '.join(member.skill_names)}")
            if member.variables:
                out.append("Variables:")
                out += [f"  {var.to_summary()}" for var in member.variables]
            if member.skill_file:
                name = agent_slug(ctx.team, member.node)
                out += ["", f'<skill-file name="{name}">', member.skill_file, "</skill-file>"]

        out += ["", "## OBJECTIVE", step.objective]
        if index < total:
            out += ["", "## Next Steps (will run after you)"]
            out += [
                f"  {nxt.index}. **{nxt.team_name}**: {nxt.objective}"
                for nxt in plan.steps[index:]
            ]

        out += [
            "",
            "## DEPLOYMENT INSTRUCTIONS",
            "You MUST follow these steps exactly:",
            "",
            f"1. **Create the team**: use `TeamCreate` with team name `{step.team_slug}`",
            "2. **Spawn each agent**: for each agent listed above, use the `Task` tool with:",
            f'   - `team_name: "{step.team_slug}"`',
            '   - `subagent_type: "general-purpose"`',
            '   - `name: "<agent-slug>"` (slugs listed above per agent)',
            "   - their FULL skill file content in the prompt",
            "3. **Create and assign tasks**: use `TaskCreate` to break the objective into "
            "tasks, then `TaskUpdate` with `owner` to assign them",
            "4. **Coordinate**: monitor progress via `TaskList` and resolve conflicts",
            "5. **Shut down**: once the handoff is written, shut down the team",
        ]
        if ctx.team_skills or ctx.global_skills:
            out += ["", "## SKILLS", "Skills listed above can be invoked using the `Skill` tool."]
        out += [
            "",
            "When all tasks are done, write the handoff file at "
            f"{step.output_path} with what was accomplished, the key files created or "
            "modified, important decisions and anything the next team needs to know.",
        ]
        return "\n".join(out) + "\n"

    def _check_previous_run(self, plan: DeployPlan) -> None:
        if not plan.status_path.exists():
            return
        try:
            previous = load_status(plan.status_path)
        except DeployError as exc:
            logger.debug("Ignoring previous status of %s: %s", plan.name, exc)
            return
        if previous.interrupted:
            latest = last_attempted(previous)
            logger.warning(
                "Previous run of %s was interrupted at step %s; abandoning %d step(s)",
                plan.name,
                latest.step if latest else "?",
                len(abandoned_steps(previous)),
            )

    def compile(self, plan: DeployPlan, platform: str | None = None) -> DeployArtifacts:
        """Write briefings, the initial status document and the run script."""
        target = platform or self.settings.resolved_platform()
        if target not in SCRIPT_FILES:
            raise DeployError(f"Unsupported platform: {target}")
        options = ScriptOptions.from_settings(self.settings)
        self._check_previous_run(plan)
        try:
            plan.directory.mkdir(parents=True, exist_ok=True)
            primers = []
            for step in plan.steps:
                write_text_atomic(step.primer_path, self.render_briefing(plan, step.index))
                primers.append(step.primer_path)
            status = initial_status(
                plan.name, [step.team_name for step in plan.steps], plan.started_at
            )
            write_status(plan.status_path, status)
            script_path = plan.script_path(target)
            if target == "windows":
                script = "\ufeff" + render_powershell_script(plan, options)
                write_text_atomic(script_path, script, newline="")
            else:
                write_text_atomic(script_path, render_posix_script(plan, options), newline="")
                mode = os.stat(script_path).st_mode
                os.chmod(script_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as exc:
            raise DeployError(f"Failed to write deploy artifacts for {plan.name}: {exc}") from exc
        logger.info("Compiled %s %s (%d step(s)) into %s", plan.kind, plan.name, len(plan.steps), plan.directory)
        return DeployArtifacts(
            plan=plan,
            primers=primers,
            status_path=plan.status_path,
            script_path=script_path,
        )
