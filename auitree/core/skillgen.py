"""Skill documents derived from a team: manager, per-agent and whole-team exports."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping

from .clone import children
from .fileio import write_text_atomic
from .node import Node, NodeKind, NodeVariable
from .parsers import SKILL_FILE, render_front_matter
from .paths import normalize_path, slugify

logger = logging.getLogger("auitree.skillgen")

SkillResolver = Callable[[str], "str | None"]


def skill_names(node: Node, resolve: SkillResolver) -> list[str]:
    """Display names of ``node``'s assigned skills; unresolvable ids are dropped."""
    names = (resolve(skill_id) for skill_id in node.assigned_skills)
    return [name for name in names if name]


def node_slug(node: Node) -> str:
    """Slug of a node's name; names with no slug characters fall back to the id."""
    return slugify(node.name) or node.id


def manager_slug(team: Node) -> str:
    return f"{node_slug(team)}-manager"


def agent_slug(team: Node, agent: Node) -> str:
    return f"{node_slug(team)}-{node_slug(agent)}"


def _variable_lines(variables: list[NodeVariable], missing: str) -> list[str]:
    return [
        f"- [{var.type}] **{var.name}**: {var.value or missing}"
        for var in variables
        if var.name.strip()
    ]


def _sentence(text: str) -> str:
    text = text.strip()
    return text[:-1] if text.endswith(".") else text


def render_manager_skill(team: Node, agents: list[Node], resolve: SkillResolver) -> str:
    description = team.description.strip()
    count = len(agents)
    summary = (
        f"Senior manager for the {team.name} team ({count} agents)."
        + (f" {description}" if description else "")
        + f" Use this skill when leading or coordinating the {team.name} team."
    )
    focus = f" focused on {_sentence(description)}" if description else ""
    lines = [
        f"This skill guides senior management of the {team.name} team, a group of "
        f"{count} specialist agents{focus}. Turn high-level objectives into "
        "coordinated workstreams and deliver a cohesive result.",
        "",
        "## Coordination Strategy",
        "",
        "- **Decompose**: split the objective into well-scoped tasks with clear acceptance criteria.",
        "- **Parallelize**: run independent tasks concurrently; order dependent ones so blockers clear early.",
        "- **Match**: assign each task to the agent whose expertise fits it best.",
        "",
        "Write task descriptions an agent can execute without follow-up questions.",
        "",
    ]
    if agents:
        lines += ["## Your Team", ""]
        for agent in agents:
            model = getattr(agent.config, "model", None)
            skills = skill_names(agent, resolve)
            note = f" | Skills: {', '.join(f'`/{s}`' for s in skills)}" if skills else ""
            model_note = f" ({model})" if model else ""
            role = agent.description.strip() or "Team member"
            lines.append(f"- **{agent.name}**{model_note}: {role}{note}")
        lines.append("")
    team_skills = skill_names(team, resolve)
    if team_skills:
        lines += ["## Team Skills", ""]
        lines += [f"- `/{name}`" for name in team_skills]
        lines.append("")
    variables = _variable_lines(team.variables, "(to be provided at runtime)")
    if variables:
        lines += ["## Team Configuration", "", *variables, ""]
    roster = ", ".join(agent.name for agent in agents) or "your team members"
    lines += [
        "## Quality Standards",
        "",
        "A task is complete only when the output is correct, complete and consistent with "
        "the rest of the team's work. Send work back with specific, actionable feedback.",
        "",
        "## Communication Protocol",
        "",
        "- Use `TaskCreate` to define tasks with acceptance criteria.",
        f"- Use `TaskUpdate` with `owner` to assign tasks to: {roster}.",
        "- Use `SendMessage` for context, feedback and redirection.",
        "- Use `TaskList` to track progress and spot stalled work.",
        "",
        "## Completion & Reporting",
        "",
        "1. Verify the combined output addresses the original objective.",
        "2. Summarise what was accomplished, key decisions and follow-up items.",
        "3. Present the final result to the user.",
    ]
    data = {"name": manager_slug(team), "description": summary}
    return render_front_matter(data, "\n".join(lines) + "\n")


def render_agent_skill(
    team: Node,
    agent: Node,
    teammates: list[Node],
    sub_agents: list[Node],
    resolve: SkillResolver,
) -> str:
    role = agent.description.strip()
    summary = (
        f"{agent.name}, specialist agent on the {team.name} team."
        + (f" {role}" if role else "")
        + f" Use this skill when operating as {agent.name} within the {team.name} team."
    )
    role_clause = f": {_sentence(role)}" if role else ""
    lines = [
        f"This skill defines the role of {agent.name} on the {team.name} team{role_clause}. "
        "You receive tasks from the team's senior manager and deliver complete, "
        "professional results.",
        "",
        "## Role & Domain Guidelines",
        "",
    ]
    if role:
        lines += [
            f"Your core focus: {role}",
            "",
            "- **Own your expertise**: make confident decisions inside your domain.",
            "- **Think holistically**: consider how your work fits the team objective.",
            "- **Be thorough**: cover edge cases and verify before reporting completion.",
        ]
    else:
        lines += [
            "- **Understand before acting**: read the full task before starting.",
            "- **Deliver complete work**: no placeholders in final deliverables.",
            "- **Communicate clearly**: report what you did and the decisions you made.",
        ]
    lines.append("")

    skills = skill_names(agent, resolve)
    tools = getattr(agent.config, "tools", None) or []
    commands = getattr(agent.config, "allowedCommands", None) or []
    model = getattr(agent.config, "model", None)
    if skills or tools or commands:
        lines += ["## Skills & Tools", ""]
        if skills:
            lines += ["**Assigned skills** (invoke as slash commands):", ""]
            lines += [f"- `/{name}`" for name in skills]
            lines.append("")
        if tools:
            lines.append(f"**Allowed tools**: {', '.join(f'`{t}`' for t in tools)}")
        if commands:
            lines.append(f"**Allowed commands**: {', '.join(f'`{c}`' for c in commands)}")
        if model:
            lines.append(f"**Model**: `{model}`")
        lines.append("")

    variables = _variable_lines(agent.variables, "(to be provided at runtime)")
    if variables:
        lines += ["## Configuration", "", *variables, ""]
    if sub_agents:
        lines += ["## Sub-agents", ""]
        for sub in sub_agents:
            detail = sub.description.strip()
            lines.append(f"- **{sub.name}**" + (f": {detail}" if detail else ""))
        lines.append("")
    if teammates:
        lines += ["## Collaboration", ""]
        for mate in teammates:
            lines.append(f"- **{mate.name}**: {mate.description.strip() or 'Team member'}")
        lines += [
            "",
            "Coordinate through the senior manager or `SendMessage` when your work "
            "touches a teammate's domain.",
            "",
        ]
    lines += [
        "## Work Protocol",
        "",
        "1. Check `TaskList` for tasks assigned to you.",
        "2. Mark the task `in_progress` with `TaskUpdate`.",
        "3. Execute it and verify against the acceptance criteria.",
        "4. Mark it `completed` and report to the senior manager via `SendMessage`.",
        "5. Pick up the next available task.",
        "",
        "If you are blocked, report it immediately via `SendMessage`.",
    ]
    data = {"name": agent_slug(team, agent), "description": summary}
    return render_front_matter(data, "\n".join(lines) + "\n")


def _write_if_absent(path: Path, render: Callable[[], str]) -> str:
    if path.exists():
        logger.debug("Keeping existing skill file %s", path)
    else:
        write_text_atomic(path, render())
        logger.info("Generated skill file %s", path)
    return normalize_path(path)


def generate_team_skill_files(
    nodes: Mapping[str, Node],
    team_id: str,
    skills_path: str | Path,
    resolve: SkillResolver,
) -> list[str]:
    """Write the manager skill and one skill per direct child of a team.

    Files that already exist are left untouched and still reported.
    """
    team = nodes[team_id]
    skills_dir = Path(skills_path)
    agents = children(nodes, team_id)
    generated = [
        _write_if_absent(
            skills_dir / manager_slug(team) / SKILL_FILE,
            lambda: render_manager_skill(team, agents, resolve),
        )
    ]
    for agent in agents:
        teammates = [mate for mate in agents if mate.id != agent.id]
        subs = children(nodes, agent.id)
        generated.append(
            _write_if_absent(
                skills_dir / agent_slug(team, agent) / SKILL_FILE,
                lambda agent=agent, teammates=teammates, subs=subs: render_agent_skill(
                    team, agent, teammates, subs, resolve
                ),
            )
        )
    return generated


def render_team_skill(
    nodes: Mapping[str, Node],
    team_id: str,
    resolve: SkillResolver,
    root_id: str = "root",
) -> str:
    """A single deployable skill describing a whole team."""
    team = nodes[team_id]
    root = nodes.get(root_id)
    slug = node_slug(team)
    agents = children(nodes, team_id)
    siblings = [
        node.name
        for node in nodes.values()
        if node.kind is NodeKind.GROUP and node.parent_id == root_id and node.id != team_id
    ]
    lines = [f"# {team.name}", ""]
    if team.description.strip():
        lines += [f"> {team.description.strip()}", ""]
    lines += [
        "## Activation",
        "",
        f'Invoke this team with `/{slug}` or by saying "deploy the {team.name}".',
        "",
        "## Company Context",
        "",
        f"**Organization:** {root.name if root else 'Unknown'}",
    ]
    if root is not None and root.description.strip():
        lines.append(f"**Description:** {root.description.strip()}")
    lines.append(f"**This Team:** {team.name} ({len(agents)} agents)")
    if siblings:
        lines.append(f"**Other Teams:** {', '.join(siblings)}")
    lines.append("")

    global_skills = skill_names(root, resolve) if root is not None else []
    if global_skills:
        lines += ["## Global Skills (Available to All Agents)", ""]
        lines += [f"- `/{name}`" for name in global_skills]
        lines.append("")
    team_skills = skill_names(team, resolve)
    if team_skills:
        lines += ["## Team Skills", ""]
        lines += [f"- `/{name}`" for name in team_skills]
        lines.append("")
    if team.variables:
        lines += ["## Team Variables", "", "| Type | Variable | Value |", "|------|----------|-------|"]
        for var in team.variables:
            value = f"`{var.value}`" if var.value else "*(to be provided)*"
            lines.append(f"| {var.type} | `{var.name}` | {value} |")
        lines.append("")

    lines += [f"## Team Roster ({len(agents)} agents)", ""]
    for agent in agents:
        lines += [f"### {agent.name}", ""]
        if agent.description.strip():
            lines += [f"**Role:** {agent.description.strip()}", ""]
        for label, attr in (("Model", "model"), ("Permission Mode", "permissionMode")):
            value = getattr(agent.config, attr, None)
            if value:
                lines.append(f"**{label}:** `{value}`")
        max_turns = getattr(agent.config, "maxTurns", None)
        if max_turns:
            lines.append(f"**Max Turns:** {max_turns}")
        for label, attr in (("Tools", "tools"), ("Disallowed Tools", "disallowedTools")):
            values = getattr(agent.config, attr, None) or []
            if values:
                lines.append(f"**{label}:** {', '.join(f'`{v}`' for v in values)}")
        skills = skill_names(agent, resolve)
        if skills:
            lines += ["", "**Skills:**", *[f"- `/{name}`" for name in skills]]
        if agent.variables:
            lines += ["", "**Environment Variables:**"]
            for var in agent.variables:
                value = f"`{var.value}`" if var.value else "(to be provided)"
                lines.append(f"- [{var.type}] `{var.name}`: {value}")
        subs = children(nodes, agent.id)
        if subs:
            lines += ["", "**Sub-agents:**"]
            for sub in subs:
                detail = sub.description.strip()
                lines.append(f"- **{sub.name}**" + (f": {detail}" if detail else ""))
        lines.append("")

    lines += [
        "## Deployment Instructions",
        "",
        "When this skill is activated:",
        "",
        f"1. **Create the team**: use `TeamCreate` with team name `{slug}`",
        "2. **Spawn agents**: use the `Task` tool to spawn each agent as a teammate:",
    ]
    for agent in agents:
        lines.append(
            f'   - **{agent.name}** (`name: "{node_slug(agent)}"`, '
            '`subagent_type: "general-purpose"`)'
        )
    lines += [
        "3. **Create tasks**: break the request into tasks with `TaskCreate` and assign them with `TaskUpdate`",
        "4. **Monitor progress**: check `TaskList` and resolve conflicts",
        "5. **Report**: summarise what was accomplished for the user",
        "6. **Shutdown**: send `shutdown_request` to each agent, then call `TeamDelete`",
        "",
    ]
    if team.launch_prompt.strip():
        quoted = "\n".join(f"> {line}" for line in team.launch_prompt.strip().splitlines())
        lines += ["## Default Launch Prompt", "", quoted, ""]
    data = {
        "name": slug,
        "description": f"{team.name}: deployable team skill",
    }
    return render_front_matter(data, "\n".join(lines))
