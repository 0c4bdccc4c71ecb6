"""Starter documents for newly created agents and skills."""

from __future__ import annotations

from .parsers import render_front_matter
from .paths import title_case


def agent_template(slug: str, description: str) -> str:
    title = title_case(slug)
    body = f"# {title}\n\n{description}\n"
    return render_front_matter({"name": title, "description": description}, body)


def skill_template(slug: str, description: str) -> str:
    body = (
        f"# {title_case(slug)}\n\n"
        "## Steps\n\n"
        "1. Define steps here\n\n"
        f"## Notes\n- {description}\n"
    )
    return render_front_matter({"name": slug, "description": description}, body)
