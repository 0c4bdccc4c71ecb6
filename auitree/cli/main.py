#!/usr/bin/env python3
"""CLI for the auitree project tree."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from auitree.core import ROOT_ID, TreeEngine, TreeError, load_status
from auitree.core.status import abandoned_steps, last_attempted

LOG_ENV = "AUITREE_LOG"


def _configure_logging() -> None:
    level = os.environ.get(LOG_ENV, "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine(args: argparse.Namespace) -> TreeEngine:
    engine = TreeEngine()
    engine.load_project(Path(args.project).resolve())
    return engine


def print_tree(engine: TreeEngine) -> int:
    """Print the hierarchy with one indented line per node."""

    def walk(node_id: str, depth: int) -> None:
        node = engine.get_node(node_id)
        marker = "!" if node.validation_errors else " "
        print(f"{'  ' * depth}{marker}{node.name} [{node.kind.value}] {node.id}")
        for child in sorted(engine.children_of(node_id), key=lambda item: item.name.lower()):
            walk(child.id, depth + 1)

    walk(ROOT_ID, 0)
    for node in engine.settings_nodes.values():
        print(f" {node.name} [settings] {node.source_path}")
    return 0


def create_node(engine: TreeEngine, args: argparse.Namespace) -> int:
    factories = {
        "agent": engine.create_agent_node,
        "skill": engine.create_skill_node,
        "group": engine.create_group_node,
        "pipeline": engine.create_pipeline_node,
    }
    node = factories[args.kind](args.name, args.description, args.parent)
    print(f"[auitree] Created {node.kind.value} {node.name} ({node.id})")
    if node.source_path:
        print("  ·", node.source_path)
    return 0


def delete_node(engine: TreeEngine, args: argparse.Namespace) -> int:
    if args.disk:
        removed = engine.delete_node_from_disk(args.node_id, cascade=args.cascade or None)
        print(f"[auitree] Deleted {len(removed)} node(s) from disk")
    else:
        name = engine.remove_node_from_canvas(args.node_id)
        print(f"[auitree] Removed {name} from the tree")
    return 0


def manage_layouts(engine: TreeEngine, args: argparse.Namespace) -> int:
    action = args.action
    if action == "save":
        print(f"[auitree] Saved layout {engine.save_current_as_layout(args.value)}")
    elif action == "blank":
        print(f"[auitree] Created blank layout {engine.create_blank_layout(args.value)}")
    elif action == "switch":
        engine.switch_layout(args.value)
        print(f"[auitree] Switched to layout {args.value}")
    elif action == "rename":
        if not args.name:
            raise SystemExit("[auitree] rename needs a layout id and a new name")
        engine.rename_layout(args.value, args.name)
        print(f"[auitree] Renamed layout {args.value}")
    elif action == "delete":
        engine.delete_layout(args.value)
        print(f"[auitree] Deleted layout {args.value}")
    else:
        active = engine.current_layout_id
        for entry in engine.load_layouts():
            flag = "*" if entry.id == active else " "
            print(f"{flag} {entry.id}\t{entry.name}")
    return 0


def deploy(engine: TreeEngine, args: argparse.Namespace) -> int:
    if args.command == "deploy-team":
        artifacts = engine.deploy_team(
            args.node_id, args.objective, launch=not args.no_launch, platform=args.platform
        )
    else:
        artifacts = engine.deploy_pipeline(
            args.node_id, launch=not args.no_launch, platform=args.platform
        )
    print(f"[auitree] Compiled {artifacts.plan.kind} {artifacts.plan.name}")
    for primer in artifacts.primers:
        print("  ·", primer)
    print("  status:", artifacts.status_path)
    print("  script:", artifacts.script_path)
    return 0


def show_status(path: str) -> int:
    status = load_status(path)
    for step in status.steps:
        print(f"{step.step}\t{step.status}\t{step.team}")
    latest = last_attempted(status)
    if status.failed:
        skipped = abandoned_steps(status)
        print(
            f"[auitree] {status.pipeline} failed at step {latest.step if latest else '?'}"
            f" ({len(skipped)} step(s) not run)"
        )
        return 1
    if status.interrupted:
        skipped = abandoned_steps(status)
        print(
            f"[auitree] {status.pipeline} interrupted at step {latest.step if latest else '?'}"
            f" ({len(skipped)} step(s) abandoned)"
        )
        return 1
    print(f"[auitree] {status.pipeline}: {'finished' if status.finished else 'in progress'}")
    return 0


def export_tree(engine: TreeEngine, args: argparse.Namespace) -> int:
    target = Path(args.output)
    if target.suffix == ".zip":
        target.write_bytes(engine.export_tree_as_zip())
    else:
        target.write_text(engine.export_tree_as_json(), encoding="utf-8")
    print(f"[auitree] Exported tree to {target}")
    return 0


def import_tree(engine: TreeEngine, args: argparse.Namespace) -> int:
    source = Path(args.input)
    if source.suffix == ".zip":
        engine.import_tree_from_zip(source.read_bytes())
    else:
        engine.import_tree_from_json(source.read_text(encoding="utf-8"))
    print(f"[auitree] Imported {len(engine.nodes) - 1} node(s) from {source}")
    return 0


def watch_project(engine: TreeEngine) -> int:
    def report(changed: list[str]) -> None:
        for node_id in changed:
            node = engine.nodes.get(node_id) or engine.settings_nodes.get(node_id)
            if node is not None:
                print(f"[auitree] Synced {node.name} ({node.source_path})")

    cancel = engine.start_watching(report)
    print(f"[auitree] Watching {engine.paths.config_path} (Ctrl-C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:  # pragma: no cover - interactive
        pass
    finally:
        cancel()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--project", default=".", help="Project directory (default: cwd)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("tree", help="Print the project hierarchy")

    create = subparsers.add_parser("create", help="Create a node")
    create.add_argument("kind", choices=["agent", "skill", "group", "pipeline"])
    create.add_argument("name", help="Display name (files use its slug)")
    create.add_argument("--description", default="", help="Short description")
    create.add_argument("--parent", help="Parent node id (default: root)")

    delete = subparsers.add_parser("delete", help="Remove a node from the tree")
    delete.add_argument("node_id")
    delete.add_argument("--disk", action="store_true", help="Also delete backing files")
    delete.add_argument(
        "--cascade", action="store_true", help="Delete the whole subtree from disk"
    )

    layouts = subparsers.add_parser("layouts", help="List or manage layouts")
    layouts.add_argument(
        "action",
        nargs="?",
        default="list",
        choices=["list", "save", "switch", "rename", "delete", "blank"],
    )
    layouts.add_argument("value", nargs="?", help="Layout id, or name for save/blank")
    layouts.add_argument("name", nargs="?", help="New name for rename")

    for command, label in (("deploy-team", "team"), ("deploy-pipeline", "pipeline")):
        sub = subparsers.add_parser(command, help=f"Compile and launch a {label} deploy")
        sub.add_argument("node_id", help=f"{label.title()} node id")
        if command == "deploy-team":
            sub.add_argument("--objective", default="", help="Objective for the team")
        sub.add_argument(
            "--no-launch", action="store_true", help="Write artifacts without opening a terminal"
        )
        sub.add_argument("--platform", choices=["posix", "windows"], help="Script flavour")

    status = subparsers.add_parser("status", help="Summarise a deploy status.json")
    status.add_argument("path")

    export = subparsers.add_parser("export", help="Export the tree (.json or .zip)")
    export.add_argument("output")
    imported = subparsers.add_parser("import", help="Import a tree (.json or .zip)")
    imported.add_argument("input")

    subparsers.add_parser("plan", help="Write the company plan documents")
    subparsers.add_parser("watch", help="Keep the tree in sync with disk")
    return parser


def main(argv: list[str] | None = None) -> int:
    _configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "status":
        try:
            return show_status(args.path)
        except TreeError as exc:  # pragma: no cover - CLI formatting
            raise SystemExit(f"[auitree] {exc}") from exc

    try:
        engine = _engine(args)
        if args.command == "tree":
            return print_tree(engine)
        if args.command == "create":
            return create_node(engine, args)
        if args.command == "delete":
            return delete_node(engine, args)
        if args.command == "layouts":
            if args.action != "list" and not args.value:
                raise SystemExit(f"[auitree] layouts {args.action} needs an argument")
            return manage_layouts(engine, args)
        if args.command in {"deploy-team", "deploy-pipeline"}:
            return deploy(engine, args)
        if args.command == "export":
            return export_tree(engine, args)
        if args.command == "import":
            return import_tree(engine, args)
        if args.command == "plan":
            print(f"[auitree] Wrote company plan to {engine.save_company_plan()}")
            return 0
        if args.command == "watch":
            return watch_project(engine)
    except (TreeError, ValueError) as exc:  # pragma: no cover - CLI formatting
        raise SystemExit(f"[auitree] {exc}") from exc

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
