"""Copy a subtree, materialising fresh files for its file-backed members."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .errors import CloneError
from .fileio import remove_file, write_text_atomic
from .node import Node, NodeKind, PipelineStep, config_from_dict, config_to_dict
from .parsers import SKILL_FILE, render_front_matter
from .paths import (
    file_stem,
    generate_node_id,
    generate_virtual_id,
    normalize_path,
    now_ms,
    parent_dir,
    random_token,
    slugify,
)

logger = logging.getLogger("auitree.clone")

MAX_NUMBERED_PROBES = 20
COPY_SUFFIX = " (copy)"
_ID_PREFIXES = {NodeKind.CONTEXT: "ctx"}


def children(nodes: Mapping[str, Node], parent_id: str) -> list[Node]:
    return [node for node in nodes.values() if node.parent_id == parent_id]


def collect_descendants(nodes: Mapping[str, Node], parent_id: str) -> list[Node]:
    """Depth-first list of every node below ``parent_id``."""
    result: list[Node] = []
    stack = list(reversed(children(nodes, parent_id)))
    seen: set[str] = set()
    while stack:
        node = stack.pop()
        if node.id in seen:
            continue
        seen.add(node.id)
        result.append(node)
        stack.extend(reversed(children(nodes, node.id)))
    return result


def collect_subtree(nodes: Mapping[str, Node], root_id: str) -> list[Node]:
    """The node itself followed by all of its descendants."""
    return [nodes[root_id], *collect_descendants(nodes, root_id)]


def find_unique_path(
    make_path: Callable[[str], Path],
    base_name: str,
    is_taken: Callable[[Path], bool],
) -> Path:
    """Probe ``base``, ``base-2`` ... ``base-20``, then a random suffix."""
    candidate = make_path(base_name)
    if not is_taken(candidate):
        return candidate
    for idx in range(2, MAX_NUMBERED_PROBES + 1):
        candidate = make_path(f"{base_name}-{idx}")
        if not is_taken(candidate):
            return candidate
    while True:
        candidate = make_path(f"{base_name}-{random_token(5)}")
        if not is_taken(candidate):
            return candidate


@dataclass
class CloneResult:
    nodes: dict[str, Node]
    root_id: str
    written: list[str] = field(default_factory=list)


class _Cloner:
    def __init__(self, config_path: Path, existing_ids: Iterable[str]) -> None:
        self.config_path = config_path
        self.used_ids = set(existing_ids)
        self.written: list[Path] = []

    def is_taken(self, path: Path) -> bool:
        return path.exists() or generate_node_id(normalize_path(path)) in self.used_ids

    def target_path(self, node: Node, new_name: str, is_root: bool) -> Path | None:
        slug = slugify(new_name) or node.kind.value
        if node.kind is NodeKind.AGENT:
            agents = self.config_path / "agents"
            return find_unique_path(lambda name: agents / f"{name}.md", slug, self.is_taken)
        if node.kind is NodeKind.SKILL:
            skills = self.config_path / "skills"
            return find_unique_path(lambda name: skills / name / SKILL_FILE, slug, self.is_taken)
        if node.kind is NodeKind.CONTEXT:
            directory = parent_dir(node.source_path)
            if not directory:
                return None
            stem = file_stem(node.source_path)
            suffix = Path(node.source_path).suffix or ".md"
            base = f"{stem}-copy" if is_root else stem
            return find_unique_path(
                lambda name: Path(directory) / f"{name}{suffix}", base, self.is_taken
            )
        return None

    def content(self, node: Node, new_name: str) -> tuple[str, dict | None]:
        if node.kind is NodeKind.CONTEXT:
            return node.prompt_body, None
        data = dict(config_to_dict(node.config) or {})
        data["name"] = new_name
        return render_front_matter(data, node.prompt_body), data

    def write(self, path: Path, text: str) -> None:
        try:
            write_text_atomic(path, text)
        except OSError as exc:
            self.rollback()
            raise CloneError(f"Failed to write {path}: {exc}") from exc
        self.written.append(path)

    def rollback(self) -> None:
        for path in self.written:
            remove_file(path)
            if path.name == SKILL_FILE:
                try:
                    path.parent.rmdir()
                except OSError:
                    logger.debug("Left skill directory %s in place", path.parent)
        self.written.clear()


def clone_node_tree(
    source_nodes: list[Node],
    root_id: str,
    target_parent_id: str | None,
    config_path: str | Path,
    existing_ids: Iterable[str] = (),
) -> CloneResult:
    """Clone ``source_nodes`` (the subtree rooted at ``root_id``).

    File-backed members get a new file at a collision-free location and the
    id derived from it; every other member gets a generated id. Parent links
    and pipeline step team references are remapped into the clone.
    """
    if not source_nodes:
        raise CloneError("Nothing to clone")
    cloner = _Cloner(Path(config_path), existing_ids)
    id_map: dict[str, str] = {}
    clones: list[tuple[Node, Node]] = []

    for node in source_nodes:
        is_root = node.id == root_id
        new_name = node.name + COPY_SUFFIX if is_root else node.name
        clone = copy.deepcopy(node)
        clone.name = new_name
        clone.last_modified = now_ms()
        clone.validation_errors = []

        path = cloner.target_path(node, new_name, is_root) if node.source_path else None
        if path is not None:
            text, data = cloner.content(node, new_name)
            cloner.write(path, text)
            clone.source_path = normalize_path(path)
            clone.id = generate_node_id(clone.source_path)
            if data is not None:
                clone.config = config_from_dict(node.kind, data)
        else:
            clone.source_path = ""
            clone.id = generate_virtual_id(_ID_PREFIXES.get(node.kind, node.kind.value))
        cloner.used_ids.add(clone.id)
        id_map[node.id] = clone.id
        clones.append((node, clone))

    result = CloneResult(nodes={}, root_id=id_map[root_id])
    for source, clone in clones:
        if source.id == root_id:
            clone.parent_id = target_parent_id
        elif source.parent_id is not None:
            clone.parent_id = id_map.get(source.parent_id, source.parent_id)
        clone.pipeline_steps = [
            PipelineStep(
                id=generate_virtual_id("step"),
                teamId=id_map.get(step.teamId, step.teamId),
                prompt=step.prompt,
            )
            for step in source.pipeline_steps
        ]
        result.nodes[clone.id] = clone
    result.written = [normalize_path(path) for path in cloner.written]
    logger.info("Cloned %d node(s) into %s", len(result.nodes), target_parent_id)
    return result
