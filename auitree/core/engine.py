"""The tree engine: one in-memory hierarchy kept in step with disk and metadata."""

from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from .clone import clone_node_tree, collect_descendants, collect_subtree
from .collaborators import ProcessSpawner, TaskScheduler, TerminalSpawner, TextGenerator
from .config import EngineSettings, ProjectPaths, load_settings
from .deploy import DeployArtifacts, DeployCompiler
from .errors import (
    DeployError,
    MetadataWriteError,
    NodeConflictError,
    NodeNotFoundError,
    NodeParseError,
    ProjectLoadError,
    TreeError,
)
from .export import (
    build_export,
    collect_skill_files,
    nodes_from_export,
    pack_zip,
    parse_export,
    render_company_plan,
    unpack_zip,
    write_company_plan,
)
from .fileio import remove_dir_if_empty, remove_file, write_text_atomic
from .layouts import LayoutCatalog
from .metadata import (
    LayoutEntry,
    MetadataStore,
    Owner,
    Position,
    TreeMetadata,
    apply_node_state,
    empty_metadata,
    group_record,
    node_from_group,
    node_state,
)
from .node import ROOT_ID, Node, NodeKind, PipelineStep, create_root_node
from .parsers import SKILL_FILE, classify, parse_file, write_node_file
from .paths import generate_virtual_id, normalize_path, now_ms, slugify
from .scanner import scan_project
from .skillgen import generate_team_skill_files, node_slug, render_team_skill
from .templates import agent_template, skill_template
from .watcher import watch

logger = logging.getLogger("auitree.engine")

APP_VERSION = "0.1.0"
COMPANY_PLAN_DIR = "company-plan"
SIBLING_OFFSET_X = 300
CHILD_OFFSET_Y = 160
_NODE_FIELDS = {item.name for item in fields(Node)}


@dataclass
class Clipboard:
    nodes: list[Node]
    source_parent_id: str | None


def repair_hierarchy(nodes: dict[str, Node]) -> int:
    """Re-attach stale parents and break cycles by moving nodes under the root.

    Returns the number of nodes that were moved.
    """
    moved = 0
    for node in nodes.values():
        if node.id == ROOT_ID:
            node.parent_id = None
            continue
        if node.parent_id not in nodes or node.parent_id == node.id:
            node.parent_id = ROOT_ID
            moved += 1
    for node in nodes.values():
        seen = {node.id}
        current = node.parent_id
        while current is not None and current != ROOT_ID:
            if current in seen:
                logger.warning("Breaking hierarchy cycle at %s", node.id)
                node.parent_id = ROOT_ID
                moved += 1
                break
            seen.add(current)
            current = nodes[current].parent_id
    return moved


class TreeEngine:
    """Owns the node map for one project.

    Every public method takes the engine lock, so a watcher batch applied on
    the observer thread never interleaves with a foreground operation.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        spawner: ProcessSpawner | None = None,
        app_version: str = APP_VERSION,
    ) -> None:
        self._explicit_settings = settings
        self.settings = settings or EngineSettings()
        self.spawner: ProcessSpawner = spawner or TerminalSpawner()
        self.app_version = app_version
        self.nodes: dict[str, Node] = {}
        self.settings_nodes: dict[str, Node] = {}
        self.skill_name_cache: dict[str, str] = {}
        self.metadata: TreeMetadata | None = None
        self.clipboard: Clipboard | None = None
        self.project_path: Path | None = None
        self._store: MetadataStore | None = None
        self._catalog: LayoutCatalog | None = None
        self._lock = threading.RLock()

    # -- accessors -----------------------------------------------------------

    @property
    def paths(self) -> ProjectPaths:
        if self.project_path is None:
            raise TreeError("No project loaded")
        return ProjectPaths.for_project(self.project_path, self.settings)

    @property
    def layouts(self) -> list[LayoutEntry]:
        return self._catalog.entries if self._catalog else []

    @property
    def current_layout_id(self) -> str | None:
        return self._catalog.active_id if self._catalog else None

    @property
    def root(self) -> Node:
        return self.get_node(ROOT_ID)

    def _require_catalog(self) -> LayoutCatalog:
        if self._catalog is None:
            raise TreeError("No project loaded")
        return self._catalog

    # -- loading ---------------------------------------------------------------

    def _parse(self, path: str) -> Node | None:
        kind = classify(path, self.settings.config_dir)
        if kind is None:
            return None
        try:
            return parse_file(path, kind)
        except FileNotFoundError:
            logger.debug("Skipping vanished file %s", path)
        except NodeParseError as exc:
            logger.warning("Skipping unparseable file %s", exc)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping unreadable file %s: %s", path, exc)
        return None

    def _build_nodes(
        self,
        file_paths: Iterable[str],
        metadata: TreeMetadata | None,
        owner: Owner,
    ) -> tuple[dict[str, Node], dict[str, Node]]:
        nodes: dict[str, Node] = {ROOT_ID: create_root_node(owner.name, owner.description)}
        settings_nodes: dict[str, Node] = {}
        hierarchy = metadata.hierarchy if metadata else {}
        for path in file_paths:
            node = self._parse(path)
            if node is None:
                continue
            if node.kind is NodeKind.SETTINGS:
                settings_nodes[node.id] = node
                continue
            node.parent_id = hierarchy.get(node.id) or ROOT_ID
            nodes[node.id] = node
        for record in (metadata.groups or []) if metadata else []:
            nodes[record.id] = node_from_group(record)
        for node_id, state in ((metadata.nodeState or {}) if metadata else {}).items():
            if node_id in nodes:
                apply_node_state(nodes[node_id], state)
        moved = repair_hierarchy(nodes)
        if moved:
            logger.info("Re-attached %d node(s) to the root", moved)
        return nodes, settings_nodes

    def load_project(self, path: str | Path) -> None:
        """Build the tree for ``path`` and replace the current state with it.

        Raises ``ProjectLoadError`` if the project cannot be scanned; the
        previous state is left untouched in that case.
        """
        with self._lock:
            project = Path(path)
            if not project.is_dir():
                raise ProjectLoadError(f"Project directory not found: {project}")
            settings = self._explicit_settings or load_settings(project)
            paths = ProjectPaths.for_project(project, settings)
            try:
                paths.tooling_path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                logger.warning("Could not create %s: %s", paths.tooling_path, exc)
            try:
                file_paths = scan_project(project, settings.config_dir)
            except OSError as exc:
                raise ProjectLoadError(f"Failed to load project {project}: {exc}") from exc

            store = MetadataStore(project, settings.tooling_dir)
            metadata = store.load()
            owner = metadata.owner if metadata else Owner(name=settings.default_owner)
            self.settings = settings
            nodes, settings_nodes = self._build_nodes(file_paths, metadata, owner)
            cache = dict((metadata.skillNameCache or {}) if metadata else {})
            cache.update(
                {node.id: node.name for node in nodes.values() if node.kind is NodeKind.SKILL and node.name}
            )

            self.project_path = project
            self._store = store
            self._catalog = LayoutCatalog(store)
            self.nodes = nodes
            self.settings_nodes = settings_nodes
            self.skill_name_cache = cache
            self.metadata = metadata or empty_metadata(owner.name, owner.description)
            self.clipboard = None
            logger.info(
                "Loaded %d node(s), %d settings file(s), %d cached skill name(s) from %s",
                len(nodes),
                len(settings_nodes),
                len(cache),
                project,
            )

            try:
                self._persist()
            except MetadataWriteError as exc:
                logger.warning("Could not save metadata during load: %s", exc)
            try:
                self.load_layouts()
            except TreeError as exc:
                logger.warning("Could not load layouts: %s", exc)

    def sync_from_disk(self, changed_paths: Iterable[str]) -> list[str]:
        """Re-parse changed files; returns the ids that were added or refreshed.

        Unclassifiable, vanished and unparseable paths are skipped. Nodes are
        never removed here.
        """
        with self._lock:
            if self.project_path is None:
                return []
            nodes = dict(self.nodes)
            settings_nodes = dict(self.settings_nodes)
            cache = dict(self.skill_name_cache)
            metadata = self.metadata
            changed: list[str] = []
            for raw in dict.fromkeys(normalize_path(path) for path in changed_paths):
                node = self._parse(raw)
                if node is None:
                    continue
                if node.kind is NodeKind.SETTINGS:
                    settings_nodes[node.id] = node
                    changed.append(node.id)
                    continue
                existing = nodes.get(node.id)
                if existing is not None:
                    node.parent_id = existing.parent_id
                    node.team = existing.team
                    node.tags = list(existing.tags)
                    node.assigned_skills = list(existing.assigned_skills)
                    node.variables = list(existing.variables)
                    node.launch_prompt = existing.launch_prompt
                else:
                    parent = metadata.hierarchy.get(node.id) if metadata else None
                    node.parent_id = parent if parent in nodes else ROOT_ID
                    state = (metadata.nodeState or {}).get(node.id) if metadata else None
                    if state is not None:
                        apply_node_state(node, state)
                if node.kind is NodeKind.SKILL and node.name:
                    cache[node.id] = node.name
                nodes[node.id] = node
                changed.append(node.id)
            self.nodes = nodes
            self.settings_nodes = settings_nodes
            self.skill_name_cache = cache
            if changed:
                logger.debug("Synced %d node(s) from disk", len(changed))
                try:
                    self._persist()
                except MetadataWriteError as exc:
                    logger.warning("Could not save metadata after sync: %s", exc)
            return changed

    def start_watching(
        self, on_change: Callable[[list[str]], None] | None = None
    ) -> Callable[[], None]:
        """Watch the configuration directory and sync every debounced batch."""
        project = self.paths.root

        def _apply(batch: list[str]) -> None:
            changed = self.sync_from_disk(batch)
            if on_change is not None and changed:
                on_change(changed)

        return watch(
            project,
            _apply,
            debounce_ms=self.settings.debounce_ms,
            config_dir=self.settings.config_dir,
        )

    # -- metadata ----------------------------------------------------------------

    def snapshot_metadata(self) -> TreeMetadata:
        """Metadata describing the current node map."""
        with self._lock:
            previous = self.metadata
            root = self.nodes.get(ROOT_ID)
            if root is not None:
                owner = Owner(name=root.name, description=root.prompt_body)
            elif previous is not None:
                owner = previous.owner
            else:
                owner = Owner(name=self.settings.default_owner)
            members = [node for node_id, node in self.nodes.items() if node_id != ROOT_ID]
            groups = [group_record(node) for node in members if node.kind.is_virtual]
            states = {
                node.id: node_state(node)
                for node in self.nodes.values()
                if not node.kind.is_virtual
            }
            states = {key: state for key, state in states.items() if not state.is_empty()}
            extras = dict(previous.model_extra or {}) if previous is not None else {}
            return TreeMetadata(
                owner=owner,
                hierarchy={node.id: node.parent_id for node in members},
                positions=dict(previous.positions) if previous is not None else {},
                groups=groups or None,
                lastModified=now_ms(),
                skillNameCache=dict(self.skill_name_cache) or None,
                nodeState=states or None,
                **extras,
            )

    def _persist(self) -> TreeMetadata:
        metadata = self.snapshot_metadata()
        self.metadata = metadata
        if self._store is not None:
            self._store.save(metadata)
        return metadata

    save_tree_metadata = _persist

    # -- node CRUD ---------------------------------------------------------------

    def get_node(self, node_id: str) -> Node:
        with self._lock:
            try:
                return self.nodes[node_id]
            except KeyError:
                raise NodeNotFoundError(node_id) from None

    def children_of(self, node_id: str) -> list[Node]:
        with self._lock:
            return [node for node in self.nodes.values() if node.parent_id == node_id]

    def descendants_of(self, node_id: str) -> list[Node]:
        with self._lock:
            return collect_descendants(self.nodes, node_id)

    def add_node(self, node: Node) -> Node:
        with self._lock:
            if node.id in self.nodes:
                raise NodeConflictError(f"Node {node.id} already exists")
            if node.id != ROOT_ID:
                if node.parent_id is None:
                    node.parent_id = ROOT_ID
                self.get_node(node.parent_id)
            self.nodes[node.id] = node
            if node.kind is NodeKind.SKILL and node.name:
                self.skill_name_cache[node.id] = node.name
            self._persist()
            return node

    def update_node(self, node_id: str, **changes: Any) -> Node:
        """Merge ``changes`` into a node. ``id`` and ``kind`` are immutable."""
        with self._lock:
            node = self.get_node(node_id)
            unknown = set(changes) - _NODE_FIELDS
            if unknown:
                raise ValueError(f"Unknown node field(s): {', '.join(sorted(unknown))}")
            if "id" in changes and changes["id"] != node.id:
                raise ValueError("A node's id cannot change")
            if "kind" in changes and NodeKind(changes["kind"]) is not node.kind:
                raise ValueError(f"A node's kind cannot change (is {node.kind.value})")
            if "parent_id" in changes and changes["parent_id"] != node.parent_id:
                self._check_reparent(node, changes["parent_id"])
            for key, value in changes.items():
                if key not in {"id", "kind"}:
                    setattr(node, key, value)
            node.last_modified = now_ms()
            if node.kind is NodeKind.SKILL and node.name:
                self.skill_name_cache[node.id] = node.name
            self._persist()
            return node

    def remove_node(self, node_id: str) -> Node:
        """Drop a single entry from the map; no cascade, no file changes."""
        with self._lock:
            if node_id == ROOT_ID:
                raise ValueError("The root node cannot be removed")
            node = self.get_node(node_id)
            del self.nodes[node_id]
            return node

    def _check_reparent(self, node: Node, new_parent_id: str | None) -> None:
        if node.id == ROOT_ID:
            raise ValueError("The root node cannot be re-parented")
        if new_parent_id is None:
            raise ValueError("Only the root node may have no parent")
        self.get_node(new_parent_id)
        if new_parent_id == node.id or new_parent_id in {
            child.id for child in collect_descendants(self.nodes, node.id)
        }:
            raise ValueError(f"Cannot move {node.id} under itself or one of its descendants")

    def reparent_node(self, node_id: str, new_parent_id: str) -> Node:
        with self._lock:
            node = self.get_node(node_id)
            self._check_reparent(node, new_parent_id)
            node.parent_id = new_parent_id
            self._persist()
            return node

    def save_node(self, node_id: str) -> Path:
        """Write a file-backed node back to its source document."""
        with self._lock:
            node = self.get_node(node_id)
            path = write_node_file(node)
            node.last_modified = now_ms()
            return path

    # -- removal -------------------------------------------------------------------

    def _removal_set(self, node: Node, cascade: bool | None) -> list[str]:
        full = node.kind.is_virtual if cascade is None else cascade
        if full:
            return [item.id for item in collect_subtree(self.nodes, node.id)]
        return [node.id]

    def _drop(self, node: Node, removed: list[str]) -> None:
        removed_set = set(removed)
        new_parent = node.parent_id or ROOT_ID
        for other in self.nodes.values():
            if other.id not in removed_set and other.parent_id in removed_set:
                other.parent_id = new_parent
        for node_id in removed:
            self.nodes.pop(node_id, None)
        if self.metadata is not None:
            for node_id in removed:
                self.metadata.positions.pop(node_id, None)

    def remove_node_from_canvas(self, node_id: str) -> str:
        """Remove a node from the tree without touching files.

        Groups and pipelines take their descendants with them; any other node
        hands its children to its own parent. Returns the removed node's name.
        """
        with self._lock:
            if node_id == ROOT_ID:
                raise ValueError("The root node cannot be removed")
            node = self.get_node(node_id)
            removed = self._removal_set(node, None)
            self._drop(node, removed)
            self._persist()
            logger.info("Removed %d node(s) from the canvas", len(removed))
            return node.name

    def delete_node_from_disk(self, node_id: str, cascade: bool | None = None) -> list[str]:
        """Delete a node's files and remove it from the tree.

        The removal set follows ``remove_node_from_canvas`` unless ``cascade``
        is given. File deletion is best-effort. Returns the removed ids.
        """
        with self._lock:
            if node_id == ROOT_ID:
                raise ValueError("The root node cannot be deleted")
            node = self.get_node(node_id)
            removed = self._removal_set(node, cascade)
            for item_id in removed:
                item = self.nodes[item_id]
                if not item.source_path:
                    continue
                remove_file(item.source_path)
                if item.kind is NodeKind.SKILL:
                    remove_dir_if_empty(Path(item.source_path).parent)
            self._drop(node, removed)
            self._persist()
            logger.info("Deleted %d node(s) from disk", len(removed))
            return removed

    # -- creation --------------------------------------------------------------------

    def _place_near_parent(self, node_id: str, parent_id: str) -> None:
        if self.metadata is None:
            return
        parent_pos = self.metadata.positions.get(parent_id)
        if parent_pos is None:
            return
        siblings = sum(
            1 for node in self.nodes.values() if node.parent_id == parent_id and node.id != node_id
        )
        self.metadata.positions[node_id] = Position(
            x=parent_pos.x + (siblings % 3) * SIBLING_OFFSET_X,
            y=parent_pos.y + CHILD_OFFSET_Y,
        )

    def _insert(self, node: Node, parent_id: str | None) -> Node:
        parent = parent_id or ROOT_ID
        self.get_node(parent)
        node.parent_id = parent
        self.nodes[node.id] = node
        self._place_near_parent(node.id, parent)
        self._persist()
        return node

    def _create_file_node(
        self, path: Path, kind: NodeKind, content: str, parent_id: str | None
    ) -> Node:
        if path.exists():
            raise NodeConflictError(f"{path} already exists")
        if parent_id is not None:
            self.get_node(parent_id)
        write_text_atomic(path, content)
        node = parse_file(path, kind, content)
        if node.id in self.nodes:
            raise NodeConflictError(f"Node {node.id} already exists")
        if node.kind is NodeKind.SKILL:
            self.skill_name_cache[node.id] = node.name
        return self._insert(node, parent_id)

    def create_agent_node(self, name: str, description: str = "", parent_id: str | None = None) -> Node:
        with self._lock:
            slug = slugify(name)
            if not slug:
                raise ValueError(f"Invalid agent name: {name!r}")
            path = self.paths.agents_path / f"{slug}.md"
            return self._create_file_node(
                path, NodeKind.AGENT, agent_template(slug, description), parent_id
            )

    def create_skill_node(self, name: str, description: str = "", parent_id: str | None = None) -> Node:
        with self._lock:
            slug = slugify(name)
            if not slug:
                raise ValueError(f"Invalid skill name: {name!r}")
            path = self.paths.skills_path / slug / SKILL_FILE
            return self._create_file_node(
                path, NodeKind.SKILL, skill_template(slug, description), parent_id
            )

    def _create_virtual(self, kind: NodeKind, name: str, description: str, parent_id: str | None) -> Node:
        node = Node(
            id=generate_virtual_id(kind.value),
            name=name,
            kind=kind,
            prompt_body=description,
        )
        return self._insert(node, parent_id)

    def create_group_node(self, name: str, description: str = "", parent_id: str | None = None) -> Node:
        with self._lock:
            return self._create_virtual(NodeKind.GROUP, name, description, parent_id)

    def create_pipeline_node(self, name: str, description: str = "", parent_id: str | None = None) -> Node:
        with self._lock:
            return self._create_virtual(NodeKind.PIPELINE, name, description, parent_id)

    def update_pipeline_steps(
        self, pipeline_id: str, steps: Iterable[PipelineStep | Mapping[str, Any]]
    ) -> Node:
        with self._lock:
            node = self.get_node(pipeline_id)
            if node.kind is not NodeKind.PIPELINE:
                raise ValueError(f"{pipeline_id} is not a pipeline")
            node.pipeline_steps = [PipelineStep.model_validate(step) for step in steps]
            node.last_modified = now_ms()
            self._persist()
            return node

    # -- skills ----------------------------------------------------------------------

    def cache_skill_name(self, skill_id: str, name: str) -> None:
        with self._lock:
            self.skill_name_cache[skill_id] = name

    def resolve_skill_name(self, skill_id: str) -> str | None:
        """Live skill name first, then the cached one."""
        with self._lock:
            node = self.nodes.get(skill_id)
            if node is not None and node.name:
                return node.name
            return self.skill_name_cache.get(skill_id)

    def assign_skill_to_node(self, node_id: str, skill_id: str) -> Node:
        with self._lock:
            node = self.get_node(node_id)
            skill = self.nodes.get(skill_id)
            if skill is not None and skill.kind is NodeKind.SKILL:
                self.skill_name_cache[skill_id] = skill.name
            if skill_id not in node.assigned_skills:
                node.assigned_skills = [*node.assigned_skills, skill_id]
            self._persist()
            return node

    def remove_skill_from_node(self, node_id: str, skill_id: str) -> Node:
        with self._lock:
            node = self.get_node(node_id)
            node.assigned_skills = [item for item in node.assigned_skills if item != skill_id]
            self._persist()
            return node

    # -- positions -------------------------------------------------------------------

    def _require_metadata(self) -> TreeMetadata:
        if self.metadata is None:
            self.metadata = self.snapshot_metadata()
        return self.metadata

    def save_node_position(self, node_id: str, x: float, y: float) -> None:
        with self._lock:
            self._require_metadata().positions[node_id] = Position(x=x, y=y)
            self._persist()

    def save_node_positions(self, positions: Mapping[str, Any]) -> None:
        with self._lock:
            metadata = self._require_metadata()
            for node_id, value in positions.items():
                metadata.positions[node_id] = (
                    Position(x=value[0], y=value[1])
                    if isinstance(value, (tuple, list))
                    else Position.model_validate(value)
                )
            self._persist()

    def clear_node_position(self, node_id: str) -> None:
        with self._lock:
            self._require_metadata().positions.pop(node_id, None)
            self._persist()

    # -- clone -----------------------------------------------------------------------

    def copy_nodes(self, node_id: str) -> Clipboard:
        with self._lock:
            if node_id == ROOT_ID:
                raise ValueError("The root node cannot be copied")
            source = self.get_node(node_id)
            snapshot = [copy.deepcopy(node) for node in collect_subtree(self.nodes, node_id)]
            self.clipboard = Clipboard(nodes=snapshot, source_parent_id=source.parent_id)
            return self.clipboard

    def _clone_into(self, source_nodes: list[Node], root_id: str, parent_id: str | None) -> str:
        result = clone_node_tree(
            source_nodes,
            root_id,
            parent_id,
            self.paths.config_path,
            existing_ids=self.nodes.keys(),
        )
        for node in result.nodes.values():
            self.nodes[node.id] = node
            if node.kind is NodeKind.SKILL and node.name:
                self.skill_name_cache[node.id] = node.name
        self._persist()
        return result.root_id

    def duplicate_nodes(self, node_id: str) -> str:
        """Clone a subtree next to the original; returns the clone root's id."""
        with self._lock:
            if node_id == ROOT_ID:
                raise ValueError("The root node cannot be duplicated")
            source = self.get_node(node_id)
            return self._clone_into(collect_subtree(self.nodes, node_id), node_id, source.parent_id)

    def paste_nodes(self, target_parent_id: str) -> str | None:
        """Clone the clipboard under ``target_parent_id``; ``None`` if it is empty."""
        with self._lock:
            if self.clipboard is None or not self.clipboard.nodes:
                return None
            self.get_node(target_parent_id)
            nodes = self.clipboard.nodes
            return self._clone_into(nodes, nodes[0].id, target_parent_id)

    # -- layouts -----------------------------------------------------------------------

    def load_layouts(self) -> list[LayoutEntry]:
        with self._lock:
            catalog = self._require_catalog()
            catalog.ensure(self.snapshot_metadata())
            return catalog.entries

    def save_current_as_layout(self, name: str) -> str:
        with self._lock:
            catalog = self._require_catalog()
            metadata = self._persist()
            catalog.flush(metadata)
            return catalog.create(name, metadata, activate=True)

    def switch_layout(self, layout_id: str) -> None:
        """Flush the active layout, then rebuild the tree from ``layout_id``."""
        with self._lock:
            catalog = self._require_catalog()
            if layout_id == catalog.active_id:
                return
            catalog.flush(self._persist())
            target = catalog.load(layout_id)
            try:
                file_paths = scan_project(self.paths.root, self.settings.config_dir)
            except OSError as exc:
                raise ProjectLoadError(f"Failed to rescan project: {exc}") from exc
            nodes, settings_nodes = self._build_nodes(file_paths, target, target.owner)
            catalog.activate(layout_id)
            self.nodes = nodes
            self.settings_nodes = settings_nodes
            self.metadata = target
            for node in nodes.values():
                if node.kind is NodeKind.SKILL and node.name:
                    self.skill_name_cache[node.id] = node.name
            self._persist()
            logger.info("Switched to layout %s", layout_id)

    def delete_layout(self, layout_id: str) -> None:
        with self._lock:
            self._require_catalog().delete(layout_id)

    def rename_layout(self, layout_id: str, name: str) -> None:
        with self._lock:
            self._require_catalog().rename(layout_id, name)

    def create_blank_layout(self, name: str) -> str:
        """Start a new layout that contains only the root node."""
        with self._lock:
            catalog = self._require_catalog()
            metadata = self._persist()
            catalog.flush(metadata)
            owner = metadata.owner
            blank = empty_metadata(owner.name, owner.description)
            layout_id = catalog.create(name, blank, activate=True)
            self.nodes = {ROOT_ID: create_root_node(owner.name, owner.description)}
            self.metadata = blank
            self._persist()
            return layout_id

    # -- export / import ---------------------------------------------------------------

    def export_tree_as_json(self) -> str:
        with self._lock:
            data = build_export(
                self.nodes, self.snapshot_metadata(), self.skill_name_cache, self.app_version
            )
            return json.dumps(data, indent=2, default=str)

    def import_tree_from_json(self, payload: str | bytes) -> None:
        """Replace the tree with an export document.

        Raises ``ImportFormatError`` before any state changes if the document
        is invalid.
        """
        with self._lock:
            data = parse_export(payload)
            nodes = nodes_from_export(data)
            repair_hierarchy(nodes)
            positions = {
                key: Position.model_validate(value)
                for key, value in (data.get("positions") or {}).items()
            }
            owner = Owner.model_validate(data["owner"])
            self.nodes = nodes
            self.skill_name_cache = dict(data.get("skillNameCache") or {})
            self.metadata = TreeMetadata(owner=owner, positions=positions)
            self._persist()
            logger.info("Imported %d node(s)", len(nodes))

    def export_tree_as_zip(self) -> bytes:
        with self._lock:
            return pack_zip(self.export_tree_as_json(), collect_skill_files(self.nodes))

    def import_tree_from_zip(self, data: bytes) -> None:
        """Restore skill files from a bundle, import its tree, then reload."""
        with self._lock:
            tree_json, skill_files = unpack_zip(data)
            parse_export(tree_json)
            skills_dir = self.paths.skills_path
            for relative, content in skill_files.items():
                try:
                    write_text_atomic(skills_dir / relative, content)
                except OSError as exc:
                    logger.warning("Failed to write skill file %s: %s", relative, exc)
            self.import_tree_from_json(tree_json)
            self.load_project(self.paths.root)

    def save_company_plan(self) -> Path:
        with self._lock:
            files = render_company_plan(self.nodes, self.resolve_skill_name)
            directory = self.paths.tooling_path / COMPANY_PLAN_DIR
            return write_company_plan(directory, files)

    # -- deploy --------------------------------------------------------------------------

    def _require_team(self, team_id: str) -> Node:
        team = self.get_node(team_id)
        if team.kind is not NodeKind.GROUP:
            raise DeployError(f"{team_id} is not a team node")
        return team

    def _compiler(self) -> DeployCompiler:
        return DeployCompiler(self.nodes, self.skill_name_cache, self.paths, self.settings)

    def generate_team_skill_files(self, team_id: str) -> list[str]:
        """Write manager and agent skill files for a team when they are missing."""
        with self._lock:
            self._require_team(team_id)
            return generate_team_skill_files(
                self.nodes, team_id, self.paths.skills_path, self.resolve_skill_name
            )

    def _generate_best_effort(self, team_id: str) -> None:
        try:
            self.generate_team_skill_files(team_id)
        except (OSError, TreeError) as exc:
            logger.warning("Could not generate skill files for %s: %s", team_id, exc)

    def export_team_as_skill(self, team_id: str) -> str:
        """Write a single skill describing a whole team and add it to the tree."""
        with self._lock:
            team = self._require_team(team_id)
            content = render_team_skill(self.nodes, team_id, self.resolve_skill_name)
            path = self.paths.skills_path / node_slug(team) / SKILL_FILE
            write_text_atomic(path, content)
            node = parse_file(path, NodeKind.SKILL, content)
            node.tags = ["team-skill"]
            existing = self.nodes.get(node.id)
            node.parent_id = existing.parent_id if existing else ROOT_ID
            self.nodes[node.id] = node
            self.skill_name_cache[node.id] = node.name
            self._persist()
            return node.source_path

    def _launch(self, artifacts: DeployArtifacts, launch: bool) -> DeployArtifacts:
        if launch:
            self.spawner.open_terminal(artifacts.script_path)
        return artifacts

    def deploy_team(
        self,
        team_id: str,
        objective: str = "",
        launch: bool = True,
        platform: str | None = None,
    ) -> DeployArtifacts:
        with self._lock:
            self._require_team(team_id)
            self._generate_best_effort(team_id)
            compiler = self._compiler()
            artifacts = compiler.compile(compiler.plan_team(team_id, objective), platform)
        return self._launch(artifacts, launch)

    def deploy_pipeline(
        self,
        pipeline_id: str,
        launch: bool = True,
        platform: str | None = None,
    ) -> DeployArtifacts:
        with self._lock:
            pipeline = self.get_node(pipeline_id)
            if pipeline.kind is not NodeKind.PIPELINE:
                raise DeployError(f"{pipeline_id} is not a pipeline node")
            for team_id in dict.fromkeys(step.teamId for step in pipeline.pipeline_steps):
                team = self.nodes.get(team_id)
                if team is not None and team.kind is NodeKind.GROUP:
                    self._generate_best_effort(team_id)
            compiler = self._compiler()
            artifacts = compiler.compile(compiler.plan_pipeline(pipeline_id), platform)
        return self._launch(artifacts, launch)

    def schedule_team(
        self,
        team_id: str,
        cron: str,
        objective: str,
        scheduler: TaskScheduler,
    ) -> DeployArtifacts:
        """Compile a team deploy and register its script with ``scheduler``."""
        if len(cron.split()) != 5:
            raise ValueError(f"Expected a five-field cron expression, got {cron!r}")
        artifacts = self.deploy_team(team_id, objective, launch=False)
        scheduler.register(cron, artifacts.script_path)
        logger.info("Scheduled %s at %s", artifacts.plan.name, cron)
        return artifacts

    # -- collaborators -----------------------------------------------------------------

    def draft_description(self, node_id: str, generator: TextGenerator) -> str | None:
        """Ask ``generator`` for a description and store it on the node.

        An empty answer or a failing generator leaves the node unchanged.
        """
        with self._lock:
            node = self.get_node(node_id)
            prompt = (
                f"Write a one-paragraph description for the {node.kind.value} "
                f'"{node.name}".'
            )
            if node.description:
                prompt += f" Current description: {node.description}"
        try:
            text = generator.generate(prompt).strip()
        except Exception as exc:  # pragma: no cover - surfaced in the log
            logger.warning("Description generator failed for %s: %s", node_id, exc)
            return None
        if not text:
            return None
        with self._lock:
            node = self.get_node(node_id)
            if node.kind in {NodeKind.AGENT, NodeKind.SKILL} and node.config is not None:
                node.config = node.config.model_copy(update={"description": text})
                self.save_node(node_id)
            else:
                node.prompt_body = text
            node.last_modified = now_ms()
            self._persist()
            return text
