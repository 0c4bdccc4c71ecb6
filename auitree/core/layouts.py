"""Named layouts: alternative hierarchies over the same set of files."""

from __future__ import annotations

import logging

from .errors import LayoutError
from .metadata import LayoutEntry, LayoutIndex, MetadataStore, TreeMetadata
from .paths import generate_virtual_id, now_ms

logger = logging.getLogger("auitree.layouts")

DEFAULT_LAYOUT_NAME = "Default"


class LayoutCatalog:
    """Maintain ``.aui/layouts/index.json`` and the per-layout documents."""

    def __init__(self, store: MetadataStore) -> None:
        self.store = store
        self.index: LayoutIndex | None = None

    @property
    def entries(self) -> list[LayoutEntry]:
        return list(self.index.layouts) if self.index else []

    @property
    def active_id(self) -> str | None:
        return self.index.activeLayoutId if self.index else None

    def get(self, layout_id: str) -> LayoutEntry:
        for entry in self.entries:
            if entry.id == layout_id:
                return entry
        raise LayoutError(f"Layout {layout_id} not found")

    def ensure(self, metadata: TreeMetadata) -> LayoutIndex:
        """Load the index, creating a ``Default`` layout from ``metadata`` if absent."""
        index = self.store.load_index()
        if index is None:
            layout_id = generate_virtual_id("layout")
            self.store.save_layout(layout_id, metadata)
            index = LayoutIndex(
                activeLayoutId=layout_id,
                layouts=[LayoutEntry(id=layout_id, name=DEFAULT_LAYOUT_NAME)],
            )
            self.store.save_index(index)
            logger.info("Created default layout %s", layout_id)
        self.index = index
        return index

    def _require_index(self) -> LayoutIndex:
        if self.index is None:
            raise LayoutError("Layouts have not been loaded")
        return self.index

    def flush(self, metadata: TreeMetadata) -> None:
        """Write ``metadata`` into the active layout document."""
        active = self.active_id
        if active is not None:
            self.store.save_layout(active, metadata)

    def load(self, layout_id: str) -> TreeMetadata:
        self.get(layout_id)
        metadata = self.store.load_layout(layout_id)
        if metadata is None:
            raise LayoutError(f"Layout {layout_id} not found")
        return metadata

    def create(self, name: str, metadata: TreeMetadata, activate: bool = True) -> str:
        index = self._require_index()
        layout_id = generate_virtual_id("layout")
        self.store.save_layout(layout_id, metadata)
        layouts = [*index.layouts, LayoutEntry(id=layout_id, name=name)]
        active = layout_id if activate else index.activeLayoutId
        self._commit(LayoutIndex(activeLayoutId=active, layouts=layouts))
        return layout_id

    def activate(self, layout_id: str) -> None:
        index = self._require_index()
        self.get(layout_id)
        outgoing = index.activeLayoutId
        layouts = [
            entry.model_copy(update={"lastModified": now_ms()})
            if entry.id == outgoing
            else entry
            for entry in index.layouts
        ]
        self._commit(LayoutIndex(activeLayoutId=layout_id, layouts=layouts))

    def rename(self, layout_id: str, name: str) -> None:
        index = self._require_index()
        self.get(layout_id)
        layouts = [
            entry.model_copy(update={"name": name, "lastModified": now_ms()})
            if entry.id == layout_id
            else entry
            for entry in index.layouts
        ]
        self._commit(LayoutIndex(activeLayoutId=index.activeLayoutId, layouts=layouts))

    def delete(self, layout_id: str) -> None:
        index = self._require_index()
        if layout_id == index.activeLayoutId:
            raise LayoutError("Cannot delete the active layout")
        self.get(layout_id)
        self.store.delete_layout(layout_id)
        layouts = [entry for entry in index.layouts if entry.id != layout_id]
        self._commit(LayoutIndex(activeLayoutId=index.activeLayoutId, layouts=layouts))

    def _commit(self, index: LayoutIndex) -> None:
        self.store.save_index(index)
        self.index = index
