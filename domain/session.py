from __future__ import annotations

import logging
from collections.abc import Container
from dataclasses import dataclass

from domain.errors import BlockNotFound, PersistenceError, StoreUnavailable
from domain.ids import IdFactory, new_unique_id
from domain.models import Block, CanvasLayout, Diagram, Point, ViewFrame
from domain.ports.repositories import DiagramStore
from domain.services.block_tree import BlockIndex

logger = logging.getLogger(__name__)


@dataclass
class DragState:
    block_id: str
    offset: Point


class EditingSession:
    """Editing state for one diagram: the tree, the view stack, selection and drag.

    Every operation in ``domain.services`` takes the session explicitly. The view
    frames hold their own block lists; edits to a frame are written back into the
    parent structure with :meth:`commit_frame`.
    """

    def __init__(
        self,
        diagram: Diagram,
        *,
        layout: CanvasLayout | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.diagram = diagram
        self.layout = layout or CanvasLayout()
        self.frames: list[ViewFrame] = [ViewFrame(blocks=list(diagram.blocks))]
        self.selected_block_id: str | None = None
        self.selection: set[str] = set()
        self.drag: DragState | None = None
        self._id_factory = id_factory or new_unique_id
        self._index: BlockIndex | None = None

    @classmethod
    def open(
        cls,
        store: DiagramStore,
        diagram_id: str,
        *,
        layout: CanvasLayout | None = None,
        id_factory: IdFactory | None = None,
    ) -> EditingSession:
        diagram = store.get(diagram_id)
        return cls(diagram, layout=layout, id_factory=id_factory)

    @property
    def active_frame(self) -> ViewFrame:
        return self.frames[-1]

    @property
    def depth(self) -> int:
        return len(self.frames) - 1

    @property
    def index(self) -> BlockIndex:
        if self._index is None:
            self._index = BlockIndex(self.diagram.blocks)
        return self._index

    def invalidate_index(self) -> None:
        self._index = None

    def lookup(self, block_id: str) -> Block | None:
        return self.index.get(block_id)

    def require_block(self, block_id: str) -> Block:
        return self.index.require(block_id)

    def require_in_view(self, block_id: str) -> Block:
        for block in self.active_frame.blocks:
            if block.id == block_id:
                return block
        raise BlockNotFound(block_id)

    def enclosing_block(self) -> Block | None:
        enclosing_id = self.active_frame.enclosing_block_id
        if enclosing_id is None:
            return None
        return self.lookup(enclosing_id)

    def next_id(self, prefix: str, taken: Container[str] | None = None) -> str:
        return self._id_factory(prefix, self.index.ids() if taken is None else taken)

    def commit_frame(self, frame: ViewFrame | None = None) -> None:
        target = frame or self.active_frame
        if target.enclosing_block_id is None:
            self.diagram.blocks = list(target.blocks)
        else:
            enclosing = self.require_block(target.enclosing_block_id)
            enclosing.subblocks = list(target.blocks)
        self.invalidate_index()

    def replace_diagram(self, diagram: Diagram) -> None:
        self.end_drag()
        self.diagram = diagram
        self.frames = [ViewFrame(blocks=list(diagram.blocks))]
        self.clear_selection()
        self.invalidate_index()

    def select(self, block_id: str | None) -> None:
        self.selected_block_id = block_id
        self.selection.clear()

    def toggle_selection(self, block_id: str) -> bool:
        self.require_in_view(block_id)
        if block_id in self.selection:
            self.selection.discard(block_id)
            return False
        self.selection.add(block_id)
        return True

    def clear_selection(self) -> None:
        self.selected_block_id = None
        self.selection.clear()

    def end_drag(self) -> None:
        if self.drag is not None:
            logger.debug("Released drag of block %s", self.drag.block_id)
        self.drag = None

    def close(self) -> None:
        self.end_drag()

    def save(self, store: DiagramStore) -> Diagram:
        """Persist the tree. On failure the in-memory edits stay so the caller can retry."""
        self.commit_frame()
        try:
            saved = store.update(self.diagram.id, self.diagram)
        except StoreUnavailable:
            logger.exception("Saving diagram %s failed", self.diagram.id)
            raise
        except OSError as exc:
            logger.exception("Saving diagram %s failed", self.diagram.id)
            raise PersistenceError(f"Failed to save diagram {self.diagram.id}: {exc}") from exc
        logger.info("Saved diagram %s", self.diagram.id)
        return saved
