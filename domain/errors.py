from __future__ import annotations

from collections.abc import Iterable


class DiagramError(Exception):
    """Base class for every error raised by the diagram model and its stores."""


class NotFound(DiagramError):
    pass


class DiagramNotFound(NotFound):
    def __init__(self, diagram_id: str) -> None:
        super().__init__(f"Diagram not found: {diagram_id}")
        self.diagram_id = diagram_id


class BlockNotFound(NotFound):
    def __init__(self, block_id: str) -> None:
        super().__init__(f"Block not found: {block_id}")
        self.block_id = block_id


class PortNotFound(NotFound):
    def __init__(self, block_id: str, port_id: str) -> None:
        super().__init__(f"Port not found: {block_id}:{port_id}")
        self.block_id = block_id
        self.port_id = port_id


class InsufficientSelection(DiagramError):
    def __init__(self, selected: int, missing: Iterable[str] = ()) -> None:
        self.selected = selected
        self.missing = sorted(missing)
        if self.missing:
            message = f"Blocks not in the current view: {', '.join(self.missing)}"
        else:
            message = f"Select at least two sibling blocks to group (got {selected})."
        super().__init__(message)


class NoSubblocks(DiagramError):
    def __init__(self, block_id: str) -> None:
        super().__init__(f"Block has no subblocks to enter: {block_id}")
        self.block_id = block_id


class TreeStructureError(DiagramError, ValueError):
    """Raised when block ids repeat or a block appears as its own descendant."""


class MalformedImport(DiagramError):
    pass


class PersistenceError(DiagramError):
    pass


class StoreUnavailable(PersistenceError):
    pass
