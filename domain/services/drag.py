from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from domain.models import Block, Point
from domain.services.block_tree import block_size
from domain.services.view_navigation import rendered_block_origin, view_offset
from domain.session import DragState, EditingSession

CANVAS_EDGE_MARGIN = 20.0
MIN_DRAG_EXTENT = 100.0


def clamp_block_position(session: EditingSession, block: Block, x: float, y: float) -> Point:
    """Keep a block inside ``[0, maxX - width] x [0, maxY - height]`` of the current canvas."""
    canvas = session.layout.canvas_size
    offset = view_offset(session)
    size = block_size(block)
    max_x = max(MIN_DRAG_EXTENT, canvas.width - offset.x - CANVAS_EDGE_MARGIN)
    max_y = max(MIN_DRAG_EXTENT, canvas.height - offset.y - CANVAS_EDGE_MARGIN)
    return Point(
        max(0.0, min(x, max_x - size.width)),
        max(0.0, min(y, max_y - size.height)),
    )


def begin_drag(session: EditingSession, block_id: str, pointer: Point) -> DragState:
    block = session.require_in_view(block_id)
    session.end_drag()
    rendered = rendered_block_origin(session, block)
    state = DragState(
        block_id=block_id,
        offset=Point(pointer.x - rendered.x, pointer.y - rendered.y),
    )
    session.drag = state
    return state


def drag_to(session: EditingSession, pointer: Point) -> Point | None:
    """Move the dragged block so it stays under the pointer at the captured offset."""
    state = session.drag
    if state is None:
        return None
    block = next((item for item in session.active_frame.blocks if item.id == state.block_id), None)
    if block is None:
        return None
    offset = view_offset(session)
    local_x = pointer.x - state.offset.x - offset.x
    local_y = pointer.y - state.offset.y - offset.y
    clamped = clamp_block_position(session, block, local_x, local_y)
    block.x = clamped.x
    block.y = clamped.y
    return clamped


def end_drag(session: EditingSession) -> None:
    session.end_drag()


@contextmanager
def dragging(session: EditingSession, block_id: str, pointer: Point) -> Iterator[DragState]:
    state = begin_drag(session, block_id, pointer)
    try:
        yield state
    finally:
        session.end_drag()
