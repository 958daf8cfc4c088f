from __future__ import annotations

import logging
from collections.abc import Sequence

from domain.errors import NoSubblocks
from domain.models import Block, Point, Port, ViewFrame
from domain.services.block_tree import (
    BLOCK_WIDTH,
    block_origin,
    block_size,
    find_port,
    ports_on_side,
)
from domain.session import EditingSession

logger = logging.getLogger(__name__)

PORT_TOP_MARGIN = 10.0
PORT_BOTTOM_MARGIN = 10.0
PORT_OUTSET = 8.0
MIN_PORT_SPAN = 20.0
MIN_BOUNDARY_SPAN = 40.0


def enter_group(session: EditingSession, block_id: str) -> ViewFrame:
    block = session.require_in_view(block_id)
    if not block.subblocks:
        raise NoSubblocks(block_id)
    frame = ViewFrame(blocks=list(block.subblocks), enclosing_block_id=block.id)
    session.frames.append(frame)
    session.clear_selection()
    logger.debug("Entered group %s (depth %d)", block.id, session.depth)
    return frame


def exit_group(session: EditingSession) -> ViewFrame | None:
    if len(session.frames) <= 1:
        return None
    popped = session.frames[-1]
    session.commit_frame(popped)
    session.frames.pop()
    session.clear_selection()
    logger.debug("Left group %s (depth %d)", popped.enclosing_block_id, session.depth)
    return popped


def enter_path(session: EditingSession, block_ids: Sequence[str]) -> ViewFrame:
    """Open a chain of nested groups, starting from the active frame."""
    for block_id in block_ids:
        enter_group(session, block_id)
    return session.active_frame


def exit_to_root(session: EditingSession) -> None:
    while exit_group(session) is not None:
        pass


def view_offset(session: EditingSession) -> Point:
    # A single inset, regardless of nesting depth.
    if session.active_frame.is_root:
        return Point(0.0, 0.0)
    return session.layout.inner_offset


def rendered_block_origin(session: EditingSession, block: Block) -> Point:
    frame = session.active_frame
    index = max(frame.position_of(block.id), 0)
    origin = block_origin(block, index)
    offset = view_offset(session)
    return Point(origin.x + offset.x, origin.y + offset.y)


def _spacing(count: int, available: float) -> float:
    return available / (count - 1) if count > 1 else available / 2


def local_port_position(block: Block, port: Port, index: int = 0) -> Point:
    """Port position in the block's own (unshifted) frame."""
    origin = block_origin(block, index)
    size = block_size(block)
    siblings = ports_on_side(block, port.side)
    idx = next((i for i, item in enumerate(siblings) if item.id == port.id), 0)
    available = max(MIN_PORT_SPAN, size.height - PORT_TOP_MARGIN - PORT_BOTTOM_MARGIN)
    y = origin.y + PORT_TOP_MARGIN + idx * _spacing(len(siblings), available)
    if port.side == "left":
        return Point(origin.x - PORT_OUTSET, y)
    return Point(origin.x + BLOCK_WIDTH + PORT_OUTSET, y)


def boundary_port_position(session: EditingSession, block: Block, port: Port) -> Point:
    """Position of a port of the enclosing block, pinned to the inner edge of the view box."""
    layout = session.layout
    box = layout.box
    inset = layout.inner_offset
    siblings = ports_on_side(block, port.side)
    idx = next((i for i, item in enumerate(siblings) if item.id == port.id), 0)
    available = max(MIN_BOUNDARY_SPAN, box.height - layout.padding * 2)
    y = inset.y + idx * _spacing(len(siblings), available)
    if port.side == "left":
        return Point(inset.x, y)
    return Point(inset.x + box.width - layout.padding * 2, y)


def resolve_port_position(session: EditingSession, block_id: str, port_id: str) -> Point | None:
    frame = session.active_frame

    if frame.enclosing_block_id is not None and block_id == frame.enclosing_block_id:
        enclosing = session.lookup(block_id)
        port = find_port(enclosing, port_id) if enclosing else None
        if enclosing is None or port is None:
            return None
        return boundary_port_position(session, enclosing, port)

    index = frame.position_of(block_id)
    if index >= 0:
        block = frame.blocks[index]
        port = find_port(block, port_id)
        if port is None:
            return None
        position = local_port_position(block, port, index)
        offset = view_offset(session)
        return Point(position.x + offset.x, position.y + offset.y)

    block = session.lookup(block_id)
    if block is None:
        return None
    port = find_port(block, port_id)
    if port is None:
        return None
    return local_port_position(block, port)
