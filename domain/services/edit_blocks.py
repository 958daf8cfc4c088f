from __future__ import annotations

import logging
from typing import Literal

from domain.errors import NotFound
from domain.models import DEFAULT_BLOCK_NAME, Block, Point, Port, PortSide, PortTarget, Requirement
from domain.services.block_tree import clear_targets_into, require_port
from domain.services.drag import clamp_block_position
from domain.session import EditingSession

logger = logging.getLogger(__name__)

NEW_BLOCK_X = 40.0
NEW_BLOCK_ROW = 70.0
NEW_BLOCK_GAP = 20.0
EMPTY_VIEW_Y = 20.0


def add_block(session: EditingSession, name: str = DEFAULT_BLOCK_NAME) -> Block:
    frame = session.active_frame
    if frame.blocks:
        bottom = max(
            (block.y if block.y is not None else EMPTY_VIEW_Y) + NEW_BLOCK_ROW
            for block in frame.blocks
        )
    else:
        bottom = EMPTY_VIEW_Y
    block = Block(id=session.next_id("b"), name=name, x=NEW_BLOCK_X, y=bottom + NEW_BLOCK_GAP)
    frame.blocks.append(block)
    session.commit_frame()
    session.select(block.id)
    return block


def remove_block(session: EditingSession, block_id: str) -> Block:
    """Delete a block of the active view and clear every target into its subtree."""
    block = session.require_in_view(block_id)
    removed_ids = session.index.subtree_ids(block_id)
    frame = session.active_frame
    frame.blocks = [item for item in frame.blocks if item.id != block_id]
    session.commit_frame()
    cleared = clear_targets_into(session.diagram.blocks, removed_ids)
    if session.selected_block_id in removed_ids:
        session.selected_block_id = None
    session.selection -= removed_ids
    logger.info("Removed block %s (%d dangling targets cleared)", block_id, cleared)
    return block


def rename_block(session: EditingSession, block_id: str, name: str) -> Block:
    block = session.require_block(block_id)
    block.name = name
    return block


def set_block_position(session: EditingSession, block_id: str, x: float, y: float) -> Point:
    block = session.require_in_view(block_id)
    clamped = clamp_block_position(session, block, x, y)
    block.x = clamped.x
    block.y = clamped.y
    return clamped


def add_port(
    session: EditingSession,
    block_id: str,
    side: PortSide = "right",
    name: str = "port",
) -> Port:
    block = session.require_block(block_id)
    taken = {item.id for item in block.ports}
    port = Port(id=session.next_id(f"{block_id}-p", taken), name=name, side=side)
    block.ports.append(port)
    return port


def remove_port(session: EditingSession, block_id: str, port_id: str) -> Port:
    block = session.require_block(block_id)
    port = require_port(block, port_id)
    block.ports = [item for item in block.ports if item.id != port_id]
    block.requirements = [item for item in block.requirements if item.port_id != port_id]
    clear_targets_into(session.diagram.blocks, {block_id}, port_id=port_id)
    return port


def edit_port(
    session: EditingSession,
    block_id: str,
    port_id: str,
    *,
    name: str | None = None,
    side: PortSide | None = None,
) -> Port:
    port = require_port(session.require_block(block_id), port_id)
    if name is not None:
        port.name = name
    if side is not None:
        port.side = side
    return port


def move_port(
    session: EditingSession,
    block_id: str,
    port_id: str,
    direction: Literal["up", "down"],
) -> int:
    block = session.require_block(block_id)
    require_port(block, port_id)
    idx = next(i for i, port in enumerate(block.ports) if port.id == port_id)
    new_idx = idx - 1 if direction == "up" else idx + 1
    if new_idx < 0 or new_idx >= len(block.ports):
        return idx
    ports = list(block.ports)
    ports[idx], ports[new_idx] = ports[new_idx], ports[idx]
    block.ports = ports
    return new_idx


def connect(session: EditingSession, source: PortTarget, target: PortTarget) -> Port | None:
    """Point ``source`` at ``target``. Both may sit anywhere in the tree.

    Connecting a port to itself is ignored and returns ``None``.
    """
    source_port = require_port(session.require_block(source.block_id), source.port_id)
    require_port(session.require_block(target.block_id), target.port_id)
    if source.key() == target.key():
        return None
    source_port.target = PortTarget(block_id=target.block_id, port_id=target.port_id)
    logger.debug(
        "Connected %s:%s -> %s:%s",
        source.block_id,
        source.port_id,
        target.block_id,
        target.port_id,
    )
    return source_port


def disconnect(session: EditingSession, source: PortTarget) -> Port:
    port = require_port(session.require_block(source.block_id), source.port_id)
    port.target = None
    return port


def add_requirement(
    session: EditingSession,
    block_id: str,
    text: str = "New requirement",
    port_id: str | None = None,
) -> Requirement:
    block = session.require_block(block_id)
    if port_id is not None:
        require_port(block, port_id)
    taken = {item.id for item in block.requirements}
    requirement = Requirement(id=session.next_id("req", taken), text=text, port_id=port_id)
    block.requirements.append(requirement)
    return requirement


def edit_requirement(
    session: EditingSession,
    block_id: str,
    requirement_id: str,
    text: str,
) -> Requirement:
    requirement = _require_requirement(session.require_block(block_id), requirement_id)
    requirement.text = text
    return requirement


def remove_requirement(session: EditingSession, block_id: str, requirement_id: str) -> Requirement:
    block = session.require_block(block_id)
    requirement = _require_requirement(block, requirement_id)
    block.requirements = [item for item in block.requirements if item.id != requirement_id]
    return requirement


def _require_requirement(block: Block, requirement_id: str) -> Requirement:
    for requirement in block.requirements:
        if requirement.id == requirement_id:
            return requirement
    raise NotFound(f"Requirement not found: {block.id}:{requirement_id}")
