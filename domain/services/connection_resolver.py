from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from domain.models import Block, Point, PortTarget
from domain.services.block_tree import find_port, iter_blocks, lookup
from domain.services.view_navigation import resolve_port_position
from domain.session import EditingSession


@dataclass(frozen=True)
class ResolvedConnection:
    source: PortTarget
    target: PortTarget
    start: Point
    end: Point
    crosses_boundary: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "source": {"blockId": self.source.block_id, "portId": self.source.port_id},
            "target": {"blockId": self.target.block_id, "portId": self.target.port_id},
            "start": {"x": self.start.x, "y": self.start.y},
            "end": {"x": self.end.x, "y": self.end.y},
            "crossesBoundary": self.crosses_boundary,
        }


def resolve_connections(session: EditingSession) -> list[ResolvedConnection]:
    frame = session.active_frame
    index = session.index
    view_ids = set(frame.block_ids())
    resolved: list[ResolvedConnection] = []

    for block in frame.blocks:
        for port in block.ports:
            target = port.target
            if target is None:
                continue
            # Edges into unopened groups stay hidden until the group is entered.
            if frame.is_root and not (
                index.is_top_level(block.id) and index.is_top_level(target.block_id)
            ):
                continue
            connection = _resolve(session, PortTarget(block_id=block.id, port_id=port.id), target)
            if connection is not None:
                resolved.append(connection)

    for block in index.blocks():
        if index.is_within(block.id, view_ids):
            continue
        for port in block.ports:
            target = port.target
            if target is None or target.block_id not in view_ids:
                continue
            connection = _resolve(
                session,
                PortTarget(block_id=block.id, port_id=port.id),
                target,
                crosses_boundary=True,
            )
            if connection is not None:
                resolved.append(connection)

    return resolved


def _resolve(
    session: EditingSession,
    source: PortTarget,
    target: PortTarget,
    *,
    crosses_boundary: bool = False,
) -> ResolvedConnection | None:
    start = resolve_port_position(session, source.block_id, source.port_id)
    end = resolve_port_position(session, target.block_id, target.port_id)
    if start is None or end is None:
        return None
    return ResolvedConnection(
        source=source,
        target=target,
        start=start,
        end=end,
        crosses_boundary=crosses_boundary,
    )


def logical_edges(blocks: Sequence[Block]) -> set[tuple[tuple[str, str], tuple[str, str]]]:
    """Edges between ordinary ports, following proxy hops through group ports.

    An edge that lands on a port of a group block is forwarded along that port's
    own target until it reaches a port of a non-group block. Dangling chains are
    reported against the last port reached.
    """
    edges: set[tuple[tuple[str, str], tuple[str, str]]] = set()
    for block in iter_blocks(blocks):
        if block.is_group():
            continue
        for port in block.ports:
            if port.target is None:
                continue
            end = _follow_proxies(blocks, port.target)
            edges.add(((block.id, port.id), end))
    return edges


def _follow_proxies(blocks: Sequence[Block], start: PortTarget) -> tuple[str, str]:
    current = start
    visited: set[tuple[str, str]] = set()
    while current.key() not in visited:
        visited.add(current.key())
        block = lookup(blocks, current.block_id)
        if block is None or not block.is_group():
            break
        port = find_port(block, current.port_id)
        if port is None or port.target is None:
            break
        current = port.target
    return current.key()
