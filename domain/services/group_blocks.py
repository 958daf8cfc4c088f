from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from domain.errors import InsufficientSelection
from domain.models import DEFAULT_GROUP_NAME, Block, Port, PortTarget
from domain.services.block_tree import DEFAULT_ORIGIN, find_port, port_label, resolve_port_name
from domain.session import EditingSession

logger = logging.getLogger(__name__)

GROUP_ID_PREFIX = "g"


@dataclass
class BoundaryPort:
    block_id: str
    port_id: str
    out_target: PortTarget | None = None
    in_sources: list[PortTarget] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.block_id, self.port_id)


@dataclass
class ProxySet:
    ports: list[Port] = field(default_factory=list)
    inbound: dict[tuple[str, str], str] = field(default_factory=dict)
    outbound: dict[tuple[str, str], str] = field(default_factory=dict)


@dataclass(frozen=True)
class GroupingResult:
    group: Block
    inbound: list[Port]
    outbound: list[Port]


class BlockGrouper:
    """Collapse sibling blocks of the active view into one group block.

    Edges crossing the selection boundary are carried by proxy ports on the new
    group: a left proxy per internal port fed from outside and a right proxy per
    internal port feeding something outside.
    """

    def __init__(self, name: str = DEFAULT_GROUP_NAME) -> None:
        self.name = name

    def group(
        self,
        session: EditingSession,
        block_ids: Iterable[str] | None = None,
    ) -> GroupingResult:
        frame = session.active_frame
        requested = set(session.selection if block_ids is None else block_ids)
        selected = [block for block in frame.blocks if block.id in requested]
        if len(selected) < 2 or len(selected) != len(requested):
            missing = requested - {block.id for block in selected}
            raise InsufficientSelection(len(selected), missing)

        selected_ids = {block.id for block in selected}
        remaining = [block for block in frame.blocks if block.id not in selected_ids]
        external = list(remaining)
        enclosing = session.enclosing_block()
        if enclosing is not None:
            external.append(enclosing)
        external_ids = {block.id for block in external}

        boundary = self._classify(selected, external, selected_ids, external_ids)

        group_id = session.next_id(GROUP_ID_PREFIX)
        proxies = self._build_proxies(session, group_id, selected, boundary)

        for block in external:
            for port in block.ports:
                target = port.target
                if target is None or target.block_id not in selected_ids:
                    continue
                proxy_id = proxies.inbound.get(target.key())
                if proxy_id is not None:
                    port.target = PortTarget(block_id=group_id, port_id=proxy_id)

        for block in selected:
            for port in block.ports:
                proxy_id = proxies.outbound.get((block.id, port.id))
                if proxy_id is not None:
                    port.target = PortTarget(block_id=group_id, port_id=proxy_id)

        origin_x = min(
            block.x if block.x is not None else DEFAULT_ORIGIN.x for block in selected
        )
        origin_y = min(
            block.y if block.y is not None else DEFAULT_ORIGIN.y for block in selected
        )
        for block in selected:
            block.x = (block.x if block.x is not None else DEFAULT_ORIGIN.x) - origin_x
            block.y = (block.y if block.y is not None else DEFAULT_ORIGIN.y) - origin_y

        group = Block(
            id=group_id,
            name=self.name,
            x=origin_x,
            y=origin_y,
            ports=proxies.ports,
            requirements=[],
            subblocks=selected,
        )
        inbound = [port for port in group.ports if port.side == "left"]
        outbound = [port for port in group.ports if port.side == "right"]

        insert_at = frame.position_of(selected[0].id)
        blocks = [block for block in frame.blocks if block.id not in selected_ids]
        blocks.insert(insert_at, group)
        frame.blocks = blocks
        session.commit_frame()

        session.clear_selection()
        session.selected_block_id = group_id
        logger.info(
            "Grouped %d blocks into %s (%d inbound, %d outbound proxies)",
            len(selected),
            group_id,
            len(inbound),
            len(outbound),
        )
        return GroupingResult(group=group, inbound=inbound, outbound=outbound)

    def _classify(
        self,
        selected: list[Block],
        external: list[Block],
        selected_ids: set[str],
        external_ids: set[str],
    ) -> dict[tuple[str, str], BoundaryPort]:
        boundary: dict[tuple[str, str], BoundaryPort] = {}

        def entry(block_id: str, port_id: str) -> BoundaryPort:
            key = (block_id, port_id)
            if key not in boundary:
                boundary[key] = BoundaryPort(block_id=block_id, port_id=port_id)
            return boundary[key]

        for block in selected:
            for port in block.ports:
                target = port.target
                if target is None or target.block_id not in external_ids:
                    continue
                # A port carries one target, so each key gets at most one outbound proxy.
                entry(block.id, port.id).out_target = target.model_copy()

        for block in external:
            for port in block.ports:
                target = port.target
                if target is None or target.block_id not in selected_ids:
                    continue
                item = entry(target.block_id, target.port_id)
                item.in_sources.append(PortTarget(block_id=block.id, port_id=port.id))

        return boundary

    def _build_proxies(
        self,
        session: EditingSession,
        group_id: str,
        selected: list[Block],
        boundary: dict[tuple[str, str], BoundaryPort],
    ) -> ProxySet:
        by_id = {block.id: block for block in selected}
        tree = session.diagram.blocks
        proxies = ProxySet()
        counter = 0

        for key, item in boundary.items():
            internal_block = by_id[item.block_id]
            internal_label = port_label(
                internal_block, find_port(internal_block, item.port_id), item.port_id
            )
            if item.in_sources:
                proxy_id = f"{group_id}-in-{counter}"
                counter += 1
                name = resolve_port_name(tree, item.in_sources[0]) or internal_label
                proxies.ports.append(
                    Port(
                        id=proxy_id,
                        name=name,
                        side="left",
                        target=PortTarget(block_id=item.block_id, port_id=item.port_id),
                    )
                )
                proxies.inbound[key] = proxy_id
            if item.out_target is not None:
                proxy_id = f"{group_id}-out-{counter}"
                counter += 1
                name = resolve_port_name(tree, item.out_target) or internal_label
                proxies.ports.append(
                    Port(id=proxy_id, name=name, side="right", target=item.out_target)
                )
                proxies.outbound[key] = proxy_id

        return proxies
