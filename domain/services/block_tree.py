from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from domain.errors import BlockNotFound, PortNotFound
from domain.models import Block, Point, Port, PortSide, PortTarget, Size

BLOCK_WIDTH = 160.0
MIN_BLOCK_HEIGHT = 60.0
PORT_ROW_HEIGHT = 18.0
PORT_AREA_PADDING = 16.0
DEFAULT_ORIGIN = Point(40.0, 20.0)
UNSET_STAGGER = Point(30.0, 90.0)


@dataclass(frozen=True)
class BlockLocation:
    block: Block
    parent_id: str | None
    path: tuple[str, ...]
    index: int

    @property
    def depth(self) -> int:
        return len(self.path)


class BlockIndex:
    """Id -> location index over the whole block tree, including unopened groups."""

    def __init__(self, blocks: Sequence[Block]) -> None:
        self._locations: dict[str, BlockLocation] = {}
        self._order: list[str] = []
        self._collect(blocks, None, ())

    def _collect(
        self,
        blocks: Sequence[Block],
        parent_id: str | None,
        path: tuple[str, ...],
    ) -> None:
        for idx, block in enumerate(blocks):
            if block.id not in self._locations:
                self._order.append(block.id)
            self._locations[block.id] = BlockLocation(
                block=block, parent_id=parent_id, path=path, index=idx
            )
            if block.subblocks:
                self._collect(block.subblocks, block.id, (*path, block.id))

    def __contains__(self, block_id: object) -> bool:
        return block_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def ids(self) -> set[str]:
        return set(self._locations)

    def location(self, block_id: str) -> BlockLocation | None:
        return self._locations.get(block_id)

    def get(self, block_id: str) -> Block | None:
        location = self._locations.get(block_id)
        return location.block if location else None

    def require(self, block_id: str) -> Block:
        block = self.get(block_id)
        if block is None:
            raise BlockNotFound(block_id)
        return block

    def blocks(self) -> list[Block]:
        return [self._locations[block_id].block for block_id in self._order]

    def is_top_level(self, block_id: str) -> bool:
        location = self._locations.get(block_id)
        return location is not None and location.parent_id is None

    def is_within(self, block_id: str, ancestor_ids: Iterable[str]) -> bool:
        """True when the block is one of ``ancestor_ids`` or nested below one of them."""
        location = self._locations.get(block_id)
        if location is None:
            return False
        wanted = set(ancestor_ids)
        return block_id in wanted or any(ancestor in wanted for ancestor in location.path)

    def subtree_ids(self, block_id: str) -> set[str]:
        block = self.get(block_id)
        if block is None:
            return set()
        return {item.id for item in iter_blocks([block])}


def iter_blocks(blocks: Sequence[Block]) -> Iterator[Block]:
    for block in blocks:
        yield block
        if block.subblocks:
            yield from iter_blocks(block.subblocks)


def lookup(blocks: Sequence[Block], block_id: str) -> Block | None:
    for block in blocks:
        if block.id == block_id:
            return block
        if block.subblocks:
            found = lookup(block.subblocks, block_id)
            if found is not None:
                return found
    return None


def find_port(block: Block, port_id: str) -> Port | None:
    for port in block.ports:
        if port.id == port_id:
            return port
    return None


def require_port(block: Block, port_id: str) -> Port:
    port = find_port(block, port_id)
    if port is None:
        raise PortNotFound(block.id, port_id)
    return port


def ports_on_side(block: Block, side: PortSide) -> list[Port]:
    return [port for port in block.ports if port.side == side]


def block_size(block: Block) -> Size:
    left = len(ports_on_side(block, "left"))
    right = len(ports_on_side(block, "right"))
    rows = max(left, right, 1)
    height = max(MIN_BLOCK_HEIGHT, PORT_AREA_PADDING + rows * PORT_ROW_HEIGHT)
    return Size(BLOCK_WIDTH, height)


def block_origin(block: Block, index: int = 0) -> Point:
    x = block.x if block.x is not None else DEFAULT_ORIGIN.x + index * UNSET_STAGGER.x
    y = block.y if block.y is not None else DEFAULT_ORIGIN.y + index * UNSET_STAGGER.y
    return Point(float(x), float(y))


def port_label(block: Block, port: Port | None, port_id: str | None = None) -> str:
    port_name = (port.name if port else None) or (port.id if port else port_id) or ""
    return f"{block.name or block.id}.{port_name}"


def resolve_port_name(blocks: Sequence[Block], ref: PortTarget) -> str | None:
    block = lookup(blocks, ref.block_id)
    if block is None:
        return None
    port = find_port(block, ref.port_id)
    if port is None or not port.name:
        return None
    return port.name


def clear_targets_into(
    blocks: Sequence[Block],
    block_ids: set[str],
    port_id: str | None = None,
) -> int:
    """Clear every port target that points at ``block_ids`` (or one port of them)."""
    cleared = 0
    for block in iter_blocks(blocks):
        for port in block.ports:
            target = port.target
            if target is None or target.block_id not in block_ids:
                continue
            if port_id is not None and target.port_id != port_id:
                continue
            port.target = None
            cleared += 1
    return cleared
