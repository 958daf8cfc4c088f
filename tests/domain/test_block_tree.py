from __future__ import annotations

import pytest

from domain.errors import BlockNotFound, PortNotFound
from domain.models import Block, Diagram, Port, PortTarget
from domain.services.block_tree import (
    BlockIndex,
    block_origin,
    block_size,
    clear_targets_into,
    iter_blocks,
    lookup,
    port_label,
    require_port,
    resolve_port_name,
)


def test_block_size_grows_with_port_rows() -> None:
    assert block_size(Block(id="b")).height == 60
    crowded = Block(id="c", ports=[Port(id=f"p{i}", side="left") for i in range(3)])
    assert block_size(crowded).height == 70
    assert block_size(crowded).width == 160


def test_block_origin_staggers_unset_positions() -> None:
    origin = block_origin(Block(id="b"), index=2)

    assert (origin.x, origin.y) == (100, 200)
    placed = block_origin(Block(id="p", x=5, y=7), index=2)
    assert (placed.x, placed.y) == (5, 7)


def test_index_records_paths_and_parents(pipeline: Diagram) -> None:
    index = BlockIndex(pipeline.blocks)
    location = index.location("filter")

    assert location is not None
    assert location.parent_id == "proc"
    assert location.path == ("proc",)
    assert location.depth == 1
    assert index.is_top_level("proc")
    assert not index.is_top_level("filter")
    assert index.is_within("filter", {"proc"})
    assert not index.is_within("sink", {"proc"})
    assert index.subtree_ids("proc") == {"proc", "parse", "filter"}
    assert [block.id for block in index.blocks()] == ["src", "proc", "parse", "filter", "sink"]
    assert len(index) == 5


def test_index_require_raises_for_unknown_block(pipeline: Diagram) -> None:
    with pytest.raises(BlockNotFound):
        BlockIndex(pipeline.blocks).require("missing")


def test_lookup_searches_nested_blocks(pipeline: Diagram) -> None:
    found = lookup(pipeline.blocks, "parse")

    assert found is not None
    assert found.name == "Parser"
    assert lookup(pipeline.blocks, "nope") is None
    assert len(list(iter_blocks(pipeline.blocks))) == 5


def test_require_port_raises_for_unknown_port(pipeline: Diagram) -> None:
    with pytest.raises(PortNotFound):
        require_port(pipeline.blocks[0], "missing")


def test_port_names_and_labels(pipeline: Diagram) -> None:
    src = pipeline.blocks[0]

    named = PortTarget(block_id="src", port_id="out")
    missing = PortTarget(block_id="src", port_id="x")

    assert resolve_port_name(pipeline.blocks, named) == "records"
    assert resolve_port_name(pipeline.blocks, missing) is None
    assert port_label(src, src.ports[0]) == "Source.records"
    assert port_label(src, None, "gone") == "Source.gone"


def test_clear_targets_into_removes_dangling_edges(pipeline: Diagram) -> None:
    cleared = clear_targets_into(pipeline.blocks, {"sink"})

    assert cleared == 1
    assert pipeline.blocks[1].ports[1].target is None
    assert pipeline.blocks[0].ports[0].target is not None


def test_clear_targets_into_single_port(pipeline: Diagram) -> None:
    cleared = clear_targets_into(pipeline.blocks, {"proc"}, port_id="out")

    assert cleared == 1
    filter_block = lookup(pipeline.blocks, "filter")
    assert filter_block is not None
    assert filter_block.ports[1].target is None
    assert pipeline.blocks[0].ports[0].target == PortTarget(block_id="proc", port_id="in")
