from __future__ import annotations

from collections.abc import Callable

import pytest

from domain.errors import InsufficientSelection
from domain.models import Block, Diagram, Port, PortTarget
from domain.services.block_tree import BlockIndex, iter_blocks
from domain.services.connection_resolver import logical_edges
from domain.services.group_blocks import BlockGrouper
from domain.services.view_navigation import enter_group, exit_group
from domain.session import EditingSession

SessionFactory = Callable[[Diagram], EditingSession]


def _example_one() -> Diagram:
    return Diagram(
        id="ex1",
        blocks=[
            Block(
                id="A",
                name="A",
                x=40,
                y=20,
                ports=[Port(id="o1", target=PortTarget(block_id="B", port_id="i1"))],
            ),
            Block(id="B", name="B", x=240, y=20, ports=[Port(id="i1", side="left")]),
        ],
    )


def _all_port_ids(diagram: Diagram) -> set[tuple[str, str]]:
    return {(block.id, port.id) for block in iter_blocks(diagram.blocks) for port in block.ports}


def test_single_block_selection_is_rejected(session_factory: SessionFactory) -> None:
    diagram = _example_one()
    session = session_factory(diagram)
    before = diagram.model_dump()

    with pytest.raises(InsufficientSelection):
        BlockGrouper().group(session, ["A"])
    assert diagram.model_dump() == before


def test_selection_outside_active_view_is_rejected(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(pipeline)

    with pytest.raises(InsufficientSelection):
        BlockGrouper().group(session, ["src", "parse"])
    assert [block.id for block in session.diagram.blocks] == ["src", "proc", "sink"]


def test_rejection_names_blocks_missing_from_view(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(pipeline)

    with pytest.raises(InsufficientSelection, match="parse") as excinfo:
        BlockGrouper().group(session, ["src", "proc", "parse"])

    assert excinfo.value.missing == ["parse"]
    assert excinfo.value.selected == 2
    assert [block.id for block in session.diagram.blocks] == ["src", "proc", "sink"]


def test_fully_internal_edge_needs_no_proxies(session_factory: SessionFactory) -> None:
    session = session_factory(_example_one())

    result = BlockGrouper().group(session, ["A", "B"])

    group = result.group
    assert group.id == "g1"
    assert group.name == "Group"
    assert group.ports == []
    assert group.requirements == []
    assert (group.x, group.y) == (40, 20)
    assert [block.id for block in group.subblocks or []] == ["A", "B"]
    a, b = group.subblocks or []
    assert (a.x, a.y, b.x, b.y) == (0, 0, 200, 0)
    assert a.ports[0].target == PortTarget(block_id="B", port_id="i1")
    assert [block.id for block in session.diagram.blocks] == ["g1"]
    assert session.selected_block_id == "g1"
    assert session.selection == set()


def test_inbound_edge_gets_left_proxy(abc: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(abc)

    result = BlockGrouper("Pair").group(session, ["B", "C"])

    assert len(result.inbound) == 1
    assert result.outbound == []
    proxy = result.inbound[0]
    assert proxy.id == "g1-in-0"
    assert proxy.side == "left"
    assert proxy.name == "feed"
    assert proxy.target == PortTarget(block_id="B", port_id="i1")
    alpha = session.diagram.blocks[0]
    assert alpha.ports[0].target == PortTarget(block_id="g1", port_id="g1-in-0")
    beta = session.require_block("B")
    assert beta.ports[0].target is None
    assert [block.id for block in session.diagram.blocks] == ["A", "g1"]


def test_outbound_edge_relocates_to_right_proxy(
    abc: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(abc)

    result = BlockGrouper().group(session, ["A", "B"])

    assert result.inbound == []
    proxy = result.outbound[0]
    assert proxy.id == "g1-out-0"
    assert proxy.side == "right"
    assert proxy.name == "input"
    assert proxy.target == PortTarget(block_id="C", port_id="i1")
    beta = session.require_block("B")
    assert beta.ports[1].target == PortTarget(block_id="g1", port_id="g1-out-0")
    assert [block.id for block in session.diagram.blocks] == ["g1", "C"]


def test_proxy_name_falls_back_to_internal_label(
    abc: Diagram, session_factory: SessionFactory
) -> None:
    abc.blocks[0].ports[0].name = None
    session = session_factory(abc)

    result = BlockGrouper().group(session, ["B", "C"])

    assert result.inbound[0].name == "Beta.input"


def test_grouping_rebases_to_group_origin(abc: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(abc)

    group = BlockGrouper().group(session, ["B", "C"]).group

    assert (group.x, group.y) == (240, 60)
    assert [(block.x, block.y) for block in group.subblocks or []] == [(0, 0), (200, 40)]


def test_unset_positions_use_default_origin(session_factory: SessionFactory) -> None:
    diagram = Diagram(
        id="d",
        blocks=[Block(id="a"), Block(id="b", x=100, y=200)],
    )
    session = session_factory(diagram)

    group = BlockGrouper().group(session, ["a", "b"]).group

    assert (group.x, group.y) == (40, 20)
    assert [(block.x, block.y) for block in group.subblocks or []] == [(0, 0), (60, 180)]


@pytest.mark.parametrize("selection", [["B", "C"], ["A", "B"], ["A", "C"]])
def test_grouping_preserves_logical_edges(
    abc: Diagram, session_factory: SessionFactory, selection: list[str]
) -> None:
    before = logical_edges(abc.blocks)
    session = session_factory(abc)

    BlockGrouper().group(session, selection)

    assert logical_edges(session.diagram.blocks) == before


def test_grouping_never_reuses_ids(abc: Diagram, session_factory: SessionFactory) -> None:
    block_ids = BlockIndex(abc.blocks).ids()
    port_ids = _all_port_ids(abc)
    session = session_factory(abc)

    group = BlockGrouper().group(session, ["A", "B"]).group

    assert group.id not in block_ids
    assert not {(group.id, port.id) for port in group.ports} & port_ids
    assert len({port.id for port in group.ports}) == len(group.ports)


def test_grouping_uses_current_selection(abc: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(abc)
    session.toggle_selection("A")
    session.toggle_selection("C")

    result = BlockGrouper().group(session)

    assert [block.id for block in result.group.subblocks or []] == ["A", "C"]
    assert session.selected_block_id == result.group.id
    assert [block.id for block in session.diagram.blocks] == [result.group.id, "B"]


def test_grouping_inside_nested_view_treats_enclosing_block_as_external(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    before = logical_edges(pipeline.blocks)
    session = session_factory(pipeline)
    enter_group(session, "proc")

    result = BlockGrouper().group(session, ["parse", "filter"])

    assert [port.id for port in result.group.ports] == ["g1-out-0", "g1-in-1"]
    assert [port.name for port in result.group.ports] == ["clean", "raw"]
    proc = session.require_block("proc")
    assert proc.ports[0].target == PortTarget(block_id="g1", port_id="g1-in-1")
    assert [block.id for block in proc.subblocks or []] == ["g1"]
    assert result.group.ports[0].target == PortTarget(block_id="proc", port_id="out")

    exit_group(session)
    assert logical_edges(session.diagram.blocks) == before


def test_sources_feeding_one_port_share_a_proxy(
    abc: Diagram, session_factory: SessionFactory
) -> None:
    abc.blocks.append(
        Block(
            id="D",
            name="Delta",
            x=40,
            y=200,
            ports=[Port(id="o1", name="extra", target=PortTarget(block_id="B", port_id="i1"))],
        )
    )
    session = session_factory(abc)

    result = BlockGrouper().group(session, ["B", "C"])

    assert [port.id for port in result.inbound] == ["g1-in-0"]
    assert result.inbound[0].name == "feed"
    delta = session.require_block("D")
    assert delta.ports[0].target == PortTarget(block_id="g1", port_id="g1-in-0")
