from __future__ import annotations

from collections.abc import Callable

import pytest

from adapters.filesystem.json_utils import dump_json_bytes
from domain.errors import BlockNotFound, NoSubblocks
from domain.models import Diagram, Point
from domain.services.block_tree import find_port
from domain.services.view_navigation import (
    enter_group,
    enter_path,
    exit_group,
    exit_to_root,
    local_port_position,
    rendered_block_origin,
    resolve_port_position,
    view_offset,
)
from domain.session import EditingSession

SessionFactory = Callable[[Diagram], EditingSession]


def test_enter_group_pushes_frame(pipeline: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(pipeline)
    session.select("src")

    frame = enter_group(session, "proc")

    assert session.depth == 1
    assert frame.enclosing_block_id == "proc"
    assert frame.block_ids() == ["parse", "filter"]
    assert session.selected_block_id is None
    assert view_offset(session) == Point(56, 56)


def test_enter_group_without_subblocks_is_rejected(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(pipeline)

    with pytest.raises(NoSubblocks):
        enter_group(session, "src")
    with pytest.raises(BlockNotFound):
        enter_group(session, "parse")
    assert session.depth == 0


def test_exit_group_at_root_is_noop(pipeline: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(pipeline)

    assert exit_group(session) is None
    assert session.depth == 0


def test_enter_then_exit_leaves_serialized_form_unchanged(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    before = dump_json_bytes(pipeline.to_payload())
    session = session_factory(pipeline)

    enter_group(session, "proc")
    popped = exit_group(session)

    assert popped is not None
    assert popped.enclosing_block_id == "proc"
    assert dump_json_bytes(session.diagram.to_payload()) == before


def test_enter_path_and_exit_to_root(pipeline: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(pipeline)

    enter_path(session, ["proc"])
    assert session.active_frame.enclosing_block_id == "proc"

    exit_to_root(session)
    assert session.depth == 0
    assert session.active_frame.block_ids() == ["src", "proc", "sink"]


def test_local_port_position_follows_side_and_order(pipeline: Diagram) -> None:
    src, proc = pipeline.blocks[0], pipeline.blocks[1]

    assert local_port_position(src, src.ports[0]) == Point(208, 30)
    assert local_port_position(proc, proc.ports[0]) == Point(232, 30)


def test_nested_view_shifts_blocks_by_inset(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(pipeline)
    enter_group(session, "proc")
    parse = session.require_in_view("parse")

    assert rendered_block_origin(session, parse) == Point(56, 56)
    assert resolve_port_position(session, "parse", "p-out") == Point(224, 66)


def test_enclosing_ports_pin_to_view_box(pipeline: Diagram, session_factory: SessionFactory) -> None:
    session = session_factory(pipeline)
    enter_group(session, "proc")

    assert resolve_port_position(session, "proc", "in") == Point(56, 56)
    assert resolve_port_position(session, "proc", "out") == Point(744, 56)
    assert resolve_port_position(session, "proc", "missing") is None


def test_port_position_outside_view_uses_stored_coordinates(
    pipeline: Diagram, session_factory: SessionFactory
) -> None:
    session = session_factory(pipeline)
    enter_group(session, "proc")
    sink = session.require_block("sink")
    port = find_port(sink, "in")

    assert port is not None
    assert resolve_port_position(session, "sink", "in") == local_port_position(sink, port)
    assert resolve_port_position(session, "ghost", "in") is None
