from __future__ import annotations

import pytest

from adapters.interchange.diagram_xml import diagram_to_xml, xml_to_diagram
from domain.errors import MalformedImport
from domain.models import Block, Diagram, Port


def test_xml_round_trip_keeps_tree(pipeline: Diagram) -> None:
    restored = xml_to_diagram(diagram_to_xml(pipeline))

    assert restored == pipeline


def test_export_always_includes_requirements(pipeline: Diagram) -> None:
    xml = diagram_to_xml(pipeline)

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<diagram id="pipeline"')
    assert '<requirement id="req-latency" text="Process a batch within 2s" port="out" />' in xml
    assert 'target-block="proc" target-port="in"' in xml


def test_export_formats_whole_numbers_without_fraction() -> None:
    diagram = Diagram(id="d", blocks=[Block(id="a", x=12.0, y=7.5)])

    xml = diagram_to_xml(diagram)

    assert 'x="12"' in xml
    assert 'y="7.5"' in xml


def test_absent_coordinates_stay_unset() -> None:
    diagram = xml_to_diagram('<diagram id="d" name="N"><block id="a" name="A" x="5" /></diagram>')

    block = diagram.blocks[0]
    assert block.x == 5
    assert block.y is None
    assert block.subblocks is None


def test_import_applies_defaults() -> None:
    diagram = xml_to_diagram(
        "<diagram><block id='a'><ports><port id='p' /></ports>"
        "<subblocks /></block></diagram>",
        diagram_id="imported-1",
    )

    assert diagram.id == "imported-1"
    assert diagram.name == "Imported Diagram"
    block = diagram.blocks[0]
    assert block.name == "Unnamed"
    assert block.ports[0].name is None
    assert block.ports[0].side == "right"
    assert block.subblocks == []


def test_empty_names_survive_round_trip() -> None:
    diagram = Diagram(
        id="d",
        name="",
        blocks=[
            Block(
                id="a",
                x=1,
                y=2,
                ports=[Port(id="p", name=""), Port(id="q", side="left")],
            )
        ],
    )

    restored = xml_to_diagram(diagram_to_xml(diagram))

    assert restored == diagram
    assert restored.name == ""
    assert restored.blocks[0].name == ""
    assert [port.name for port in restored.blocks[0].ports] == ["", None]


def test_import_generates_missing_ids() -> None:
    diagram = xml_to_diagram(
        "<diagram id='d'><block name='A'><ports><port name='x' /></ports></block>"
        "<block name='B' /></diagram>"
    )

    first, second = diagram.blocks
    assert first.id.startswith("b")
    assert first.id != second.id
    assert first.ports[0].id == f"{first.id}-p0"


@pytest.mark.parametrize(
    "text",
    [
        "<diagram><block",
        "<blocks />",
        "<diagram><block id='a' x='left' /></diagram>",
        "<diagram><block id='a' y='nan' /></diagram>",
        "<diagram><block id='a' /><block id='a' /></diagram>",
        "<diagram><block id='a'><requirements><requirement id='r' port='p' />"
        "</requirements></block></diagram>",
    ],
)
def test_malformed_documents_are_rejected(text: str) -> None:
    with pytest.raises(MalformedImport):
        xml_to_diagram(text)
