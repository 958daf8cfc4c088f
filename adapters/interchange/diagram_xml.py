from __future__ import annotations

import math
import time
import xml.etree.ElementTree as ET
from typing import Any

from pydantic import ValidationError

from domain.errors import MalformedImport
from domain.ids import new_unique_id
from domain.models import Block, Coordinate, Diagram

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
IMPORTED_DIAGRAM_NAME = "Imported Diagram"
UNNAMED_BLOCK = "Unnamed"


def diagram_to_xml(diagram: Diagram) -> str:
    """Render the whole tree, requirements included."""
    root = ET.Element("diagram", {"id": diagram.id, "name": diagram.name})
    for block in diagram.blocks:
        root.append(_block_element(block))
    ET.indent(root, space="  ")
    return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"


def xml_to_diagram(text: str | bytes, diagram_id: str | None = None) -> Diagram:
    """Parse exported XML. ``diagram_id`` overrides the id carried by the document."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise MalformedImport(f"Invalid XML: {exc}") from exc
    if root.tag != "diagram":
        raise MalformedImport(f"Invalid XML: expected <diagram> root, got <{root.tag}>")

    taken: set[str] = set()
    payload = {
        "id": diagram_id or root.get("id") or f"imported-{int(time.time() * 1000)}",
        "name": root.get("name", IMPORTED_DIAGRAM_NAME),
        "blocks": [_parse_block(element, taken) for element in root.findall("block")],
    }
    try:
        return Diagram.model_validate(payload)
    except ValidationError as exc:
        raise MalformedImport(f"Invalid diagram structure: {exc}") from exc


def _block_element(block: Block) -> ET.Element:
    attrs = {"id": block.id, "name": block.name}
    if block.x is not None:
        attrs["x"] = _format_number(block.x)
    if block.y is not None:
        attrs["y"] = _format_number(block.y)
    element = ET.Element("block", attrs)

    if block.ports:
        ports = ET.SubElement(element, "ports")
        for port in block.ports:
            port_attrs = {"id": port.id}
            if port.name is not None:
                port_attrs["name"] = port.name
            port_attrs["side"] = port.side
            if port.target is not None:
                port_attrs["target-block"] = port.target.block_id
                port_attrs["target-port"] = port.target.port_id
            ET.SubElement(ports, "port", port_attrs)

    if block.requirements:
        requirements = ET.SubElement(element, "requirements")
        for requirement in block.requirements:
            req_attrs = {"id": requirement.id, "text": requirement.text}
            if requirement.port_id is not None:
                req_attrs["port"] = requirement.port_id
            ET.SubElement(requirements, "requirement", req_attrs)

    if block.subblocks is not None:
        subblocks = ET.SubElement(element, "subblocks")
        for child in block.subblocks:
            subblocks.append(_block_element(child))
    return element


def _parse_block(element: ET.Element, taken: set[str]) -> dict[str, Any]:
    block_id = element.get("id") or new_unique_id("b", taken)
    taken.add(block_id)
    block: dict[str, Any] = {
        "id": block_id,
        "name": element.get("name", UNNAMED_BLOCK),
        "x": _parse_number(element, "x"),
        "y": _parse_number(element, "y"),
        "ports": [],
        "requirements": [],
    }

    ports = element.find("ports")
    if ports is not None:
        for port_el in ports.findall("port"):
            port: dict[str, Any] = {
                "id": port_el.get("id") or None,
                "name": port_el.get("name"),
                "side": port_el.get("side") or "right",
            }
            target_block = port_el.get("target-block")
            target_port = port_el.get("target-port")
            if target_block and target_port:
                port["target"] = {"blockId": target_block, "portId": target_port}
            block["ports"].append(port)

    requirements = element.find("requirements")
    if requirements is not None:
        for req_el in requirements.findall("requirement"):
            requirement_id = req_el.get("id") or new_unique_id("req", taken)
            taken.add(requirement_id)
            block["requirements"].append(
                {
                    "id": requirement_id,
                    "text": req_el.get("text") or "",
                    "portId": req_el.get("port") or None,
                }
            )

    subblocks = element.find("subblocks")
    if subblocks is not None:
        block["subblocks"] = [_parse_block(child, taken) for child in subblocks.findall("block")]
    return block


def _format_number(value: Coordinate) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _parse_number(element: ET.Element, attr: str) -> Coordinate | None:
    raw = element.get(attr)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise MalformedImport(
            f"Block {element.get('id')} has a non-numeric {attr}: {raw!r}"
        ) from exc
    if not math.isfinite(value):
        raise MalformedImport(f"Block {element.get('id')} has a non-finite {attr}: {raw!r}")
    return int(value) if value.is_integer() else value
