from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.errors import TreeStructureError

PortSide = Literal["left", "right"]
Coordinate = Union[int, float]

DEFAULT_DIAGRAM_NAME = "Untitled"
DEFAULT_BLOCK_NAME = "New Block"
DEFAULT_GROUP_NAME = "Group"


class PortTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    block_id: str = Field(..., min_length=1, alias="blockId")
    port_id: str = Field(..., min_length=1, alias="portId")

    def key(self) -> tuple[str, str]:
        return (self.block_id, self.port_id)


class Port(BaseModel):
    id: str = Field(..., min_length=1)
    name: str | None = None
    side: PortSide = "right"
    target: PortTarget | None = None

    @field_validator("side", mode="before")
    @classmethod
    def default_side(cls, value: object) -> object:
        return "right" if value is None or value == "" else value


class Requirement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    text: str = ""
    port_id: str | None = Field(default=None, alias="portId")


class Block(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    x: Coordinate | None = None
    y: Coordinate | None = None
    ports: list[Port] = Field(default_factory=list)
    requirements: list[Requirement] = Field(default_factory=list)
    subblocks: list[Block] | None = None

    @model_validator(mode="before")
    @classmethod
    def apply_structural_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        if payload.get("ports") is None:
            payload["ports"] = []
        if payload.get("requirements") is None:
            payload["requirements"] = []
        block_id = payload.get("id")
        ports: list[Any] = []
        for idx, port in enumerate(payload["ports"]):
            if isinstance(port, dict) and not port.get("id"):
                port = {**port, "id": f"{block_id}-p{idx}"}
            ports.append(port)
        payload["ports"] = ports
        return payload

    @model_validator(mode="after")
    def ensure_port_links(self) -> Block:
        seen: set[str] = set()
        for port in self.ports:
            if port.id in seen:
                msg = f"Duplicate port id {port.id} on block {self.id}"
                raise ValueError(msg)
            seen.add(port.id)
        for requirement in self.requirements:
            if requirement.port_id is not None and requirement.port_id not in seen:
                msg = (
                    f"Requirement {requirement.id} on block {self.id} "
                    f"references unknown port {requirement.port_id}"
                )
                raise ValueError(msg)
        return self

    def is_group(self) -> bool:
        return bool(self.subblocks)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Diagram(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = DEFAULT_DIAGRAM_NAME
    blocks: list[Block] = Field(default_factory=list)

    @field_validator("blocks", mode="before")
    @classmethod
    def default_blocks(cls, value: object) -> object:
        return [] if value is None else value

    @model_validator(mode="after")
    def ensure_forest(self) -> Diagram:
        check_block_forest(self.blocks)
        return self

    def summary(self) -> DiagramSummary:
        return DiagramSummary(id=self.id, name=self.name)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def check_block_forest(blocks: Sequence[Block]) -> None:
    """Reject trees where a block id repeats, either on its own ancestor path or elsewhere."""
    seen: set[str] = set()

    def walk(level: Sequence[Block], ancestors: tuple[str, ...]) -> None:
        for block in level:
            if block.id in ancestors:
                path = " > ".join((*ancestors, block.id))
                msg = f"Block {block.id} appears as its own descendant: {path}"
                raise TreeStructureError(msg)
            if block.id in seen:
                msg = f"Duplicate block id found: {block.id}"
                raise TreeStructureError(msg)
            seen.add(block.id)
            if block.subblocks:
                walk(block.subblocks, (*ancestors, block.id))

    walk(blocks, ())


@dataclass(frozen=True)
class DiagramSummary:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class ViewBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class CanvasLayout:
    width: float = 800.0
    height: float = 420.0
    box_x: float = 40.0
    box_y: float = 40.0
    padding: float = 16.0
    min_width: float = 300.0
    min_height: float = 420.0

    @property
    def canvas_size(self) -> Size:
        return Size(max(self.min_width, self.width), max(self.min_height, self.height))

    @property
    def box(self) -> ViewBox:
        size = self.canvas_size
        return ViewBox(
            x=self.box_x,
            y=self.box_y,
            width=size.width - self.box_x * 2,
            height=size.height - self.box_y * 2,
        )

    @property
    def inner_offset(self) -> Point:
        return Point(self.box_x + self.padding, self.box_y + self.padding)


@dataclass
class ViewFrame:
    blocks: list[Block] = field(default_factory=list)
    enclosing_block_id: str | None = None

    @property
    def is_root(self) -> bool:
        return self.enclosing_block_id is None

    def block_ids(self) -> list[str]:
        return [block.id for block in self.blocks]

    def position_of(self, block_id: str) -> int:
        for idx, block in enumerate(self.blocks):
            if block.id == block_id:
                return idx
        return -1
