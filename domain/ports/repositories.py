from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from domain.models import Block, Diagram, DiagramSummary


class DiagramStore(Protocol):
    """CRUD access to diagrams by id. Blocks are stored as one nested document."""

    def list(self) -> Sequence[DiagramSummary]: ...

    def get(self, diagram_id: str) -> Diagram: ...

    def create(self, name: str, blocks: Sequence[Block]) -> Diagram: ...

    def update(self, diagram_id: str, diagram: Diagram) -> Diagram: ...

    def remove(self, diagram_id: str) -> None: ...
