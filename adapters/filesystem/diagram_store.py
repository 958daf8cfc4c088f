from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from filelock import FileLock
from pydantic import ValidationError

from adapters.filesystem.json_utils import load_json, write_json_atomic
from domain.errors import DiagramNotFound, StoreUnavailable
from domain.ids import new_unique_id
from domain.models import DEFAULT_DIAGRAM_NAME, Block, Diagram, DiagramSummary
from domain.ports.repositories import DiagramStore

logger = logging.getLogger(__name__)


class FileSystemDiagramStore(DiagramStore):
    """All diagrams in one JSON file: ``{"diagrams": [{id, name, blocks}, ...]}``."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = FileLock(str(path.with_suffix(f"{path.suffix}.lock")))

    @property
    def path(self) -> Path:
        return self._path

    def list(self) -> Sequence[DiagramSummary]:
        return [
            DiagramSummary(id=str(item.get("id", "")), name=str(item.get("name", "")))
            for item in self._read()
        ]

    def get(self, diagram_id: str) -> Diagram:
        for item in self._read():
            if item.get("id") == diagram_id:
                return self._to_diagram(item)
        raise DiagramNotFound(diagram_id)

    def create(self, name: str, blocks: Sequence[Block]) -> Diagram:
        with self._locked():
            items = self._read()
            taken = {str(item.get("id")) for item in items}
            diagram = Diagram(
                id=new_unique_id("d", taken),
                name=name or DEFAULT_DIAGRAM_NAME,
                blocks=list(blocks),
            )
            items.append(diagram.to_payload())
            self._write(items)
        logger.info("Created diagram %s in %s", diagram.id, self._path)
        return diagram

    def update(self, diagram_id: str, diagram: Diagram) -> Diagram:
        stored = diagram.model_copy(update={"id": diagram_id})
        with self._locked():
            items = self._read()
            for idx, item in enumerate(items):
                if item.get("id") == diagram_id:
                    items[idx] = stored.to_payload()
                    break
            else:
                raise DiagramNotFound(diagram_id)
            self._write(items)
        return stored

    def remove(self, diagram_id: str) -> None:
        with self._locked():
            items = self._read()
            kept = [item for item in items if item.get("id") != diagram_id]
            if len(kept) == len(items):
                raise DiagramNotFound(diagram_id)
            self._write(kept)
        logger.info("Removed diagram %s from %s", diagram_id, self._path)

    def _locked(self) -> FileLock:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot prepare {self._path.parent}: {exc}") from exc
        return self._lock

    def _read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            payload = load_json(self._path)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read {self._path}: {exc}") from exc
        except ValueError as exc:
            raise StoreUnavailable(f"Corrupt diagram file {self._path}: {exc}") from exc
        diagrams = payload.get("diagrams")
        if not isinstance(diagrams, list):
            return []
        return [item for item in diagrams if isinstance(item, dict)]

    def _write(self, items: list[dict[str, Any]]) -> None:
        try:
            write_json_atomic(self._path, {"diagrams": items})
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write {self._path}: {exc}") from exc

    def _to_diagram(self, item: dict[str, Any]) -> Diagram:
        try:
            return Diagram.model_validate(item)
        except ValidationError as exc:
            raise StoreUnavailable(f"Stored diagram {item.get('id')} is invalid: {exc}") from exc
