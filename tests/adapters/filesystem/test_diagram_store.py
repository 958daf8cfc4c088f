from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from adapters.filesystem.diagram_store import FileSystemDiagramStore
from domain.errors import StoreUnavailable
from domain.models import Diagram


def test_store_writes_single_document(fs_store: FileSystemDiagramStore, abc: Diagram) -> None:
    created = fs_store.create(abc.name, abc.blocks)

    payload = orjson.loads(fs_store.path.read_bytes())

    assert [item["id"] for item in payload["diagrams"]] == [created.id]
    first_port = payload["diagrams"][0]["blocks"][0]["ports"][0]
    assert first_port["target"] == {"blockId": "B", "portId": "i1"}
    assert not fs_store.path.with_suffix(".json.tmp").exists()


def test_list_keeps_insertion_order(fs_store: FileSystemDiagramStore) -> None:
    names = ["First", "Second", "Third"]
    for name in names:
        fs_store.create(name, [])

    assert [item.name for item in fs_store.list()] == names


def test_corrupt_file_is_reported_as_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "diagrams.json"
    path.write_text("{not json", encoding="utf-8")
    store = FileSystemDiagramStore(path)

    with pytest.raises(StoreUnavailable):
        store.list()


def test_non_finite_coordinates_are_reported(tmp_path: Path) -> None:
    path = tmp_path / "diagrams.json"
    path.write_text(
        '{"diagrams": [{"id": "d1", "blocks": [{"id": "a", "x": Infinity}]}]}',
        encoding="utf-8",
    )
    store = FileSystemDiagramStore(path)

    with pytest.raises(StoreUnavailable):
        store.get("d1")


def test_invalid_stored_diagram_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "diagrams.json"
    path.write_bytes(
        orjson.dumps({"diagrams": [{"id": "d1", "blocks": [{"id": "a"}, {"id": "a"}]}]})
    )
    store = FileSystemDiagramStore(path)

    assert [item.id for item in store.list()] == ["d1"]
    with pytest.raises(StoreUnavailable):
        store.get("d1")


def test_missing_diagrams_key_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "diagrams.json"
    path.write_bytes(orjson.dumps({"other": 1}))

    assert list(FileSystemDiagramStore(path).list()) == []
