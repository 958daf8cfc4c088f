from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from adapters.filesystem.diagram_store import FileSystemDiagramStore
from app.config import AppSettings, S3Settings, StoreSettings
from domain.ids import sequential_ids
from domain.models import Diagram
from domain.session import EditingSession
from tests.helpers.diagram_fixtures import load_diagram_fixture


def _clear_blockdiag_env() -> None:
    for key in list(os.environ):
        if key.startswith("BLOCKDIAG_"):
            os.environ.pop(key, None)


_clear_blockdiag_env()


@pytest.fixture(autouse=True)
def clear_blockdiag_env() -> Generator[None, None, None]:
    _clear_blockdiag_env()
    yield
    _clear_blockdiag_env()


@pytest.fixture
def s3_settings() -> S3Settings:
    return S3Settings(
        bucket="diagram-bucket",
        prefix="diagrams/",
        region="us-east-1",
        endpoint_url="http://stubbed-s3.local",
        access_key_id="test",
        secret_access_key="test",
        session_token=None,
        use_path_style=True,
    )


@pytest.fixture
def store_settings(tmp_path: Path, s3_settings: S3Settings) -> StoreSettings:
    return StoreSettings(
        backend="filesystem",
        json_path=tmp_path / "data" / "diagrams.json",
        database_url=f"sqlite:///{tmp_path / 'diagrams.sqlite3'}",
        s3=s3_settings,
    )


@pytest.fixture
def app_settings(store_settings: StoreSettings) -> AppSettings:
    return AppSettings(title="Test Diagrams", store=store_settings)


@pytest.fixture
def app_settings_factory(
    store_settings: StoreSettings,
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(store=store_settings.model_copy(update=overrides))

    return _factory


@pytest.fixture
def fs_store(store_settings: StoreSettings) -> FileSystemDiagramStore:
    return FileSystemDiagramStore(store_settings.json_path)


@pytest.fixture
def pipeline() -> Diagram:
    return load_diagram_fixture("pipeline.json")


@pytest.fixture
def abc() -> Diagram:
    return load_diagram_fixture("abc.json")


@pytest.fixture
def session_factory() -> Callable[[Diagram], EditingSession]:
    def _factory(diagram: Diagram) -> EditingSession:
        return EditingSession(diagram, id_factory=sequential_ids())

    return _factory
