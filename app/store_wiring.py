from __future__ import annotations

from adapters.filesystem.diagram_store import FileSystemDiagramStore
from adapters.s3.diagram_store import S3DiagramStore
from adapters.sql.diagram_store import SqlDiagramStore
from app.config import AppSettings
from domain.ports.repositories import DiagramStore


def build_diagram_store(settings: AppSettings) -> DiagramStore:
    store = settings.store
    if store.backend == "s3":
        if not store.s3.bucket:
            msg = "store.s3.bucket is required when backend is s3"
            raise ValueError(msg)
        return S3DiagramStore.from_settings(store.s3)
    if store.backend == "sql":
        if not store.database_url:
            msg = "store.database_url is required when backend is sql"
            raise ValueError(msg)
        return SqlDiagramStore.from_url(store.database_url, echo=store.echo_sql)
    return FileSystemDiagramStore(store.json_path)
