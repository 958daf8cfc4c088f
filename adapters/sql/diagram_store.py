from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime

import orjson
from pydantic import ValidationError
from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from adapters.filesystem.json_utils import dump_json_bytes
from domain.errors import DiagramNotFound, StoreUnavailable
from domain.ids import new_unique_id
from domain.models import DEFAULT_DIAGRAM_NAME, Block, Diagram, DiagramSummary
from domain.ports.repositories import DiagramStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class Base(DeclarativeBase):
    pass


class DiagramRow(Base):
    __tablename__ = "diagrams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default=DEFAULT_DIAGRAM_NAME)
    blocks: Mapped[str] = mapped_column(Text, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class SqlDiagramStore(DiagramStore):
    """Diagrams in a ``diagrams`` table; the block tree is kept as a JSON text column."""

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._engine = engine
        self._session_factory: Callable[[], Session] = sessionmaker(engine, expire_on_commit=False)
        if create_schema:
            try:
                Base.metadata.create_all(engine)
            except SQLAlchemyError as exc:
                raise StoreUnavailable(f"Cannot prepare database schema: {exc}") from exc

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SqlDiagramStore:
        return cls(create_engine(url, echo=echo))

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def session_context(self) -> Iterator[Session]:
        """Commit when the block exits cleanly, roll back otherwise."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(f"Database error: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def list(self) -> Sequence[DiagramSummary]:
        query = select(DiagramRow.id, DiagramRow.name).order_by(
            DiagramRow.updated_at.desc(), DiagramRow.id
        )
        with self.session_context() as session:
            return [DiagramSummary(id=row.id, name=row.name) for row in session.execute(query)]

    def get(self, diagram_id: str) -> Diagram:
        with self.session_context() as session:
            row = session.get(DiagramRow, diagram_id)
            if row is None:
                raise DiagramNotFound(diagram_id)
            return self._to_diagram(row)

    def create(self, name: str, blocks: Sequence[Block]) -> Diagram:
        with self.session_context() as session:
            taken = set(session.scalars(select(DiagramRow.id)))
            diagram = Diagram(
                id=new_unique_id("d", taken),
                name=name or DEFAULT_DIAGRAM_NAME,
                blocks=list(blocks),
            )
            session.add(
                DiagramRow(id=diagram.id, name=diagram.name, blocks=self._dump_blocks(diagram))
            )
        logger.info("Created diagram %s in %s", diagram.id, self._engine.url)
        return diagram

    def update(self, diagram_id: str, diagram: Diagram) -> Diagram:
        stored = diagram.model_copy(update={"id": diagram_id})
        with self.session_context() as session:
            row = session.get(DiagramRow, diagram_id)
            if row is None:
                raise DiagramNotFound(diagram_id)
            row.name = stored.name
            row.blocks = self._dump_blocks(stored)
            row.updated_at = _utcnow()
        return stored

    def remove(self, diagram_id: str) -> None:
        with self.session_context() as session:
            row = session.get(DiagramRow, diagram_id)
            if row is None:
                raise DiagramNotFound(diagram_id)
            session.delete(row)
        logger.info("Removed diagram %s", diagram_id)

    @staticmethod
    def _dump_blocks(diagram: Diagram) -> str:
        payload = diagram.to_payload().get("blocks", [])
        return dump_json_bytes(payload, indent=False).decode("utf-8")

    @staticmethod
    def _to_diagram(row: DiagramRow) -> Diagram:
        try:
            blocks = orjson.loads(row.blocks) if row.blocks else []
            return Diagram.model_validate({"id": row.id, "name": row.name, "blocks": blocks})
        except (ValueError, ValidationError) as exc:
            raise StoreUnavailable(f"Stored diagram {row.id} is invalid: {exc}") from exc
