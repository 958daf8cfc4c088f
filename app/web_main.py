from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, cast

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from adapters.interchange.diagram_xml import diagram_to_xml, xml_to_diagram
from app.config import AppSettings, configure_logging, load_settings
from app.store_wiring import build_diagram_store
from domain.errors import (
    DiagramError,
    InsufficientSelection,
    MalformedImport,
    NoSubblocks,
    NotFound,
    StoreUnavailable,
    TreeStructureError,
)
from domain.models import DEFAULT_DIAGRAM_NAME, Block, CanvasLayout, Diagram
from domain.ports.repositories import DiagramStore
from domain.services.connection_resolver import resolve_connections
from domain.services.group_blocks import BlockGrouper
from domain.services.view_navigation import enter_path
from domain.session import EditingSession

logger = logging.getLogger(__name__)

_BAD_REQUEST_ERRORS = (InsufficientSelection, NoSubblocks, MalformedImport, TreeStructureError)


@dataclass(frozen=True)
class DiagramContext:
    settings: AppSettings
    store: DiagramStore
    layout: CanvasLayout


class DiagramWrite(BaseModel):
    name: str = DEFAULT_DIAGRAM_NAME
    blocks: list[Block] = Field(default_factory=list)


class GroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    view: list[str] = Field(default_factory=list)
    block_ids: list[str] = Field(default_factory=list, alias="blockIds")
    name: str | None = None


def create_app(settings: AppSettings, store: DiagramStore | None = None) -> FastAPI:
    app = FastAPI(title=settings.title, default_response_class=ORJSONResponse)
    context = DiagramContext(
        settings=settings,
        store=store if store is not None else build_diagram_store(settings),
        layout=settings.canvas.to_layout(),
    )
    app.state.context = context

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.exception_handler(NotFound)
    async def handle_not_found(_: Request, exc: NotFound) -> ORJSONResponse:
        return ORJSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(_: Request, exc: StoreUnavailable) -> ORJSONResponse:
        logger.error("Diagram store unavailable: %s", exc)
        return ORJSONResponse({"detail": "Diagram store unavailable"}, status_code=503)

    @app.exception_handler(DiagramError)
    async def handle_diagram_error(_: Request, exc: DiagramError) -> ORJSONResponse:
        status_code = 400 if isinstance(exc, _BAD_REQUEST_ERRORS) else 500
        return ORJSONResponse({"detail": str(exc)}, status_code=status_code)

    @app.exception_handler(ValidationError)
    async def handle_model_error(_: Request, exc: ValidationError) -> ORJSONResponse:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        return ORJSONResponse({"detail": errors}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def handle_request_error(_: Request, exc: RequestValidationError) -> ORJSONResponse:
        errors = [
            {key: value for key, value in error.items() if key in {"loc", "msg", "type"}}
            for error in exc.errors()
        ]
        return ORJSONResponse({"detail": errors}, status_code=400)

    @app.get("/api/diagrams")
    def list_diagrams(context: DiagramContext = Depends(get_context)) -> list[dict[str, str]]:
        return [summary.to_dict() for summary in context.store.list()]

    @app.post("/api/diagrams", status_code=201)
    def create_diagram(
        payload: DiagramWrite,
        context: DiagramContext = Depends(get_context),
    ) -> dict[str, Any]:
        diagram = context.store.create(payload.name, payload.blocks)
        return diagram.to_payload()

    @app.post("/api/diagrams/import/xml", status_code=201)
    async def import_xml(
        request: Request,
        context: DiagramContext = Depends(get_context),
    ) -> dict[str, Any]:
        raw = await request.body()
        if not raw.strip():
            raise MalformedImport("Empty upload")
        parsed = xml_to_diagram(raw)
        diagram = context.store.create(parsed.name, parsed.blocks)
        return diagram.to_payload()

    @app.get("/api/diagrams/{diagram_id}")
    def get_diagram(diagram_id: str, context: DiagramContext = Depends(get_context)) -> Any:
        return context.store.get(diagram_id).to_payload()

    @app.put("/api/diagrams/{diagram_id}")
    def update_diagram(
        diagram_id: str,
        payload: DiagramWrite,
        context: DiagramContext = Depends(get_context),
    ) -> dict[str, Any]:
        diagram = Diagram(id=diagram_id, name=payload.name, blocks=payload.blocks)
        return context.store.update(diagram_id, diagram).to_payload()

    @app.delete("/api/diagrams/{diagram_id}", status_code=204)
    def delete_diagram(diagram_id: str, context: DiagramContext = Depends(get_context)) -> Response:
        context.store.remove(diagram_id)
        return Response(status_code=204)

    @app.get("/api/diagrams/{diagram_id}/xml")
    def export_xml(diagram_id: str, context: DiagramContext = Depends(get_context)) -> Response:
        diagram = context.store.get(diagram_id)
        return Response(
            content=diagram_to_xml(diagram),
            media_type="application/xml",
            headers={"Content-Disposition": f'attachment; filename="diagram-{diagram.id}.xml"'},
        )

    @app.get("/api/diagrams/{diagram_id}/connections")
    def get_connections(
        diagram_id: str,
        view: list[str] = Query(default_factory=list),
        context: DiagramContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = open_session(context, diagram_id)
        enter_path(session, view)
        return {
            "view": [frame.enclosing_block_id for frame in session.frames[1:]],
            "blocks": [block.id for block in session.active_frame.blocks],
            "connections": [item.to_dict() for item in resolve_connections(session)],
        }

    @app.post("/api/diagrams/{diagram_id}/group")
    def group_blocks(
        diagram_id: str,
        payload: GroupRequest,
        context: DiagramContext = Depends(get_context),
    ) -> dict[str, Any]:
        session = open_session(context, diagram_id)
        enter_path(session, payload.view)
        grouper = BlockGrouper(payload.name or context.settings.group_name)
        result = grouper.group(session, payload.block_ids)
        saved = session.save(context.store)
        session.close()
        return {
            "group": result.group.to_payload(),
            "inbound": [port.id for port in result.inbound],
            "outbound": [port.id for port in result.outbound],
            "diagram": saved.to_payload(),
        }

    return app


def get_context(request: Request) -> DiagramContext:
    return cast(DiagramContext, request.app.state.context)


def open_session(context: DiagramContext, diagram_id: str) -> EditingSession:
    return EditingSession.open(context.store, diagram_id, layout=context.layout)


def build_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings)
    return create_app(settings)
