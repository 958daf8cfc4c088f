from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from adapters.filesystem.json_utils import load_json
from adapters.interchange.diagram_xml import diagram_to_xml, xml_to_diagram
from app.config import AppSettings, configure_logging, load_settings
from app.store_wiring import build_diagram_store
from domain.errors import DiagramError
from domain.models import Diagram
from domain.ports.repositories import DiagramStore
from domain.services.connection_resolver import resolve_connections
from domain.services.group_blocks import BlockGrouper
from domain.services.view_navigation import enter_path
from domain.session import EditingSession

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    settings = load_settings(config)
    configure_logging(settings)
    ctx.obj = settings


def _settings(ctx: typer.Context) -> AppSettings:
    settings = ctx.obj
    if not isinstance(settings, AppSettings):
        settings = load_settings()
        ctx.obj = settings
    return settings


def _store(ctx: typer.Context) -> DiagramStore:
    try:
        return build_diagram_store(_settings(ctx))
    except (ValueError, DiagramError) as exc:
        console.print(f"[red]Cannot open diagram store:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]{type(exc).__name__}:[/] {exc}")
    return typer.Exit(code=1)


@app.command("list")
def list_diagrams(ctx: typer.Context) -> None:
    store = _store(ctx)
    try:
        summaries = store.list()
    except DiagramError as exc:
        raise _fail(exc) from exc
    if not summaries:
        console.print("[yellow]No diagrams stored.[/]")
        raise typer.Exit(code=0)
    table = Table("id", "name")
    for summary in summaries:
        table.add_row(summary.id, summary.name)
    console.print(table)


@app.command("create")
def create_diagram(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the new diagram."),
) -> None:
    store = _store(ctx)
    try:
        diagram = store.create(name, [])
    except DiagramError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Created[/] {diagram.id} ({diagram.name})")


@app.command("delete")
def delete_diagram(
    ctx: typer.Context,
    diagram_id: str = typer.Argument(..., help="Diagram to remove."),
) -> None:
    store = _store(ctx)
    try:
        store.remove(diagram_id)
    except DiagramError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Deleted[/] {diagram_id}")


@app.command("export-xml")
def export_xml(
    ctx: typer.Context,
    diagram_id: str = typer.Argument(..., help="Diagram to export."),
    output: Path | None = typer.Option(None, "--output", "-o", help="Target XML file."),
) -> None:
    store = _store(ctx)
    try:
        diagram = store.get(diagram_id)
    except DiagramError as exc:
        raise _fail(exc) from exc
    target = output or Path(f"diagram-{diagram.id}.xml")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(diagram_to_xml(diagram), encoding="utf-8")
    console.print(f"[green]Wrote[/] {target}")


@app.command("import-xml")
def import_xml(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="XML file produced by export-xml."),
) -> None:
    if not input_path.exists():
        console.print(f"[red]File not found:[/] {input_path}")
        raise typer.Exit(code=1)
    store = _store(ctx)
    try:
        parsed = xml_to_diagram(input_path.read_bytes())
        diagram = store.create(parsed.name, parsed.blocks)
    except DiagramError as exc:
        raise _fail(exc) from exc
    console.print(f"[green]Imported[/] {input_path} as {diagram.id} ({diagram.name})")


@app.command("group")
def group_blocks(
    ctx: typer.Context,
    diagram_id: str = typer.Argument(..., help="Diagram to edit."),
    block_ids: list[str] = typer.Argument(..., help="Sibling blocks to group."),
    view: list[str] = typer.Option([], "--view", help="Group to open first; repeat to nest."),
    name: str | None = typer.Option(None, "--name", help="Name of the new group block."),
) -> None:
    settings = _settings(ctx)
    store = _store(ctx)
    try:
        session = EditingSession.open(store, diagram_id, layout=settings.canvas.to_layout())
        enter_path(session, view)
        result = BlockGrouper(name or settings.group_name).group(session, block_ids)
        session.save(store)
        session.close()
    except DiagramError as exc:
        raise _fail(exc) from exc
    console.print(
        f"[green]Grouped[/] {len(block_ids)} blocks into {result.group.id} "
        f"({len(result.inbound)} in, {len(result.outbound)} out)"
    )


@app.command("connections")
def show_connections(
    ctx: typer.Context,
    diagram_id: str = typer.Argument(..., help="Diagram to inspect."),
    view: list[str] = typer.Option([], "--view", help="Group to open first; repeat to nest."),
) -> None:
    settings = _settings(ctx)
    store = _store(ctx)
    try:
        session = EditingSession.open(store, diagram_id, layout=settings.canvas.to_layout())
        enter_path(session, view)
        connections = resolve_connections(session)
    except DiagramError as exc:
        raise _fail(exc) from exc
    table = Table("source", "target", "start", "end", "boundary")
    for item in connections:
        table.add_row(
            f"{item.source.block_id}:{item.source.port_id}",
            f"{item.target.block_id}:{item.target.port_id}",
            f"({item.start.x:g}, {item.start.y:g})",
            f"({item.end.x:g}, {item.end.y:g})",
            "yes" if item.crosses_boundary else "",
        )
    console.print(table)


@app.command("validate")
def validate(
    input_path: Path = typer.Argument(..., help="Diagram JSON or XML file to validate."),
) -> None:
    if not input_path.exists():
        console.print(f"[red]File not found:[/] {input_path}")
        raise typer.Exit(code=1)
    try:
        if input_path.suffix.lower() == ".xml":
            diagram = xml_to_diagram(input_path.read_bytes())
        else:
            diagram = Diagram.model_validate(load_json(input_path))
    except (ValueError, DiagramError) as exc:
        console.print(f"[red]Validation failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Valid diagram:[/] {diagram.id} ({diagram.name})")


@app.command("serve")
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8080, help="Bind port."),
) -> None:
    import uvicorn

    from app.web_main import create_app

    settings = _settings(ctx)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    app()
