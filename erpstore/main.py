from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional

import typer

from erpstore.config import get_settings
from erpstore.diagnostics import CollectingSink, LoggingSink
from erpstore.errors import StoreError
from erpstore.infrastructure.db_factory import create_pool
from erpstore.modules.registry import available_entities, resolve_entity
from erpstore.reporter import render_diagnostics, render_entities, render_pool_stats, to_json
from erpstore.store import DecodePolicy, GenericRecordStore
from erpstore.utils.logging import configure_logging

app = typer.Typer(help="erpstore persistence CLI.")


def _parse_value(text: str) -> Any:
    """int or float when the text is exactly that number, otherwise the string."""
    for cast in (int, float):
        try:
            value = cast(text)
        except ValueError:
            continue
        if str(value) == text:
            return value
    return text


def _parse_filter(where: Optional[List[str]]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for item in where or []:
        column, sep, raw = item.partition("=")
        if not sep or not column:
            raise typer.BadParameter(f"Expected COLUMN=VALUE, got '{item}'", param_hint="--where")
        parsed[column.strip()] = _parse_value(raw)
    return parsed


def _store(entity: str, sink: CollectingSink) -> GenericRecordStore[Any]:
    settings = get_settings()
    try:
        module = resolve_entity(entity)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="ENTITY") from exc
    try:
        pool = create_pool(settings, diagnostics=sink)
    except StoreError as exc:
        typer.echo(f"Connection failed: {exc}", err=True)
        raise typer.Exit(code=1)
    return GenericRecordStore(
        pool,
        module.table,
        module.codec_factory(),
        diagnostics=sink,
        decode_policy=DecodePolicy(settings.decode_policy),
    )


def _setup() -> CollectingSink:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return CollectingSink(forward_to=LoggingSink())


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    if settings.db_backend == "postgres":
        target = f"{settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    else:
        target = settings.sqlite_path
    typer.echo(
        f"DB={settings.db_backend}:{target} | pool={settings.pool_min_size}..{settings.pool_size} "
        f"timeout={settings.pool_acquire_timeout_seconds}s decode={settings.decode_policy}"
    )


@app.command()
def entities() -> None:
    """List entity types the CLI can query."""
    typer.echo("Available entities: " + ", ".join(available_entities()))


@app.command()
def ping() -> None:
    """Open the pool, run a trivial query and show pool statistics."""
    sink = _setup()
    try:
        pool = create_pool(get_settings(), diagnostics=sink)
    except StoreError as exc:
        typer.echo(f"Connection failed: {exc}", err=True)
        raise typer.Exit(code=1)
    try:
        with pool.connection() as conn:
            rows = conn.query("SELECT 1 AS ok")
        typer.echo(f"OK ({len(rows)} row)")
        render_pool_stats(pool.stats())
    except StoreError as exc:
        typer.echo(f"Ping failed: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        pool.close()


@app.command()
def find(
    entity: str = typer.Argument(..., help="Entity name (see `entities`)."),
    where: Optional[List[str]] = typer.Option(
        None,
        "--where",
        "-w",
        help="Equality filter COLUMN=VALUE; repeat for a conjunction.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """
    List records of an entity, optionally filtered.
    """
    filters = _parse_filter(where)
    sink = _setup()
    store = _store(entity, sink)
    try:
        results = store.filtered_find(filters)
    finally:
        store.pool.close()
    if as_json:
        typer.echo(to_json(results))
    else:
        render_entities(results, title=f"{entity} ({store.table})")
    render_diagnostics(sink.entries)
    if len(sink):
        raise typer.Exit(code=1)


@app.command()
def count(
    entity: str = typer.Argument(..., help="Entity name (see `entities`)."),
    where: Optional[List[str]] = typer.Option(None, "--where", "-w", help="Equality filter COLUMN=VALUE."),
) -> None:
    """
    Count records of an entity, optionally filtered.
    """
    filters = _parse_filter(where)
    sink = _setup()
    store = _store(entity, sink)
    try:
        total = store.count(filters)
    finally:
        store.pool.close()
    typer.echo(str(total))
    render_diagnostics(sink.entries)
    if len(sink):
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
