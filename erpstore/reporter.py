from __future__ import annotations

import json
from dataclasses import asdict
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.table import Table

from erpstore.diagnostics import Diagnostic
from erpstore.infrastructure.pool import PoolStats


def entities_to_rows(entities: Sequence[BaseModel]) -> List[Dict[str, Any]]:
    """JSON-compatible dicts (enums by name, timestamps as ISO strings)."""
    rows = []
    for entity in entities:
        row = entity.model_dump(mode="json")
        for key, value in dict(entity).items():
            if isinstance(value, IntEnum):
                row[key] = value.name
        rows.append(row)
    return rows


def to_json(entities: Sequence[BaseModel]) -> str:
    return json.dumps(entities_to_rows(entities), indent=2, sort_keys=True)


def render_entities(
    entities: Sequence[BaseModel],
    title: str,
    columns: Optional[Sequence[str]] = None,
    console: Optional[Console] = None,
) -> None:
    """Print entities as a rich table, one row per entity."""
    console = console or Console()
    rows = entities_to_rows(entities)
    if not rows:
        console.print(f"[yellow]{title}: no records[/yellow]")
        return
    columns = list(columns or rows[0].keys())

    table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
    for column in columns:
        table.add_column(column, overflow="fold", justify="right" if column == "amount" else "left")
    for row in rows:
        table.add_row(*(_cell(row.get(column)) for column in columns))
    console.print(table)


def render_pool_stats(stats: PoolStats, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Connection pool", box=box.SIMPLE_HEAVY)
    table.add_column("metric")
    table.add_column("value", justify="right")
    for key, value in asdict(stats).items():
        table.add_row(key, str(value))
    console.print(table)


def render_diagnostics(entries: Sequence[Diagnostic], console: Optional[Console] = None) -> None:
    if not entries:
        return
    console = console or Console(stderr=True)
    table = Table(title="Reported failures", box=box.SIMPLE_HEAVY)
    table.add_column("category", style="red")
    table.add_column("source")
    table.add_column("message", overflow="fold")
    for entry in entries:
        table.add_row(entry.category.value, entry.source, entry.message)
    console.print(table)


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True) if value else ""
    return str(value)


__all__ = [
    "entities_to_rows",
    "to_json",
    "render_entities",
    "render_pool_stats",
    "render_diagnostics",
]
