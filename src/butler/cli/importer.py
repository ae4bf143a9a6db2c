"""butler import — reconcile a JSON dump of fetched records into the store.

The file is a JSON array of objects produced by a source client (calendar
export, mail digest, journal parser)::

    [{"external_key": "evt-1", "title": "Standup", "body": "...",
      "relevant_at": "2024-05-03T09:00:00Z"}]

Policies:
  identity   (default) upsert by (source, external_key)
  freshness  overwrite only when source_modified_at is newer than stored
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from butler.cli.errors import err_invalid_import
from butler.cli.store import load_cli_config, open_db, resolve_db
from butler.db.models import Record, SourceKind
from butler.db.repository import Repository
from butler.sync.reconciler import FreshnessGatedPolicy, IdentityKeyedPolicy, ReconcilePolicy
from butler.sync.updater import ContextUpdater

console = Console()

_POLICIES = ("identity", "freshness")
_TEXT_FIELDS = ("title", "body", "external_key", "category", "summary", "media_type", "media_metadata")
_TIME_FIELDS = ("relevant_at", "source_modified_at")


def import_cmd(
    file: Annotated[
        Path,
        typer.Argument(help="JSON file with an array of records."),
    ],
    source: Annotated[
        SourceKind,
        typer.Option("--source", "-s", help="Source the records came from."),
    ] = SourceKind.OTHER,
    policy: Annotated[
        str,
        typer.Option("--policy", help="identity | freshness"),
    ] = "identity",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
) -> None:
    """Reconcile records from FILE without creating duplicates."""
    if policy not in _POLICIES:
        console.print(f"[red]Error:[/] Unknown policy '{policy}'. Use one of: {', '.join(_POLICIES)}")
        raise typer.Exit(1)

    cfg = load_cli_config()
    try:
        records = _load_records(file)
    except (OSError, ValueError) as exc:
        console.print(err_invalid_import(str(file), str(exc)))
        raise typer.Exit(1)

    reconcile_policy: ReconcilePolicy
    if policy == "freshness":
        reconcile_policy = FreshnessGatedPolicy(cfg.sync.resolution)
    else:
        reconcile_policy = IdentityKeyedPolicy()

    conn = open_db(resolve_db(db, cfg), must_exist=False)
    try:
        updater = ContextUpdater(source, lambda: records, Repository(conn), reconcile_policy)
        result = updater.update()
    finally:
        conn.close()

    console.print(
        f"[green]✓[/] Imported {result.scanned} records from [bold]{file.name}[/] ({source.value}, {policy})"
    )
    console.print(
        f"  Added: {result.added}  |  Updated: {result.updated}  |  "
        f"Unchanged: {result.unchanged}  |  Failed: {result.failed}"
    )
    for error in result.errors:
        console.print(f"  [red]✗[/] #{error.position}: {error.message}")
    if result.errors:
        raise typer.Exit(1)


def _load_records(path: Path) -> list[Record]:
    """Parse *path* into Records. Raises ValueError on malformed input."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("top-level value must be an array")
    return [_record_from_dict(item, i) for i, item in enumerate(data)]


def _record_from_dict(item: Any, position: int) -> Record:
    if not isinstance(item, dict):
        raise ValueError(f"item #{position} is not an object")
    values: dict[str, Any] = {}
    for name in _TEXT_FIELDS:
        value = item.get(name)
        if value is not None:
            values[name] = str(value)
    for name in _TIME_FIELDS:
        value = item.get(name)
        if value is not None:
            values[name] = _parse_datetime(value, name, position)
    # source_kind is stamped by the updater.
    return Record(source_kind=SourceKind.OTHER, **values)


def _parse_datetime(value: Any, name: str, position: int) -> datetime:
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"item #{position}: {name} is not an ISO timestamp: {value!r}") from None
