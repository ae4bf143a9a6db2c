"""butler log — sync history, newest first."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from butler.cli.status import sync_table
from butler.cli.store import load_cli_config, open_db, resolve_db
from butler.db.repository import Repository

console = Console()


def log_cmd(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Number of entries to show."),
    ] = 20,
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Only show runs for this source."),
    ] = None,
    messages: Annotated[
        bool,
        typer.Option("--messages", "-m", help="Print each run's message below the table."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
) -> None:
    """Show recent sync runs (imports and vault indexing)."""
    cfg = load_cli_config()
    conn = open_db(resolve_db(db, cfg))
    try:
        entries = Repository(conn).recent_sync_logs(limit=limit, source=source)
    finally:
        conn.close()

    if not entries:
        console.print("[dim]No sync runs recorded.[/]")
        return
    console.print(sync_table(entries))
    if messages:
        for e in entries:
            if e.message:
                console.print(f"[dim]#{e.id}[/] {e.source}: {e.message}")
