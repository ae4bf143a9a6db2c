"""butler status — store overview: database, records, notes, recent syncs."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from butler.cli.store import load_cli_config, open_db, open_index, resolve_db
from butler.db.migrations import current_version
from butler.db.models import SourceKind, SyncLogEntry
from butler.db.repository import Repository
from butler.ingest.pipeline import DocumentIndexer, IndexStats

console = Console()

_RECENT_SYNCS = 5


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
) -> None:
    """Show what is stored and how the last syncs went."""
    cfg = load_cli_config()
    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  butler init",
                title="[bold]Butler[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    try:
        repo = Repository(conn)
        index = open_index(conn, cfg)
        size_mb = db_path.stat().st_size / (1024 * 1024)
        console.print(
            Panel(
                f"Database:  {db_path} ({size_mb:.1f} MB)\n"
                f"Schema:    v{current_version(conn)}\n"
                f"Embedding: {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
                title="[bold]Butler[/]",
                expand=False,
            )
        )
        _show_records_panel(repo)
        _show_notes_panel(DocumentIndexer(repo, index).stats())
        _show_syncs_panel(repo.recent_sync_logs(limit=_RECENT_SYNCS))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_records_panel(repo: Repository) -> None:
    counts = {kind.value: repo.count_records_by_source(kind) for kind in SourceKind}
    total = sum(counts.values())
    lines = [f"Records: [bold]{total}[/]"]
    for kind, count in counts.items():
        if count:
            lines.append(f"  {kind}: {count}")
    console.print(Panel("\n".join(lines), title="[bold]Context[/]", expand=False))


def _show_notes_panel(stats: IndexStats) -> None:
    if stats.vectors is not None:
        vectors = f"Vectors: [bold]{stats.vectors:,}[/]"
    else:
        vectors = "[yellow]Search unavailable[/]"
    console.print(
        Panel(
            f"Notes: [bold]{stats.documents}[/]  |  Chunks: [bold]{stats.chunks:,}[/]  |  {vectors}",
            title="[bold]Notes[/]",
            expand=False,
        )
    )


def _show_syncs_panel(entries: list[SyncLogEntry]) -> None:
    if not entries:
        console.print(Panel("[dim]No syncs yet.[/]", title="[bold]Recent syncs[/]", expand=False))
        return
    console.print(Panel(sync_table(entries), title="[bold]Recent syncs[/]", expand=False))


def sync_table(entries: list[SyncLogEntry]) -> Table:
    """Sync log entries as a table (shared with ``butler log``)."""
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("When", style="dim")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Scanned", justify="right")
    table.add_column("+", justify="right")
    table.add_column("~", justify="right")
    table.add_column("=", justify="right")
    table.add_column("✗", justify="right")
    table.add_column("ms", justify="right", style="dim")
    for e in entries:
        colour = {"ok": "green", "partial": "yellow"}.get(e.status, "red")
        when = e.timestamp.strftime("%Y-%m-%d %H:%M") if e.timestamp else ""
        table.add_row(
            when,
            e.source,
            f"[{colour}]{e.status}[/]",
            str(e.items_scanned),
            str(e.items_added),
            str(e.items_updated),
            str(e.items_unchanged),
            str(e.items_failed),
            str(e.duration_ms),
        )
    return table
