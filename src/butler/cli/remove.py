"""butler remove — drop one indexed note and all its data.

Removes, in one transaction:
  - the note's vectors (vec_chunks)
  - its chunks
  - the document row

Usage:
  butler remove journal/2024-05-03.md
  butler remove journal/2024-05-03.md --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from butler.cli.errors import err_document_not_found
from butler.cli.store import load_cli_config, open_db, open_index, resolve_db
from butler.db.repository import Repository
from butler.ingest.pipeline import DocumentIndexer

console = Console()


def remove_cmd(
    path: Annotated[
        str,
        typer.Argument(help="Document path as stored (relative to the vault)."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a note with its chunks and vectors from the index."""
    cfg = load_cli_config()
    conn = open_db(resolve_db(db, cfg))
    try:
        repo = Repository(conn)
        document = repo.get_document_by_path(path)
        if document is None:
            console.print(err_document_not_found(path))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks(document.id)
        console.print(f"\nRemove note: [bold]{path}[/]")
        console.print(f"  Chunks: {chunk_count}")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        DocumentIndexer(repo, open_index(conn, cfg)).remove_document(path)
    finally:
        conn.close()

    console.print(f"\n[green]✓[/] Removed: {path} ({chunk_count} chunks)")
    console.print("  It will be re-added by the next  butler index  if the file still exists.")
