"""butler index — sync a notes directory into the document store.

Only new and changed notes are re-chunked and re-embedded; notes whose
files disappeared are removed together with their chunks and vectors.
Every run is recorded in the sync log under the source name ``vault``.

Usage:
  butler index
  butler index --vault ~/notes
  butler index --no-embed
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from butler.cli.errors import err_no_api_key, err_vault_not_found
from butler.cli.store import load_cli_config, open_db, open_index, resolve_db
from butler.db.models import SyncLogEntry
from butler.db.repository import Repository
from butler.ingest.embeddings import LiteLLMEmbedder
from butler.ingest.markdown import NoteChunker
from butler.ingest.pipeline import DocumentIndexer
from butler.ingest.vault import VaultIndexer, VaultIndexingResult

console = Console()

VAULT_SOURCE = "vault"


def index_cmd(
    vault: Annotated[
        Path | None,
        typer.Option("--vault", help="Notes directory. Defaults to vault.path from butler.yaml."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
    no_embed: Annotated[
        bool,
        typer.Option("--no-embed", help="Store chunks without computing embeddings."),
    ] = False,
) -> None:
    """Index new and changed notes; drop notes that were deleted."""
    cfg = load_cli_config()
    vault_dir = vault if vault is not None else Path(cfg.vault.path).expanduser()
    if not vault_dir.is_dir():
        console.print(err_vault_not_found(str(vault_dir)))
        raise typer.Exit(1)

    embedder = None
    if not no_embed:
        embedder = LiteLLMEmbedder(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
        )
        try:
            embedder.check_api_key()
        except RuntimeError:
            provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else ""
            console.print(err_no_api_key(provider))
            raise typer.Exit(1)

    conn = open_db(resolve_db(db, cfg), must_exist=False)
    try:
        repo = Repository(conn)
        index = open_index(conn, cfg)
        if embedder is not None and not index.available:
            console.print("[yellow]⚠[/]  Vector search unavailable — storing chunks without embeddings.")

        chunker = NoteChunker(
            chunk_size=cfg.chunker.target_tokens,
            overlap_tokens=cfg.chunker.overlap_tokens,
        )
        indexer = DocumentIndexer(repo, index, chunker, embed=embedder)
        vault_indexer = VaultIndexer(
            vault_dir,
            indexer,
            include=cfg.vault.include,
            exclude=cfg.vault.exclude,
        )

        with console.status(f"Indexing {vault_dir} …"):
            result = vault_indexer.index_vault()

        repo.add_sync_log(_log_entry(result))
    finally:
        conn.close()

    _print_summary(vault_dir, result)
    if result.errors:
        raise typer.Exit(1)


def _log_entry(result: VaultIndexingResult) -> SyncLogEntry:
    message = f"{result.removed} removed, {result.chunks_created} chunks"
    if result.errors:
        message += "; " + "; ".join(result.errors[:5])
    return SyncLogEntry(
        source=VAULT_SOURCE,
        status="partial" if result.errors else "ok",
        items_scanned=result.scanned,
        items_added=result.added,
        items_updated=result.updated,
        items_unchanged=result.unchanged,
        items_failed=result.failed,
        duration_ms=result.duration_ms,
        message=message,
    )


def _print_summary(vault_dir: Path, result: VaultIndexingResult) -> None:
    console.print(f"\n[green]✓[/] Indexed [bold]{vault_dir}[/] in {result.duration_ms} ms")
    console.print(
        f"  Scanned: {result.scanned}  |  Added: {result.added}  |  "
        f"Updated: {result.updated}  |  Unchanged: {result.unchanged}  |  "
        f"Removed: {result.removed}  |  Chunks: {result.chunks_created}"
    )
    for error in result.errors:
        console.print(f"  [red]✗[/] {error}")
