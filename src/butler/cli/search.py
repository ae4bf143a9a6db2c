"""butler search — semantic search over indexed notes."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from butler.cli.errors import (
    err_dimension_mismatch,
    err_embedding_failed,
    err_no_api_key,
    err_search_unavailable,
)
from butler.cli.store import load_cli_config, open_db, open_index, resolve_db
from butler.db.models import SearchResult
from butler.db.repository import Repository
from butler.errors import DimensionMismatch, IndexUnavailable
from butler.ingest.embeddings import PROVIDER_ERRORS, LiteLLMEmbedder
from butler.rag.retriever import RetrieverConfig, retrieve

console = Console()

_SNIPPET_CHARS = 160


def search_cmd(
    query: Annotated[str, typer.Argument(help="What to look for.")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Maximum notes to return."),
    ] = None,
    min_score: Annotated[
        float | None,
        typer.Option("--min-score", help="Similarity floor in [0, 1]."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .butler.db."),
    ] = None,
) -> None:
    """Find the notes most similar to QUERY (best chunk per note)."""
    cfg = load_cli_config()
    config = RetrieverConfig(
        top_k=top_k if top_k is not None else cfg.search.top_k,
        min_score=min_score if min_score is not None else cfg.search.min_score,
    )
    embedder = LiteLLMEmbedder(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        batch_size=cfg.embedding.batch_size,
    )

    conn = open_db(resolve_db(db, cfg))
    try:
        index = open_index(conn, cfg)
        results = retrieve(query, Repository(conn), index, embedder.embed_query, config)
    except IndexUnavailable as exc:
        console.print(err_search_unavailable(str(exc)))
        raise typer.Exit(1)
    except DimensionMismatch as exc:
        console.print(err_dimension_mismatch(exc.expected, exc.actual))
        raise typer.Exit(1)
    except RuntimeError:
        provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else ""
        console.print(err_no_api_key(provider))
        raise typer.Exit(1)
    except PROVIDER_ERRORS as exc:
        console.print(err_embedding_failed(cfg.embedding.model, str(exc)))
        raise typer.Exit(1)
    finally:
        conn.close()

    if not results:
        console.print(f"[dim]No notes above score {config.min_score:.2f}.[/]")
        return
    console.print(_results_table(results))


def _results_table(results: list[SearchResult]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Note")
    table.add_column("Lines", style="dim")
    table.add_column("Excerpt")
    for r in results:
        lines = f"{r.start_line}-{r.end_line}" if r.start_line is not None else ""
        excerpt = " ".join(r.text.split())
        if len(excerpt) > _SNIPPET_CHARS:
            excerpt = excerpt[: _SNIPPET_CHARS - 1] + "…"
        table.add_row(f"{r.score:.3f}", r.title or r.path, lines, excerpt)
    return table
