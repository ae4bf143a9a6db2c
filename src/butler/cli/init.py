"""butler init — create the database and a starter butler.yaml.

Creates:
  .butler.db               — store with the current schema (plus vec_chunks
                             when sqlite-vec is available)
  butler.yaml              — project config with the defaults spelled out
  ~/.butler/config.yaml    — global model config (created once, mode 0o600)

Re-running init on an existing project only migrates the schema; existing
data and config are preserved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from butler.cli.errors import err_config
from butler.cli.store import open_index
from butler.config import ButlerConfig, ConfigError, ensure_global_config, load_config
from butler.db.connection import Database
from butler.db.migrations import current_version
from butler.db.schema import initialize

console = Console()

_PROJECT_CONFIG_TEMPLATE = """\
# Butler project configuration.
# NEVER store API keys here — use environment variables.

database:
  path: .butler.db

embedding:
  model: {model}
  dimensions: {dimensions}
  batch_size: 100

search:
  enabled: true
  top_k: 5
  min_score: 0.3

chunker:
  target_tokens: 500
  overlap_tokens: 50

sync:
  freshness_resolution: second

vault:
  path: {vault}
  include: ["*.md"]
  exclude: ["templates/*", ".obsidian/*"]
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    vault: Annotated[
        str,
        typer.Option("--vault", help="Notes directory to record in butler.yaml."),
    ] = "notes",
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.butler/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Initialize a Butler project: database, schema and butler.yaml."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    global_path = ensure_global_config(global_config)
    try:
        cfg = load_config(project_dir, global_config_path=global_path)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    config_path = project_dir / "butler.yaml"
    if config_path.exists():
        console.print(f"[dim]Keeping existing {config_path.name}[/]")
    else:
        config_path.write_text(
            _PROJECT_CONFIG_TEMPLATE.format(
                model=cfg.embedding.model,
                dimensions=cfg.embedding.dimensions,
                vault=vault,
            ),
            encoding="utf-8",
        )
        console.print(f"[green]✓[/] Created {config_path.name}")

    db_path = _db_path(project_dir, cfg)
    existed = db_path.exists()
    conn = Database(db_path).connect()
    try:
        initialize(conn)
        index = open_index(conn, cfg)
        version = current_version(conn)
    finally:
        conn.close()

    verb = "Migrated" if existed else "Created"
    console.print(f"[green]✓[/] {verb} {db_path.name} (schema v{version})")
    if not index.available:
        console.print("[yellow]⚠[/]  sqlite-vec not available — notes will be stored but not searchable.")
    console.print(f"\nNext:  butler index --vault {vault}")


def _db_path(project_dir: Path, cfg: ButlerConfig) -> Path:
    path = Path(cfg.database.path)
    return path if path.is_absolute() else project_dir / path
