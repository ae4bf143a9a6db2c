"""Shared CLI plumbing: config loading and opening the store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from butler.cli.errors import err_config, err_dimension_mismatch, err_no_db
from butler.config import ButlerConfig, ConfigError, load_config
from butler.db.connection import Database
from butler.db.schema import initialize
from butler.db.vectors import VectorIndex
from butler.errors import DimensionMismatch

console = Console()


def load_cli_config() -> ButlerConfig:
    """load_config() for commands: a bad config is a clean exit 1."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: ButlerConfig) -> Path:
    return db if db is not None else Path(cfg.database.path)


def open_db(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """Connect to *db_path* and bring its schema up to date."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def open_index(conn: sqlite3.Connection, cfg: ButlerConfig) -> VectorIndex:
    """Vector index for *conn* sized from the config."""
    try:
        return VectorIndex(conn, cfg.embedding.dimensions, enabled=cfg.search.enabled)
    except DimensionMismatch as exc:
        conn.close()
        console.print(err_dimension_mismatch(exc.expected, exc.actual))
        raise typer.Exit(1)
