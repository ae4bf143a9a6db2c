"""Butler CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from butler.cli.importer import import_cmd
from butler.cli.index import index_cmd
from butler.cli.init import init_cmd
from butler.cli.log import log_cmd
from butler.cli.remove import remove_cmd
from butler.cli.search import search_cmd
from butler.cli.status import status_cmd
from butler.logging_config import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("butler")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"butler {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="butler",
    help=(
        "Butler — personal context store and note search.\n\n"
        "  butler import  Reconcile fetched records (calendar, mail, journal) into the store.\n"
        "  butler index   Sync a notes directory into the chunk + vector index.\n"
        "  butler search  Semantic search over indexed notes."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """Butler — personal context store and note search."""
    configure_logging(verbose)


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("import")(import_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)
app.command("log")(log_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Butler version."""
    typer.echo(f"butler {_installed_version()}")


if __name__ == "__main__":
    app()
