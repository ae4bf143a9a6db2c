"""Logging configuration for the butler CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed here, once, by the CLI entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER_NAME = "butler"


def configure_logging(verbose: bool = False, console: Console | None = None) -> logging.Handler:
    """Attach a RichHandler to the ``butler`` logger and return it.

    Args:
        verbose: DEBUG when True, WARNING otherwise.
        console: Console to render to (defaults to stderr).
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger(_LOGGER_NAME)

    for existing in list(logger.handlers):
        if isinstance(existing, RichHandler):
            logger.removeHandler(existing)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        log_time_format="%H:%M:%S",
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    # LiteLLM is chatty at INFO; keep it quiet unless debugging.
    logging.getLogger("LiteLLM").setLevel(logging.DEBUG if verbose else logging.ERROR)
    return handler
