"""Butler rich error messages — what went wrong and how to fix it.

Usage:
    from butler.cli.errors import err_no_db
    console.print(err_no_db(".butler.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = f"{provider.upper()}_API_KEY" if provider else "OPENAI_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or index without vectors:  butler index --no-embed"
    )


def err_no_db(db_path: str = ".butler.db") -> str:
    """No database found at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  butler init"
    )


def err_config(message: str) -> str:
    """Configuration failed to load or validate."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Check butler.yaml and ~/.butler/config.yaml."
    )


def err_search_unavailable(reason: str) -> str:
    """Vector search cannot run (extension missing or search disabled)."""
    return (
        f"[red]Error:[/] Search disabled: {reason}\n"
        "  Install sqlite-vec for this Python build and set search.enabled: true."
    )


def err_dimension_mismatch(expected: int | None, actual: int | None) -> str:
    """Configured embedding dimensions do not match the stored vectors."""
    return (
        "[red]Error:[/] Embedding dimension mismatch.\n"
        f"  Configured:  {expected}\n"
        f"  Found:       {actual}\n"
        "  Set embedding.dimensions to match the database, or start a new database."
    )


def err_vault_not_found(path: str) -> str:
    """Vault directory does not exist."""
    return (
        f"[red]Error:[/] Vault directory not found: '{path}'\n"
        "  Pass --vault <dir> or set vault.path in butler.yaml."
    )


def err_document_not_found(path: str) -> str:
    """Document path is not in the store."""
    return (
        f"[yellow]Not found:[/] '{path}' is not indexed.\n"
        "  Run:  butler status  to see indexed documents."
    )


def err_invalid_import(path: str, message: str) -> str:
    """Import file is not a JSON array of record objects."""
    return (
        f"[red]Error:[/] Cannot import '{path}': {message}\n"
        '  Expected a JSON array: [{"external_key": "...", "title": "...", "body": "..."}]'
    )


def err_embedding_failed(model: str, message: str) -> str:
    """The embedding provider call failed after retries."""
    return (
        f"[red]Error:[/] Embedding request to '{model}' failed: {message}\n"
        "  Check your network connection and provider status, then run the command again."
    )
