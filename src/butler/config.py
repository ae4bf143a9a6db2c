"""Butler configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (BUTLER_DB, BUTLER_EMBEDDING_MODEL, BUTLER_VAULT_PATH)
  3. Per-project butler.yaml  (in the working directory)
  4. Global ~/.butler/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".butler"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "butler.yaml"

# Key names that look like credentials — forbidden in global config.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "search", "chunker", "sync", "vault"]
)

# Timestamp resolution used by the freshness gate.
FRESHNESS_RESOLUTIONS: dict[str, timedelta] = {
    "second": timedelta(seconds=1),
    "millisecond": timedelta(milliseconds=1),
    "microsecond": timedelta(microseconds=1),
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """SQLite store location (butler.yaml: database:)."""

    path: str = ".butler.db"


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (butler.yaml: embedding:).

    ``dimensions`` is fixed per deployment; the vector table is created with it
    and every stored vector must match it.
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 100


@dataclass
class SearchCfg:
    """Default search parameters (butler.yaml: search:)."""

    enabled: bool = True
    top_k: int = 5
    min_score: float = 0.3


@dataclass
class ChunkerCfg:
    """Note chunker sizing in approximate tokens (butler.yaml: chunker:)."""

    target_tokens: int = 500
    overlap_tokens: int = 50


@dataclass
class SyncCfg:
    """Reconciler settings (butler.yaml: sync:)."""

    freshness_resolution: str = "second"

    @property
    def resolution(self) -> timedelta:
        return FRESHNESS_RESOLUTIONS[self.freshness_resolution]


@dataclass
class VaultCfg:
    """Notes directory scanned by ``butler index`` (butler.yaml: vault:)."""

    path: str = "notes"
    include: list[str] = field(default_factory=lambda: ["*.md"])
    exclude: list[str] = field(default_factory=lambda: ["templates/*", ".obsidian/*"])


@dataclass
class ButlerConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    sync: SyncCfg = field(default_factory=SyncCfg)
    vault: VaultCfg = field(default_factory=VaultCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ButlerConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.search.top_k < 1:
        raise ConfigError(f"search.top_k must be >= 1, got {cfg.search.top_k}")
    if cfg.search.min_score < 0:
        raise ConfigError(f"search.min_score must be >= 0, got {cfg.search.min_score}")
    if cfg.chunker.target_tokens < 1:
        raise ConfigError(f"chunker.target_tokens must be >= 1, got {cfg.chunker.target_tokens}")
    if not 0 <= cfg.chunker.overlap_tokens < cfg.chunker.target_tokens:
        raise ConfigError(
            "chunker.overlap_tokens must be in [0, target_tokens), "
            f"got {cfg.chunker.overlap_tokens}"
        )
    if cfg.sync.freshness_resolution not in FRESHNESS_RESOLUTIONS:
        allowed = ", ".join(FRESHNESS_RESOLUTIONS)
        raise ConfigError(
            f"sync.freshness_resolution must be one of: {allowed} "
            f"(got '{cfg.sync.freshness_resolution}')"
        )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ButlerConfig:
    """Build a *ButlerConfig* from a merged raw YAML dict."""
    cfg = ButlerConfig()

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            enabled=bool(s.get("enabled", cfg.search.enabled)),
            top_k=int(s.get("top_k", cfg.search.top_k)),
            min_score=float(s.get("min_score", cfg.search.min_score)),
        )

    if "chunker" in data:
        c = data["chunker"] or {}
        cfg.chunker = ChunkerCfg(
            target_tokens=int(c.get("target_tokens", cfg.chunker.target_tokens)),
            overlap_tokens=int(c.get("overlap_tokens", cfg.chunker.overlap_tokens)),
        )

    if "sync" in data:
        sy = data["sync"] or {}
        cfg.sync = SyncCfg(
            freshness_resolution=str(
                sy.get("freshness_resolution", cfg.sync.freshness_resolution)
            ).lower(),
        )

    if "vault" in data:
        v = data["vault"] or {}
        cfg.vault = VaultCfg(
            path=str(v.get("path", cfg.vault.path)),
            include=[str(p) for p in v.get("include", cfg.vault.include)],
            exclude=[str(p) for p in v.get("exclude", cfg.vault.exclude)],
        )

    return cfg


def _apply_env_overrides(cfg: ButlerConfig) -> ButlerConfig:
    """Apply BUTLER_* environment variable overrides."""
    if path := os.environ.get("BUTLER_DB"):
        cfg.database.path = path
    if model := os.environ.get("BUTLER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if vault := os.environ.get("BUTLER_VAULT_PATH"):
        cfg.vault.path = vault
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ButlerConfig:
    """Load and return a merged *ButlerConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *butler.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or if a
            value fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(global_config_path: Path | None = None) -> Path:
    """Create ``~/.butler/config.yaml`` with defaults if it does not exist.

    The directory is created with mode 0o700 and the file with mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Butler global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
