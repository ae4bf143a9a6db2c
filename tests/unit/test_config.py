"""Tests for the butler config loader."""

from __future__ import annotations

import stat
import warnings
from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from butler.config import (
    _API_KEY_RE,
    ButlerConfig,
    ConfigError,
    ensure_global_config,
    load_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path, global_cfg: Path | None = None) -> ButlerConfig:
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_cfg or tmp_path / "missing" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    """No config files → all hardcoded defaults."""
    cfg = _load(tmp_path)

    assert cfg.database.path == ".butler.db"
    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.search.enabled is True
    assert cfg.search.top_k == 5
    assert cfg.search.min_score == pytest.approx(0.3)
    assert cfg.chunker.target_tokens == 500
    assert cfg.chunker.overlap_tokens == 50
    assert cfg.sync.resolution == timedelta(seconds=1)
    assert cfg.vault.include == ["*.md"]


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"model": "openai/text-embedding-3-large", "dimensions": 3072}})

    cfg = _load(tmp_path, global_cfg)

    assert cfg.embedding.model == "openai/text-embedding-3-large"
    assert cfg.embedding.dimensions == 3072
    assert cfg.embedding.batch_size == 100


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")
    assert _load(tmp_path, global_cfg).search.top_k == 5


def test_load_config_project_overrides_global(tmp_path: Path) -> None:
    global_cfg = tmp_path / "g" / "config.yaml"
    global_cfg.parent.mkdir()
    _write_yaml(global_cfg, {"embedding": {"dimensions": 3072}, "search": {"top_k": 8}})
    _write_yaml(tmp_path / "butler.yaml", {"embedding": {"dimensions": 4}})

    cfg = _load(tmp_path, global_cfg)

    assert cfg.embedding.dimensions == 4
    assert cfg.search.top_k == 8


def test_load_config_vault_and_sync_sections(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "butler.yaml",
        {
            "vault": {"path": "~/notes", "exclude": ["archive/*"]},
            "sync": {"freshness_resolution": "Millisecond"},
            "search": {"enabled": False},
        },
    )
    cfg = _load(tmp_path)

    assert cfg.vault.path == "~/notes"
    assert cfg.vault.exclude == ["archive/*"]
    assert cfg.vault.include == ["*.md"]
    assert cfg.sync.resolution == timedelta(milliseconds=1)
    assert cfg.search.enabled is False


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("section", "values", "match"),
    [
        ("embedding", {"dimensions": 0}, "embedding.dimensions"),
        ("embedding", {"batch_size": 0}, "embedding.batch_size"),
        ("search", {"top_k": 0}, "search.top_k"),
        ("search", {"min_score": -0.1}, "search.min_score"),
        ("chunker", {"target_tokens": 0}, "chunker.target_tokens"),
        ("chunker", {"target_tokens": 100, "overlap_tokens": 100}, "chunker.overlap_tokens"),
        ("sync", {"freshness_resolution": "minute"}, "freshness_resolution"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, section: str, values: dict, match: str) -> None:
    _write_yaml(tmp_path / "butler.yaml", {section: values})
    with pytest.raises(ConfigError, match=match):
        _load(tmp_path)


@pytest.mark.parametrize(
    "bad_key",
    ["api_key", "apikey", "OPENAI_API_KEY", "secret", "password", "token", "api-key"],
)
def test_global_config_rejects_api_key_fields(tmp_path: Path, bad_key: str) -> None:
    """Global config containing API key-like field names raises ConfigError."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text(f"{bad_key}: sk-abc123\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="forbidden key"):
        _load(tmp_path, global_cfg)


def test_global_config_rejects_nested_api_key(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-secret"}})

    with pytest.raises(ConfigError, match="forbidden key"):
        _load(tmp_path, global_cfg)


def test_chunker_token_keys_are_not_credentials(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"chunker": {"target_tokens": 300, "overlap_tokens": 30}})
    assert _load(tmp_path, global_cfg).chunker.target_tokens == 300


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "butler.yaml", {"generation": {"model": "x"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path)

    assert any("generation" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_var_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "butler.yaml", {"database": {"path": "project.db"}})
    monkeypatch.setenv("BUTLER_DB", "/tmp/env.db")
    monkeypatch.setenv("BUTLER_EMBEDDING_MODEL", "cohere/embed-english-v3.0")
    monkeypatch.setenv("BUTLER_VAULT_PATH", "/vault")

    cfg = _load(tmp_path)

    assert cfg.database.path == "/tmp/env.db"
    assert cfg.embedding.model == "cohere/embed-english-v3.0"
    assert cfg.vault.path == "/vault"


def test_env_var_absent_does_not_override(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "butler.yaml", {"database": {"path": "project.db"}})
    assert _load(tmp_path).database.path == "project.db"


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / ".butler" / "config.yaml"
    result = ensure_global_config(global_config_path=target)

    assert result == target
    parsed = yaml.safe_load(target.read_text(encoding="utf-8")) or {}
    assert parsed["embedding"]["dimensions"] == 1536

    def _no_api_keys(obj: object) -> bool:
        if isinstance(obj, dict):
            return all(not _API_KEY_RE.search(str(k)) and _no_api_keys(v) for k, v in obj.items())
        return True

    assert _no_api_keys(parsed)


def test_ensure_global_config_file_mode(tmp_path: Path) -> None:
    """ensure_global_config creates file with mode 0o600 (owner-only)."""
    target = tmp_path / ".butler" / "config.yaml"
    ensure_global_config(global_config_path=target)
    assert stat.S_IMODE(target.stat().st_mode) == 0o600


def test_ensure_global_config_idempotent(tmp_path: Path) -> None:
    target = tmp_path / ".butler" / "config.yaml"
    ensure_global_config(global_config_path=target)
    target.write_text("embedding:\n  dimensions: 4\n", encoding="utf-8")

    ensure_global_config(global_config_path=target)

    assert "dimensions: 4" in target.read_text(encoding="utf-8")


def test_config_does_not_execute_yaml_load(tmp_path: Path) -> None:
    """Config loader uses safe_load — python tags are rejected, not executed."""
    (tmp_path / "butler.yaml").write_text(
        "database: !!python/object/apply:os.system ['echo pwned']\n", encoding="utf-8"
    )
    with pytest.raises(yaml.YAMLError):
        _load(tmp_path)
