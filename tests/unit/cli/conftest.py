"""Fixtures for CLI tests: a project directory with a 4-d config and a notes vault."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml


def fake_embedding(model, input, **kwargs):
    """Stand-in for litellm.embedding returning 4-d vectors."""
    resp = MagicMock()
    resp.data = [{"embedding": [1.0, float(len(t) % 3), 0.0, 0.5]} for t in input]
    return resp


@pytest.fixture
def project(tmp_path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("COLUMNS", "200")
    (tmp_path / "butler.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": 4}, "vault": {"path": "notes"}}),
        encoding="utf-8",
    )
    notes = tmp_path / "notes"
    (notes / "journal").mkdir(parents=True)
    (notes / "inbox.md").write_text("# Inbox\n\n- call Anna\n", encoding="utf-8")
    (notes / "journal" / "2024-05-03.md").write_text("went hiking in the hills\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def embed_calls(monkeypatch) -> list[list[str]]:
    """Route litellm.embedding to fake_embedding; returns the batches it received."""
    calls: list[list[str]] = []

    def recording(model, input, **kwargs):
        calls.append(list(input))
        return fake_embedding(model, input)

    monkeypatch.setattr("butler.ingest.embeddings.litellm.embedding", recording)
    return calls
