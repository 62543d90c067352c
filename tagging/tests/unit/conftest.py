"""Unit test configuration and fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from tagging.core.config import DEFAULT_TAXONOMY_PATH, get_settings
from tagging.services.taxonomy import TaxonomyProvider
from tagging.tests.factories import FakeClock


@pytest.fixture(autouse=True)
def set_test_environment(monkeypatch):
    """Run every unit test with ENVIRONMENT=test and fresh cached settings."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def taxonomy_provider() -> TaxonomyProvider:
    """Provider over the taxonomy shipped with the package."""
    return TaxonomyProvider(DEFAULT_TAXONOMY_PATH)


@pytest.fixture
def write_taxonomy(tmp_path: Path):
    """Write a taxonomy document (dict or raw text) to a temp file and return its path."""

    def _write(document: dict[str, Any] | str) -> Path:
        path = tmp_path / "taxonomy.json"
        if isinstance(document, str):
            path.write_text(document, encoding="utf-8")
        else:
            path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write
