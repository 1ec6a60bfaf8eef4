"""Pytest configuration — ensures the project root is importable."""

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

_CONFIG_PREFIXES = ("SWAP_", "SUPABASE_", "VITE_SUPABASE_")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Hide any real store credentials so no test can reach a live database."""
    for name in list(os.environ):
        if name.startswith(_CONFIG_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    yield
