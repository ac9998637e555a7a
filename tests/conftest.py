"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


# The ``app`` package sits at the project root; make it importable without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


ADDON_ENV_VARS = (
    "CONFIG_SECRET",
    "PUBLIC_URL",
    "CACHE_ENABLED",
    "CACHE_TTL_MS",
    "MAX_CACHE_ENTRIES",
    "CATALOG_PAGE_SIZE",
    "ENVIRONMENT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_addon_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables from leaking into ``Settings``."""

    for name in ADDON_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
