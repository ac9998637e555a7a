"""Self-hosted IPTV addon application package.

``app.main`` is imported lazily so that importing a submodule such as
``app.crypto`` does not configure logging or build the FastAPI instance.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "2.0.0"

__all__ = ["__version__", "app", "create_app"]

_LAZY_ATTRIBUTES = {"app", "create_app"}


def __getattr__(name: str) -> Any:
    if name in _LAZY_ATTRIBUTES:
        return getattr(import_module("app.main"), name)
    raise AttributeError(f"module 'app' has no attribute {name}")
