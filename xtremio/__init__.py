"""Importable alias for the addon's FastAPI application."""

from __future__ import annotations

from app import __version__, app, create_app

__all__ = ["__version__", "app", "create_app"]
