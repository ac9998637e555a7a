"""Utility helpers for the addon service."""

from __future__ import annotations

import hashlib
import re
from typing import Any

from .models import AddonConfig

YEAR_RE = re.compile(r"(19|20|21)\d{2}")


def provider_fingerprint(config: AddonConfig) -> str:
    """Return a digest identifying the upstream source of ``config``."""

    if config.has_xtream:
        material = "|".join(
            (
                config.xtream_url or "",
                config.xtream_username or "",
                config.xtream_password or "",
            )
        )
    else:
        material = config.m3u_url or ""
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def parse_year(value: Any) -> int | None:
    """Extract a plausible release year from provider date strings."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value if 1900 <= value <= 2100 else None
    if not value:
        return None
    match = YEAR_RE.search(str(value))
    if not match:
        return None
    return int(match.group(0))


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def clean_text(value: Any) -> str | None:
    """Return ``value`` as a stripped string, or ``None`` when blank."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def mask_token(token: str, *, visible: int = 8) -> str:
    if len(token) <= visible:
        return "***"
    return f"{token[:visible]}..."
