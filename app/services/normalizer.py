"""Normalization of raw provider payloads into :class:`CatalogItem` objects."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal, Mapping, Pattern

from ..models import DEFAULT_CATEGORIES, ID_PREFIXES, CatalogItem, ContentKind
from ..utils import clean_text, parse_year

logger = logging.getLogger(__name__)

M3U_DEFAULT_CATEGORY = "Unknown"
M3U_ID_PREFIX = f"{ID_PREFIXES['tv']}m3u_"

INFERRED_CATEGORIES: tuple[str, ...] = (
    "Sports",
    "News",
    "Movies",
    "Entertainment",
    "Kids",
    "Music",
    "Documentary",
)

GROUP_TITLE_RE = re.compile(r'group-title="([^"]+)"')
TVG_LOGO_RE = re.compile(r'tvg-logo="([^"]+)"')

CategoryDialect = Literal["list", "mapping", "empty"]


@dataclass(frozen=True, slots=True)
class CategoryMap:
    """Category id to display name lookup parsed from either provider dialect.

    Some panels answer ``get_*_categories`` with a list of
    ``{"category_id", "category_name"}`` records, others with an object keyed
    by id. Both collapse into the same ``names`` mapping here.
    """

    names: Mapping[str, str] = field(default_factory=dict)
    dialect: CategoryDialect = "empty"

    @classmethod
    def parse(cls, payload: Any) -> "CategoryMap":
        names: dict[str, str] = {}
        if isinstance(payload, list):
            for entry in payload:
                if not isinstance(entry, Mapping):
                    continue
                category_id = clean_text(entry.get("category_id") or entry.get("id"))
                name = clean_text(entry.get("category_name") or entry.get("name"))
                if category_id and name:
                    names[category_id] = name
            return cls(names=names, dialect="list" if names else "empty")

        if isinstance(payload, Mapping):
            for key, entry in payload.items():
                if not isinstance(entry, Mapping):
                    continue
                name = clean_text(entry.get("category_name") or entry.get("name"))
                if name:
                    names[str(key)] = name
            return cls(names=names, dialect="mapping" if names else "empty")

        return cls()

    def __len__(self) -> int:
        return len(self.names)

    def resolve(self, record: Mapping[str, Any], kind: ContentKind) -> str:
        """Return the display category for ``record``; never empty."""

        category_id = clean_text(record.get("category_id"))
        if category_id and category_id in self.names:
            return self.names[category_id]
        for inline_field in ("category", "group_title"):
            inline = clean_text(record.get(inline_field))
            if inline:
                return inline
        return DEFAULT_CATEGORIES[kind]


class ItemFactory:
    """Builds catalog items for one account using its URL conventions."""

    def __init__(
        self,
        *,
        live_url: Callable[[Any], str],
        movie_url: Callable[[Any, str | None], str],
        series_url: Callable[[Any], str],
    ) -> None:
        self._live_url = live_url
        self._movie_url = movie_url
        self._series_url = series_url

    def channels(
        self, payload: Any, categories: CategoryMap
    ) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        for record in _records(payload, "live streams"):
            stream_id = clean_text(record.get("stream_id"))
            if stream_id is None:
                continue
            items.append(
                CatalogItem(
                    id=f"{ID_PREFIXES['tv']}{stream_id}",
                    name=clean_text(record.get("name")) or f"Channel {stream_id}",
                    kind="tv",
                    stream_url=self._live_url(stream_id),
                    category=categories.resolve(record, "tv"),
                    poster=clean_text(record.get("stream_icon")),
                )
            )
        return items

    def movies(self, payload: Any, categories: CategoryMap) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        for record in _records(payload, "VOD streams"):
            stream_id = clean_text(record.get("stream_id"))
            if stream_id is None:
                continue
            extension = clean_text(record.get("container_extension"))
            items.append(
                CatalogItem(
                    id=f"{ID_PREFIXES['movie']}{stream_id}",
                    name=clean_text(record.get("name")) or f"Movie {stream_id}",
                    kind="movie",
                    stream_url=self._movie_url(stream_id, extension),
                    category=categories.resolve(record, "movie"),
                    poster=clean_text(record.get("stream_icon")),
                    plot=clean_text(record.get("plot") or record.get("description")),
                    year=parse_year(record.get("releasedate") or record.get("releaseDate")),
                    rating=clean_text(record.get("rating")),
                    genre=clean_text(record.get("genre")),
                )
            )
        return items

    def series(self, payload: Any, categories: CategoryMap) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        for record in _records(payload, "series"):
            series_id = clean_text(record.get("series_id"))
            if series_id is None:
                continue
            items.append(
                CatalogItem(
                    id=f"{ID_PREFIXES['series']}{series_id}",
                    name=clean_text(record.get("name")) or f"Series {series_id}",
                    kind="series",
                    stream_url=self._series_url(series_id),
                    category=categories.resolve(record, "series"),
                    poster=clean_text(record.get("cover")),
                    plot=clean_text(record.get("plot") or record.get("description")),
                    year=parse_year(record.get("releaseDate") or record.get("releasedate")),
                    rating=clean_text(record.get("rating")),
                    genre=clean_text(record.get("genre")),
                )
            )
        return items


def _records(payload: Any, label: str) -> Iterable[Mapping[str, Any]]:
    if not isinstance(payload, list):
        logger.info("No %s data found or invalid format", label)
        return ()
    return (entry for entry in payload if isinstance(entry, Mapping))


def infer_categories(
    channels: list[CatalogItem], categories: CategoryMap
) -> list[CatalogItem]:
    """Guess channel categories from their names when the API gave none.

    The provider's category list is used as an all-or-nothing gate: if it
    produced any entries, channels are returned untouched.
    """

    if len(categories) or not channels:
        return channels

    logger.info("No API categories found, extracting from content")
    default = DEFAULT_CATEGORIES["tv"]
    inferred: list[CatalogItem] = []
    for channel in channels:
        if channel.category != default:
            inferred.append(channel)
            continue
        lowered = channel.name.lower()
        match = next((cat for cat in INFERRED_CATEGORIES if cat.lower() in lowered), None)
        inferred.append(channel.model_copy(update={"category": match}) if match else channel)
    return inferred


def parse_m3u(content: str) -> list[CatalogItem]:
    """Parse an extended M3U playlist into live channel items."""

    channels: list[CatalogItem] = []
    pending: dict[str, str | None] | None = None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("#EXTINF:"):
            if "," not in stripped:
                pending = None
                continue
            group = GROUP_TITLE_RE.search(stripped)
            logo = TVG_LOGO_RE.search(stripped)
            pending = {
                "name": stripped.rsplit(",", 1)[1].strip(),
                "category": group.group(1) if group else M3U_DEFAULT_CATEGORY,
                "logo": logo.group(1) if logo else None,
            }
            continue
        if stripped.startswith("#") or pending is None:
            continue

        digest = hashlib.md5(f"{len(channels)}|{stripped}".encode("utf-8")).hexdigest()[:16]
        channels.append(
            CatalogItem(
                id=f"{M3U_ID_PREFIX}{digest}",
                name=pending["name"] or stripped,
                kind="tv",
                stream_url=stripped,
                category=pending["category"] or M3U_DEFAULT_CATEGORY,
                poster=pending["logo"],
            )
        )
        pending = None

    return channels


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """A single ``pattern -> verdict`` step of the series heuristic."""

    name: str
    target: Literal["category", "name"]
    patterns: tuple[Pattern[str], ...]
    verdict: bool

    def matches(self, category: str, name: str) -> bool:
        subject = category if self.target == "category" else name
        return any(pattern.search(subject) for pattern in self.patterns)


def _keywords(*words: str) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(re.escape(word), re.IGNORECASE) for word in words)


SERIES_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="movie-category",
        target="category",
        patterns=_keywords("movie", "film", "افلام", "cinema"),
        verdict=False,
    ),
    ClassificationRule(
        name="series-category",
        target="category",
        patterns=_keywords("talk show", "مسلسل", "برنامج", "series"),
        verdict=True,
    ),
    ClassificationRule(
        name="episode-numbering",
        target="name",
        patterns=tuple(
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"الحلقة\s*\d+",
                r"حلقة\s*\d+",
                r"الجزء\s*\d+",
                r"جزء\s*\d+",
                r"s\d+e\d+",
                r"season\s*\d+.*episode\s*\d+",
                r"\d+x\d+",
                r"ep\s*\d+",
                r"episode\s*\d+",
            )
        ),
        verdict=True,
    ),
)


def is_series_episode(
    category: str,
    name: str,
    rules: tuple[ClassificationRule, ...] = SERIES_RULES,
) -> bool:
    """Classify an entry as a series episode using the first matching rule."""

    for rule in rules:
        if rule.matches(category or "", name or ""):
            return rule.verdict
    return False
