"""Pydantic models describing configurations, catalog entries and episodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ContentKind = Literal["tv", "movie", "series"]

CONTENT_KINDS: tuple[ContentKind, ...] = ("tv", "movie", "series")

DEFAULT_CATEGORIES: dict[ContentKind, str] = {
    "tv": "Live TV",
    "movie": "Movies",
    "series": "Series",
}

ID_PREFIXES: dict[ContentKind, str] = {
    "tv": "live_",
    "movie": "vod_",
    "series": "series_",
}


class AddonConfig(BaseModel):
    """User configuration carried inside the opaque addon token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    xtream_url: str | None = Field(
        default=None, validation_alias=AliasChoices("xtreamUrl", "xtream_url")
    )
    xtream_username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("xtreamUsername", "xtream_username"),
    )
    xtream_password: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("xtreamPassword", "xtream_password"),
    )
    m3u_url: str | None = Field(
        default=None, validation_alias=AliasChoices("m3uUrl", "m3u_url")
    )
    epg_url: str | None = Field(
        default=None, validation_alias=AliasChoices("epgUrl", "epg_url")
    )

    @field_validator(
        "xtream_url",
        "xtream_username",
        "xtream_password",
        "m3u_url",
        "epg_url",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("xtream_url", "m3u_url")
    @classmethod
    def _drop_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/") or None

    @property
    def has_xtream(self) -> bool:
        """Return ``True`` when complete Xtream credentials are present."""

        return bool(self.xtream_url and self.xtream_username and self.xtream_password)

    @property
    def has_playlist(self) -> bool:
        return bool(self.m3u_url)

    @property
    def is_usable(self) -> bool:
        return self.has_xtream or self.has_playlist

    def to_token_payload(self) -> dict[str, str]:
        """Return the camelCase mapping embedded in configuration tokens."""

        payload = {
            "xtreamUrl": self.xtream_url,
            "xtreamUsername": self.xtream_username,
            "xtreamPassword": self.xtream_password,
            "m3uUrl": self.m3u_url,
            "epgUrl": self.epg_url,
        }
        return {key: value for key, value in payload.items() if value}


class CatalogItem(BaseModel):
    """A normalized channel, movie or series entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: ContentKind
    stream_url: str
    category: str
    poster: str | None = None
    plot: str | None = None
    year: int | None = None
    rating: str | None = None
    genre: str | None = None

    @field_validator("category")
    @classmethod
    def _category_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("category may not be empty")
        return value

    @property
    def provider_id(self) -> str:
        """Return the provider-native identifier without the type prefix."""

        prefix = ID_PREFIXES[self.kind]
        if self.id.startswith(prefix):
            return self.id[len(prefix):]
        return self.id

    def placeholder_poster(self) -> str:
        """Return a generated image URL carrying the item name."""

        text = quote(self.name, safe="")
        if self.kind == "tv":
            return f"https://via.placeholder.com/300x400/333/fff?text={text}"
        return f"https://via.placeholder.com/300x450/666/fff?text={text}"


class Episode(BaseModel):
    """A single episode belonging to a series item."""

    series_id: str
    season: int
    episode: int
    title: str
    released: str | None = None
    duration: int | None = None
    thumbnail: str | None = None
    overview: str | None = None
    stream_id: str | None = None
    container_extension: str | None = None

    @property
    def video_id(self) -> str:
        return f"{self.series_id}:{self.season}:{self.episode}"

    def to_video(self) -> dict[str, Any]:
        """Return the addon-protocol ``video`` object for this episode."""

        video: dict[str, Any] = {
            "id": self.video_id,
            "title": self.title,
            "season": self.season,
            "episode": self.episode,
        }
        if self.overview:
            video["overview"] = self.overview
        if self.thumbnail:
            video["thumbnail"] = self.thumbnail
        if self.released:
            video["released"] = self.released
        if self.duration is not None:
            video["duration"] = self.duration
        return video


@dataclass(frozen=True, slots=True)
class CategoryIndex:
    """Sorted, de-duplicated category names per content kind."""

    live: tuple[str, ...] = ()
    movies: tuple[str, ...] = ()
    series: tuple[str, ...] = ()

    @classmethod
    def from_items(
        cls,
        channels: tuple[CatalogItem, ...],
        movies: tuple[CatalogItem, ...],
        series: tuple[CatalogItem, ...],
    ) -> "CategoryIndex":
        def _sorted(items: tuple[CatalogItem, ...]) -> tuple[str, ...]:
            return tuple(sorted({item.category for item in items if item.category}))

        return cls(live=_sorted(channels), movies=_sorted(movies), series=_sorted(series))

    def for_kind(self, kind: ContentKind) -> tuple[str, ...]:
        if kind == "tv":
            return self.live
        if kind == "movie":
            return self.movies
        return self.series


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """Complete catalog state for a single configuration."""

    channels: tuple[CatalogItem, ...] = ()
    movies: tuple[CatalogItem, ...] = ()
    series: tuple[CatalogItem, ...] = ()
    categories: CategoryIndex = field(default_factory=CategoryIndex)
    source: str = "empty"
    degraded: bool = False

    @classmethod
    def build(
        cls,
        *,
        channels: list[CatalogItem] | tuple[CatalogItem, ...] = (),
        movies: list[CatalogItem] | tuple[CatalogItem, ...] = (),
        series: list[CatalogItem] | tuple[CatalogItem, ...] = (),
        source: str,
        degraded: bool = False,
    ) -> "CatalogSnapshot":
        """Freeze the item lists and derive the category index from them."""

        frozen_channels = tuple(channels)
        frozen_movies = tuple(movies)
        frozen_series = tuple(series)
        return cls(
            channels=frozen_channels,
            movies=frozen_movies,
            series=frozen_series,
            categories=CategoryIndex.from_items(
                frozen_channels, frozen_movies, frozen_series
            ),
            source=source,
            degraded=degraded,
        )

    @classmethod
    def empty(cls, *, source: str = "empty") -> "CatalogSnapshot":
        return cls(source=source, degraded=True)

    def items_for(self, kind: str) -> tuple[CatalogItem, ...]:
        if kind == "tv":
            return self.channels
        if kind == "movie":
            return self.movies
        if kind == "series":
            return self.series
        return ()

    def counts(self) -> dict[str, int]:
        return {
            "channels": len(self.channels),
            "movies": len(self.movies),
            "series": len(self.series),
        }
