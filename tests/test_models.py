import pytest
from pydantic import ValidationError

from app.models import AddonConfig, CatalogItem, CatalogSnapshot, Episode


def test_addon_config_accepts_camel_case_and_strips_blanks():
    config = AddonConfig.model_validate(
        {
            "xtreamUrl": " http://provider.example:8080/ ",
            "xtreamUsername": "user",
            "xtreamPassword": "pass",
            "m3uUrl": "   ",
        }
    )

    assert config.xtream_url == "http://provider.example:8080"
    assert config.m3u_url is None
    assert config.has_xtream
    assert not config.has_playlist
    assert config.to_token_payload() == {
        "xtreamUrl": "http://provider.example:8080",
        "xtreamUsername": "user",
        "xtreamPassword": "pass",
    }


def test_addon_config_hides_password_in_repr():
    config = AddonConfig(xtreamUrl="http://p", xtreamUsername="u", xtreamPassword="topsecret")

    assert "topsecret" not in repr(config)


def test_incomplete_credentials_are_not_usable():
    assert not AddonConfig(xtreamUrl="http://p", xtreamUsername="u").is_usable
    assert AddonConfig(m3uUrl="http://lists/tv.m3u").is_usable


def test_catalog_item_requires_category():
    with pytest.raises(ValidationError):
        CatalogItem(id="live_1", name="One", kind="tv", stream_url="http://s", category="  ")


def test_provider_id_strips_prefix():
    item = CatalogItem(id="series_42", name="Show", kind="series", stream_url="http://s", category="Drama")

    assert item.provider_id == "42"


def test_episode_video_payload():
    episode = Episode(series_id="series_42", season=2, episode=3, title="Finale", overview="Season 2 Episode 3")

    assert episode.to_video() == {
        "id": "series_42:2:3",
        "title": "Finale",
        "season": 2,
        "episode": 3,
        "overview": "Season 2 Episode 3",
    }


def test_snapshot_derives_sorted_categories():
    snapshot = CatalogSnapshot.build(
        channels=[
            CatalogItem(id="live_1", name="B", kind="tv", stream_url="http://s/1", category="Sports"),
            CatalogItem(id="live_2", name="A", kind="tv", stream_url="http://s/2", category="News"),
            CatalogItem(id="live_3", name="C", kind="tv", stream_url="http://s/3", category="News"),
        ],
        source="m3u_url",
    )

    assert snapshot.categories.live == ("News", "Sports")
    assert snapshot.categories.for_kind("movie") == ()
    assert snapshot.counts() == {"channels": 3, "movies": 0, "series": 0}
    assert not snapshot.degraded
    assert CatalogSnapshot.empty().degraded
