"""Tests for the pure selection and mapping helpers of each provider."""

from __future__ import annotations

from metadata.anidb import ANIDB_IMAGE_BASE, parse_anime_xml
from metadata.anilist import media_to_metadata, select_match
from metadata.jikan import anime_to_metadata, find_best_match
from metadata.matching import clean_query, clean_title, title_matches
from metadata.settings import load_metadata_settings
from metadata.tmdb import select_movie, select_series
from metadata.types import UnifiedMetadata

ANIDB_XML = """<?xml version="1.0" encoding="UTF-8"?>
<anime id="9541">
  <episodecount>25</episodecount>
  <startdate>2013-04-07</startdate>
  <titles>
    <title xml:lang="x-jat" type="main">Shingeki no Kyojin</title>
    <title xml:lang="ja" type="official">進撃の巨人</title>
    <title xml:lang="en" type="official">Attack on Titan</title>
  </titles>
  <description>Humanity lives inside walls.</description>
  <ratings>
    <permanent count="100">8.51</permanent>
    <temporary count="100">8.60</temporary>
  </ratings>
  <picture>12345.jpg</picture>
</anime>
"""


def test_clean_helpers() -> None:
    assert clean_query("Show (2019)") == "show"
    assert clean_query("  Frieren ") == "frieren"
    assert clean_title("Re:Zero -- Starting") == "rezero starting"


def test_title_matches() -> None:
    assert title_matches("Attack on Titan", "Attack on Titan (2013)")
    assert title_matches("Spy x Family", "SPY x FAMILY Season 2")
    assert not title_matches("Naruto", "Boruto")
    assert not title_matches("Naruto", None)


def test_parse_anime_xml() -> None:
    metadata = parse_anime_xml(ANIDB_XML, 9541)

    assert metadata is not None
    assert metadata.anidb_id == "9541"
    assert metadata.name == "Shingeki no Kyojin"
    assert metadata.name_original == "進撃の巨人"
    assert metadata.year == 2013
    assert metadata.community_rating == 8.51
    assert metadata.episode_count == 25
    assert metadata.poster_url == f"{ANIDB_IMAGE_BASE}/12345.jpg"
    assert metadata.provider == "anidb"


def test_parse_anime_xml_errors() -> None:
    assert parse_anime_xml("<error>Banned</error>", 1) is None
    assert parse_anime_xml("<anime><broken>", 1) is None
    assert parse_anime_xml("<anime id='1'><titles/></anime>", 1) is None


def test_anilist_select_match_prefers_title_then_year() -> None:
    results = [
        {"id": 1, "title": {"english": "Something Else"}, "seasonYear": 2013},
        {"id": 2, "title": {"english": "Attack on Titan", "romaji": "Shingeki no Kyojin"}, "seasonYear": 2013},
    ]
    assert select_match(results, "Shingeki no Kyojin", 2013)["id"] == 2
    assert select_match(results[:1], "Attack on Titan", 2013)["id"] == 1
    assert select_match(results[:1], "Attack on Titan", 2014) is None
    assert select_match([], "Attack on Titan") is None


def test_anilist_media_to_metadata() -> None:
    media = {
        "id": 16498,
        "idMal": 16498,
        "title": {"english": "Attack on Titan", "romaji": "Shingeki no Kyojin", "native": "進撃の巨人"},
        "description": "<b>Humanity</b> fights.",
        "seasonYear": 2013,
        "startDate": {"year": 2013, "month": 4, "day": 7},
        "averageScore": 85,
        "coverImage": {"large": "https://img/large.jpg"},
        "genres": ["Action", "Drama"],
        "studios": {"nodes": [{"name": "Pony Canyon"}, {"name": "Wit Studio", "isAnimationStudio": True}]},
        "characters": {
            "edges": [
                {
                    "node": {"name": {"full": "Eren Yeager"}},
                    "voiceActors": [{"id": 95011, "name": {"full": "Yuki Kaji"}, "image": {"large": "https://img/kaji.jpg"}}],
                }
            ]
        },
    }

    metadata = media_to_metadata(media)

    assert metadata.anilist_id == "16498"
    assert metadata.mal_id == "16498"
    assert metadata.name == "Attack on Titan"
    assert metadata.overview == "Humanity fights."
    assert metadata.premiere_date == "2013-04-07"
    assert metadata.community_rating == 8.5
    assert metadata.studio == "Wit Studio"
    assert metadata.cast[0].person_id == "anilist-staff-95011"
    assert metadata.cast[0].character_name == "Eren Yeager"


def test_jikan_best_match_breaks_ties_by_title_closeness() -> None:
    results = [
        {"mal_id": 1, "title": "Monster Extra"},
        {"mal_id": 2, "title": "Monsters"},
    ]
    assert find_best_match(results, "Monster")["mal_id"] == 2


def test_jikan_best_match_uses_year_and_rejects_unrelated() -> None:
    results = [
        {"mal_id": 10, "title": "Hunter x Hunter", "year": 1999, "type": "TV"},
        {"mal_id": 11, "title": "Hunter x Hunter", "year": 2011, "type": "TV"},
    ]
    assert find_best_match(results, "Hunter x Hunter", 2011)["mal_id"] == 11
    assert find_best_match([{"mal_id": 3, "title": "Bleach"}], "Naruto") is None


def test_jikan_anime_to_metadata() -> None:
    anime = {
        "mal_id": 5114,
        "title": "Fullmetal Alchemist: Brotherhood",
        "synopsis": "Two brothers.",
        "aired": {"from": "2009-04-05T00:00:00+00:00"},
        "score": 9.1,
        "images": {"jpg": {"image_url": "https://img/fma.jpg"}},
        "genres": [{"name": "Action"}],
        "themes": [{"name": "Military"}],
        "studios": [{"name": "Bones"}],
    }

    metadata = anime_to_metadata(anime)

    assert metadata.mal_id == "5114"
    assert metadata.year == 2009
    assert metadata.premiere_date == "2009-04-05"
    assert metadata.genres == ["Action", "Military"]
    assert metadata.studio == "Bones"
    assert metadata.poster_url == "https://img/fma.jpg"


def test_tmdb_selectors() -> None:
    series = [{"id": 1, "name": "Other Show"}, {"id": 2, "name": "Breaking Bad"}]
    assert select_series(series, "Breaking Bad")["id"] == 2
    assert select_series(series, "Nothing Similar") is None

    movies = [
        {"id": 10, "title": "Dune", "release_date": "1984-12-14"},
        {"id": 11, "title": "Dune", "release_date": "2021-09-15"},
    ]
    assert select_movie(movies, "Dune", 2021)["id"] == 11
    assert select_movie(movies, "Dune", None)["id"] == 10


def test_unified_metadata_ids() -> None:
    metadata = UnifiedMetadata(anilist_id="1", name="Show")
    filled = metadata.fill_missing_ids({"anilist": "99", "mal": "2", "bogus": "3", "anidb": None})

    assert filled == ["mal_id"]
    assert metadata.anilist_id == "1"
    assert metadata.provider_ids() == {"anilist": "1", "mal": "2"}
    assert metadata.richness() == 0


def test_load_metadata_settings_env_key_wins() -> None:
    data = {
        "metadata": {"tmdb": {"api_key": "from-file"}, "rate_limits_ms": {"anidb": "bad", "jikan": 500}},
        "scanner": {"fetch_episode_metadata": False},
    }
    settings = load_metadata_settings(data, env={"TMDB_API_KEY": "from-env"})

    assert settings.tmdb_api_key == "from-env"
    assert settings.tmdb_enabled
    assert settings.min_interval_s("jikan") == 0.5
    assert settings.min_interval_s("anidb") == 2.0
    assert settings.fetch_episode_metadata is False
