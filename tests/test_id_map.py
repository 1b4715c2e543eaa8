# WatchRelay test scripts
from __future__ import annotations

from wr_platform.id_map import (
    any_guid_overlap,
    decode_list,
    fingerprint,
    guid_set,
    norm_type,
    normalize_guid,
)


def test_decode_list_accepts_list_json_and_bare_string() -> None:
    assert decode_list(["a", " b ", None, "null"]) == ["a", "b"]
    assert decode_list('["tmdb://1", "imdb://tt2"]') == ["tmdb://1", "imdb://tt2"]
    assert decode_list("Drama") == ["Drama"]
    assert decode_list(None) == []
    assert decode_list("") == []


def test_normalize_guid_collapses_legacy_agents() -> None:
    assert normalize_guid("com.plexapp.agents.imdb://tt0137523?lang=en") == "imdb://tt0137523"
    assert normalize_guid("com.plexapp.agents.themoviedb://550") == "tmdb://550"
    assert normalize_guid("tvdb://series/121361") == "tvdb://121361"
    assert normalize_guid("PLEX://movie/5d7768") == "plex://movie/5d7768"
    assert normalize_guid("  ") is None


def test_guid_set_and_overlap_use_normalized_values() -> None:
    a = {"guids": '["com.plexapp.agents.imdb://tt1", "tmdb://5"]'}
    b = {"guids": ["imdb://tt1"]}
    assert guid_set(a) == {"imdb://tt1", "tmdb://5"}
    assert any_guid_overlap(a, b)
    assert not any_guid_overlap(a, {"guids": []})


def test_fingerprint_is_hashable_and_value_based() -> None:
    x = {"key": "k", "title": "T", "type": "movie", "thumb": None, "guids": ["g1"], "genres": ["Drama"]}
    y = dict(x)
    assert fingerprint(x) == fingerprint(y)
    assert len({fingerprint(x), fingerprint(y)}) == 1
    assert fingerprint(x) != fingerprint({**x, "title": "Other"})


def test_norm_type() -> None:
    assert norm_type("MOVIE") == "movie"
    assert norm_type("series") == "show"
    assert norm_type(None) == ""
