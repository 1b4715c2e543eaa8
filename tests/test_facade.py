# WatchRelay test scripts
from __future__ import annotations

import pytest

from conftest import FakeClient, raw, rss_item
from wr_platform.store import JsonStore
from wr_platform.watchlist import ConfigurationError, Friend, WatchlistFetchError, WatchlistService

SELF_URL = "https://rss.plex.tv/self"
FRIENDS_URL = "https://rss.plex.tv/friends"


def _service(client: FakeClient, store: JsonStore, **plex) -> WatchlistService:
    return WatchlistService(client=client, store=store, config={"plex": {"tokens": ["tA", "tB"], **plex}})


def test_no_tokens_is_a_configuration_error(store: JsonStore, client: FakeClient) -> None:
    svc = WatchlistService(client=client, store=store, config={"plex": {"tokens": []}})
    with pytest.raises(ConfigurationError):
        svc.get_self_watchlist()
    with pytest.raises(ConfigurationError):
        svc.ping_plex()
    assert svc.generate_and_save_rss_feeds() == {"error": "No Plex token configured"}


def test_self_watchlist_with_nothing_fetched_fails_hard(store: JsonStore) -> None:
    client = FakeClient(failing={"tA"})
    with pytest.raises(WatchlistFetchError):
        _service(client, store).get_self_watchlist()


def test_one_failing_token_does_not_abort_the_pass(store: JsonStore) -> None:
    client = FakeClient(self_lists={"tB": [raw("k1", "A", "tmdb://1")]}, failing={"tA"})
    res = _service(client, store).get_self_watchlist()
    assert res["total"] == 1
    assert [u["user"]["username"] for u in res["users"]] == ["token2"]
    assert res["failed"][0]["user"]["username"] == "token1"


def test_friend_content_already_owned_is_linked(store: JsonStore) -> None:
    client = FakeClient(
        self_lists={"tA": [raw("k1", "Shared", "x:1")]},
        friends={"tA": [Friend("w-1", "alice")], "tB": [Friend("w-1", "alice")]},
        friend_lists={"w-1": [raw("f1", "Shared (friend)", "x:1")]},
    )
    svc = _service(client, store)
    svc.get_self_watchlist()
    client.process_calls.clear()

    res = svc.get_others_watchlists()
    assert client.process_calls == []
    assert res["total"] == 1
    alice = store.get_user("alice")
    rows = store.get_all_watchlist_items_for_user(alice["id"])
    assert [(r["key"], r["title"]) for r in rows] == [("f1", "Shared")]


def test_sync_all_respects_skip_friend_sync(store: JsonStore) -> None:
    client = FakeClient(
        self_lists={"tA": [raw("k1", "A", "tmdb://1")]},
        friends={"tA": [Friend("w-1", "alice")]},
        friend_lists={"w-1": [raw("f1", "B", "tmdb://2")]},
    )
    out = _service(client, store, skip_friend_sync=True).sync_all()
    assert out["self"]["total"] == 1
    assert out["friends"] == {"total": 0, "users": []}
    assert store.get_user("alice") is None


def test_rss_feeds_generated_saved_and_parsed(store: JsonStore) -> None:
    client = FakeClient(
        urls=[SELF_URL, FRIENDS_URL],
        rss={SELF_URL: [rss_item("g1", "A", genres=["Drama"])], FRIENDS_URL: []},
    )
    svc = _service(client, store)
    out = svc.process_rss_watchlists()

    assert store.get_config()["selfRss"] == SELF_URL
    assert out["self"]["total"] == 1
    item = out["self"]["users"][0]["watchlist"][0]
    assert item["guids"] == ["g1"] and item["genres"] == ["Drama"] and item["status"] == "pending"
    assert out["friends"]["total"] == 0


def test_rss_without_urls_raises(store: JsonStore) -> None:
    with pytest.raises(WatchlistFetchError):
        _service(FakeClient(), store).process_rss_watchlists()


def test_ping_requires_every_token(store: JsonStore) -> None:
    client = FakeClient()
    assert _service(client, store).ping_plex() is True
    client.ping_ok = False
    assert _service(client, store).ping_plex() is False


def test_repeated_key_from_one_fetch_does_not_abort_the_pass(store: JsonStore) -> None:
    client = FakeClient(self_lists={"tA": [raw("k1", "A", "tmdb://1"), raw("k1", "A", "tmdb://1")]})
    res = _service(client, store).get_self_watchlist()
    assert res["total"] == 1
    token1 = store.get_user("token1")["id"]
    assert len(store.get_all_watchlist_items_for_user(token1)) == 1


def test_friends_lookup_failure_for_one_token_is_skipped(store: JsonStore) -> None:
    client = FakeClient(
        friends={"tB": [Friend("w-1", "alice")]},
        friend_lists={"w-1": [raw("f1", "B", "tmdb://2")]},
        failing={"tA"},
    )
    res = _service(client, store).get_others_watchlists()
    assert res["total"] == 1
    assert store.get_user("alice") is not None


def test_missing_self_feed_does_not_shift_friends_url(store: JsonStore) -> None:
    client = FakeClient(urls=["", FRIENDS_URL])
    out = _service(client, store).generate_and_save_rss_feeds()
    assert out == {"self": "", "friends": FRIENDS_URL}
    cfg = store.get_config()
    assert cfg["selfRss"] == "" and cfg["friendsRss"] == FRIENDS_URL
