# WatchRelay test scripts
from __future__ import annotations

import pytest

from conftest import FakeClient, FakeSink, raw
from wr_platform.store import JsonStore
from wr_platform.watchlist import FRIENDS, SELF, Identity, StoreError
from wr_platform.watchlist._reconciler import (
    Reconciler,
    categorize,
    extract_keys,
    format_item,
    group_by_key,
)
from wr_platform.watchlist._removals import check_for_removed_items, removed_keys


def _ident(store: JsonStore, name: str, kind: str = SELF) -> Identity:
    uid = int(store.create_user({"name": name})["id"])
    return Identity(watchlist_id=name, username=name, user_id=uid, kind=kind)


def test_two_tokens_disjoint_movies_insert_two_rows(store: JsonStore, client: FakeClient) -> None:
    a, b = _ident(store, "token1"), _ident(store, "token2")
    rec = Reconciler(store, client)
    res = rec.reconcile({a: [raw("k1", "A", "tmdb://1")], b: [raw("k2", "B", "tmdb://2")]})

    assert res.response["total"] == 2
    assert len(client.process_calls) == 1
    assert len(store.get_all_watchlist_items_for_user(a.user_id)) == 1
    assert len(store.get_all_watchlist_items_for_user(b.user_id)) == 1
    users = res.response["users"]
    assert [u["user"]["username"] for u in users] == ["token1", "token2"]
    assert users[0]["watchlist"][0]["plexKey"] == "k1"
    assert users[0]["watchlist"][0]["status"] == "pending"


def test_same_key_other_user_is_linked_not_reprocessed(store: JsonStore, client: FakeClient) -> None:
    a, b = _ident(store, "token1"), _ident(store, "token2")
    rec = Reconciler(store, client)
    rec.reconcile({a: [raw("k1", "A", "tmdb://1", genres=["Drama"])]})
    client.process_calls.clear()

    res = rec.reconcile({a: [raw("k1", "A")], b: [raw("k1", "A")]})
    assert client.process_calls == []
    rows = store.get_all_watchlist_items_for_user(b.user_id)
    assert len(rows) == 1
    assert rows[0]["title"] == "A" and rows[0]["guids"] == ["tmdb://1"] and rows[0]["genres"] == ["Drama"]
    assert res.response["total"] == 2


def test_guid_overlap_links_copy_of_existing_content(store: JsonStore, client: FakeClient) -> None:
    a, b = _ident(store, "token1"), _ident(store, "alice", FRIENDS)
    store.create_watchlist_items([
        {"user_id": a.user_id, "key": "ka", "title": "Title A", "type": "movie", "guids": ["x:1"]},
    ])
    rec = Reconciler(store, client)
    rec.reconcile({b: [raw("kb", "whatever", "x:1")]})

    assert client.process_calls == []
    rows = store.get_all_watchlist_items_for_user(b.user_id)
    assert [(r["key"], r["title"], r["type"]) for r in rows] == [("kb", "Title A", "movie")]


def test_reconcile_is_idempotent(store: JsonStore, client: FakeClient) -> None:
    a, b = _ident(store, "token1"), _ident(store, "token2")
    rec = Reconciler(store, client)
    batch = {a: [raw("k1", "A", "tmdb://1")], b: [raw("k1", "A", "tmdb://1"), raw("k2", "B", "tmdb://2")]}
    rec.reconcile(batch)
    before = {uid: store.get_all_watchlist_items_for_user(uid) for uid in (a.user_id, b.user_id)}
    client.process_calls.clear()

    res = rec.reconcile(batch)
    after = {uid: store.get_all_watchlist_items_for_user(uid) for uid in (a.user_id, b.user_id)}
    assert client.process_calls == []
    assert [r["key"] for r in after[a.user_id]] == [r["key"] for r in before[a.user_id]]
    assert sorted(r["key"] for r in after[b.user_id]) == ["k1", "k2"]
    assert res.response["total"] == 3


def test_removed_keys_are_deleted(store: JsonStore, client: FakeClient) -> None:
    a = _ident(store, "token1")
    rec = Reconciler(store, client)
    rec.reconcile({a: [raw("k1", "A", "tmdb://1"), raw("k2", "B", "tmdb://2")]})
    res = rec.reconcile({a: [raw("k2", "B", "tmdb://2")]})

    assert res.removed == {a.user_id: ["k1"]}
    assert [r["key"] for r in store.get_all_watchlist_items_for_user(a.user_id)] == ["k2"]


def test_progress_events_only_with_listeners(store: JsonStore, client: FakeClient, sink: FakeSink) -> None:
    a = _ident(store, "alice", FRIENDS)
    Reconciler(store, client, sink).reconcile({a: [raw("k1", "A", "tmdb://1")]})
    phases = [e["phase"] for e in sink.events]
    assert phases[0] == "start" and phases[-2:] == ["saving", "complete"]
    assert {e["type"] for e in sink.events} == {"others-watchlist"}
    assert [e["progress"] for e in sink.events if e["phase"] != "processing"] == [0, 95, 100]

    quiet = FakeSink(active=False)
    b = _ident(store, "token1")
    Reconciler(store, client, quiet).reconcile({b: [raw("k9", "Z", "tmdb://9")]})
    assert quiet.events == []


def test_items_without_id_are_skipped() -> None:
    ident = Identity("token1", "token1", 1)
    all_keys, user_keys = extract_keys({ident: [{"title": "no id"}, raw("k1", "A")]})
    assert all_keys == {"k1"}
    assert user_keys == {1: {"k1"}}


def test_categorize_skips_template_without_title() -> None:
    a, b = Identity("a", "a", 1), Identity("b", "b", 2)
    existing = group_by_key([{"user_id": 1, "key": "k1", "title": None, "type": "movie"}])
    cats = categorize({b: [raw("k1", "A")], a: [raw("k1", "A")]}, existing)
    assert cats.brand_new == {} and cats.to_link == {}


def test_format_item_decodes_json_strings() -> None:
    out = format_item({"title": "A", "key": "k", "type": "movie", "thumb": None,
                       "guids": '["tmdb://1"]', "genres": '["Drama"]'})
    assert out == {"title": "A", "plexKey": "k", "type": "movie", "thumb": "",
                   "guids": ["tmdb://1"], "genres": ["Drama"], "status": "pending"}


def test_removal_helpers(store: JsonStore) -> None:
    assert removed_keys(["a", "b", "c"], ["b"]) == ["a", "c"]
    a = _ident(store, "token1")
    store.create_watchlist_items([{"user_id": a.user_id, "key": "x", "title": "X", "type": "movie"}])
    assert check_for_removed_items(store, {a: []}) == {a.user_id: ["x"]}


def test_repeated_key_in_one_fetch_is_stored_once(store: JsonStore, client: FakeClient) -> None:
    a = _ident(store, "token1")
    res = Reconciler(store, client).reconcile({a: [raw("k1", "A", "tmdb://1"), raw("k1", "A", "tmdb://1")]})
    assert res.response["total"] == 1
    assert [r["key"] for r in store.get_all_watchlist_items_for_user(a.user_id)] == ["k1"]
    assert [len(rows) for rows in client.process_calls[0].values()] == [1]


def test_store_failure_reaches_the_caller(store: JsonStore, client: FakeClient, monkeypatch) -> None:
    a = _ident(store, "token1")

    def broken(items, *, on_conflict=None):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "create_watchlist_items", broken)
    with pytest.raises(StoreError, match="disk full"):
        Reconciler(store, client).reconcile({a: [raw("k1", "A", "tmdb://1")]})
