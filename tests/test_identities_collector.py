# WatchRelay test scripts
from __future__ import annotations

import pytest

from conftest import FakeClient, raw
from wr_platform.store import JsonStore
from wr_platform.watchlist import FRIENDS, SELF, Friend, IdentityError, Identity
from wr_platform.watchlist._collector import collect_friends, collect_self, fan_out
from wr_platform.watchlist._identities import ensure_friend_users, ensure_token_users, token_username


def test_token_users_are_created_once(store: JsonStore) -> None:
    m1 = ensure_token_users(store, ["tA", "tB"])
    m2 = ensure_token_users(store, ["tA", "tB"])
    assert m1 == m2
    assert set(m1) == {"token1", "token2"} and sorted(m1.values()) == [1, 2]
    assert len(store.get_all_users()) == 2
    u = store.get_user("token1")
    assert u["email"] == "token1@placeholder.com"
    assert u["notify_email"] is False and u["notify_discord"] is False and u["can_sync"] is True


def test_friend_users_keyed_by_watchlist_id(store: JsonStore) -> None:
    friends = [Friend("w-1", "alice"), Friend("w-2", "bob")]
    m = ensure_friend_users(store, friends)
    assert set(m) == {"w-1", "w-2"}
    assert store.get_user("alice")["id"] == m["w-1"]


def test_missing_id_raises_identity_error() -> None:
    class NoIdStore:
        def get_user(self, name):
            return None

        def create_user(self, fields):
            return {"name": fields["name"]}

    with pytest.raises(IdentityError):
        ensure_token_users(NoIdStore(), ["t"])


def test_token_username() -> None:
    assert token_username(0) == "token1"


def test_collect_self_omits_empty_and_captures_failures(store: JsonStore) -> None:
    client = FakeClient(
        self_lists={"tA": [raw("k1", "A", "imdb://tt1")], "tB": []},
        failing={"tC"},
    )
    tokens = ["tA", "tB", "tC"]
    res = collect_self(client, tokens, ensure_token_users(store, tokens))

    assert [i.username for i in res.items] == ["token1"]
    ident = next(iter(res.items))
    assert ident.kind == SELF and ident.watchlist_id == "token1"
    assert [i.username for i in res.failed] == ["token3"]
    assert "boom" in next(iter(res.failed.values()))


def test_collect_friends_skips_unresolved_ids() -> None:
    client = FakeClient(friend_lists={"w-1": [raw("k1", "A")], "w-2": [raw("k2", "B")]})
    pairs = [(Friend("w-1", "alice"), "tA"), (Friend("w-2", "bob"), "tA")]
    res = collect_friends(client, pairs, {"w-1": 10})
    assert list(res.items) == [Identity("w-1", "alice", 10, FRIENDS)]
    assert not res.failed


def test_fan_out_everything_failing_is_falsey() -> None:
    def bad():
        raise ValueError("nope")

    res = fan_out({Identity("a", "a", 1): bad, Identity("b", "b", 2): bad})
    assert not res
    assert len(res.failed) == 2
