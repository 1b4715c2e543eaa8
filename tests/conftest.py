# WatchRelay test scripts
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from wr_platform.store import JsonStore  # noqa: E402
from wr_platform.watchlist._types import Friend, Identity  # noqa: E402


@pytest.fixture()
def config_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CONFIG_BASE", str(tmp_path))
    monkeypatch.delenv("PLEX_TOKENS", raising=False)
    return tmp_path


@pytest.fixture()
def store(tmp_path: Path) -> JsonStore:
    return JsonStore(tmp_path / "db")


def raw(key: str, title: str, *guids: str, type_: str = "movie", genres: Iterable[str] = ()) -> dict[str, Any]:
    return {"id": key, "title": title, "type": type_, "guids": list(guids), "genres": list(genres)}


def rss_item(guid: str, title: str, *, type_: str = "movie", thumb: str = "", genres: Iterable[str] = ()) -> dict[str, Any]:
    return {"title": title, "type": type_, "thumb": thumb, "guids": [guid], "genres": list(genres), "key": guid}


@dataclass
class FakeClient:
    self_lists: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    friends: dict[str, list[Friend]] = field(default_factory=dict)
    friend_lists: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    rss: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    urls: list[str] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)
    rss_failing: set[str] = field(default_factory=set)
    ping_ok: bool = True

    process_calls: list[dict[Identity, list[dict[str, Any]]]] = field(default_factory=list)
    rss_calls: list[str] = field(default_factory=list)

    def ping(self, token: str) -> bool:
        return self.ping_ok

    def fetch_self_watchlist(self, token: str) -> list[dict[str, Any]]:
        if token in self.failing:
            raise RuntimeError(f"boom for {token}")
        return [dict(x) for x in self.self_lists.get(token, [])]

    def get_friends(self, token: str) -> list[Friend]:
        if token in self.failing:
            raise RuntimeError(f"friends down for {token}")
        return list(self.friends.get(token, []))

    def fetch_friend_watchlist(self, token: str, friend: Friend) -> list[dict[str, Any]]:
        if friend.watchlist_id in self.failing:
            raise RuntimeError(f"boom for {friend.username}")
        return [dict(x) for x in self.friend_lists.get(friend.watchlist_id, [])]

    def process_items(
        self,
        items: Mapping[Identity, Iterable[dict[str, Any]]],
        *,
        progress: Any = None,
    ) -> dict[Identity, list[dict[str, Any]]]:
        batch = {ident: [dict(r) for r in rows] for ident, rows in items.items()}
        self.process_calls.append(batch)
        out: dict[Identity, list[dict[str, Any]]] = {}
        for ident, rows in batch.items():
            out[ident] = [
                {
                    "key": r["id"],
                    "title": r.get("title"),
                    "type": r.get("type"),
                    "thumb": r.get("thumb") or f"/thumb/{r['id']}",
                    "guids": list(r.get("guids") or []),
                    "genres": list(r.get("genres") or []),
                }
                for r in rows
            ]
        if progress:
            progress(100, "done")
        return out

    def get_watchlist_urls(self, tokens: Iterable[str], *, skip_friend_sync: bool = False) -> list[str]:
        return list(self.urls[:1] if skip_friend_sync else self.urls)

    def fetch_watchlist_rss(self, url: str, source: str) -> list[dict[str, Any]]:
        self.rss_calls.append(url)
        if url in self.rss_failing:
            raise RuntimeError(f"rss down: {url}")
        return [dict(x) for x in self.rss.get(url, [])]


@dataclass
class FakeSink:
    active: bool = True
    events: list[dict[str, Any]] = field(default_factory=list)

    def has_active_connections(self) -> bool:
        return self.active

    def emit(self, event: Mapping[str, Any]) -> None:
        self.events.append(dict(event))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


@pytest.fixture()
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
