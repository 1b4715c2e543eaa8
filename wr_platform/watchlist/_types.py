# wr_platform/watchlist/_types.py
# types and protocols for the watchlist engine.
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

Source = Literal["self", "friends"]

RawItem = dict[str, Any]        # {id, title, type, thumb?, guids?, genres?}
StoredItem = dict[str, Any]     # {user_id, key, title, type, thumb, guids, genres, status, ...}
RssItem = dict[str, Any]        # {title, type, thumb, guids, genres, key}

ProgressFn = Callable[[int, str], None]

SELF: Source = "self"
FRIENDS: Source = "friends"


@dataclass(frozen=True)
class Identity:
    watchlist_id: str
    username: str
    user_id: int
    kind: Source = SELF

    def as_dict(self) -> dict[str, Any]:
        return {"watchlistId": self.watchlist_id, "username": self.username, "userId": self.user_id}


@dataclass(frozen=True)
class Friend:
    watchlist_id: str
    username: str


@dataclass
class CollectResult:
    items: dict[Identity, list[RawItem]] = field(default_factory=dict)
    failed: dict[Identity, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.items)


class WatchlistClient(Protocol):
    def ping(self, token: str) -> bool: ...
    def fetch_self_watchlist(self, token: str) -> list[RawItem]: ...
    def get_friends(self, token: str) -> list[Friend]: ...
    def fetch_friend_watchlist(self, token: str, friend: Friend) -> list[RawItem]: ...
    def process_items(
        self,
        items: Mapping[Identity, Iterable[RawItem]],
        *,
        progress: ProgressFn | None = None,
    ) -> dict[Identity, list[StoredItem]]: ...
    def get_watchlist_urls(self, tokens: Iterable[str], *, skip_friend_sync: bool = False) -> list[str]: ...
    def fetch_watchlist_rss(self, url: str, source: Source) -> list[RssItem]: ...


class WatchlistStore(Protocol):
    def get_user(self, name: str) -> dict[str, Any] | None: ...
    def create_user(self, fields: Mapping[str, Any]) -> dict[str, Any]: ...
    def get_bulk_watchlist_items(self, user_ids: Iterable[int], keys: Iterable[str]) -> list[StoredItem]: ...
    def get_watchlist_items_by_guids(self, guids: Iterable[str]) -> list[StoredItem]: ...
    def create_watchlist_items(self, items: Iterable[Mapping[str, Any]], *, on_conflict: str | None = None) -> None: ...
    def delete_watchlist_items(self, user_id: int, keys: Iterable[str]) -> int: ...
    def get_all_watchlist_items_for_user(self, user_id: int) -> list[StoredItem]: ...
    def create_temp_rss_items(self, items: Iterable[Mapping[str, Any]]) -> list[int]: ...
    def get_temp_rss_items(self, source: str | None = None) -> list[dict[str, Any]]: ...
    def delete_temp_rss_items(self, ids: Iterable[int]) -> None: ...
    def sync_genres_from_watchlist(self) -> None: ...
    def get_config(self) -> dict[str, Any]: ...
    def update_config(self, fields: Mapping[str, Any]) -> dict[str, Any]: ...


class ProgressSink(Protocol):
    def has_active_connections(self) -> bool: ...
    def emit(self, event: Mapping[str, Any]) -> None: ...


__all__ = [
    "Source", "SELF", "FRIENDS",
    "RawItem", "StoredItem", "RssItem", "ProgressFn",
    "Identity", "Friend", "CollectResult",
    "WatchlistClient", "WatchlistStore", "ProgressSink",
]
