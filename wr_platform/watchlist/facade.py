# wr_platform/watchlist/facade.py
# service facade: self/friends snapshot passes, RSS feed management, pending matching.
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from _logging import log as BASE_LOG

from ..id_map import decode_list
from ._collector import collect_friends, collect_self
from ._errors import ConfigurationError, WatchlistFetchError
from ._identities import ensure_friend_users, ensure_token_users, token_username
from ._pending import match_pending_items, store_rss_items
from ._reconciler import Reconciler, ReconcileResult
from ._rss import SOURCES
from ._types import (
    FRIENDS,
    SELF,
    Friend,
    Identity,
    ProgressSink,
    RssItem,
    Source,
    StoredItem,
    WatchlistClient,
    WatchlistStore,
)

__all__ = ["WatchlistService"]

_log = BASE_LOG.child("WATCHLIST")


def _rss_group_item(item: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": item.get("title"),
        "plexKey": item.get("key"),
        "type": item.get("type"),
        "thumb": item.get("thumb") or "",
        "guids": decode_list(item.get("guids")),
        "genres": decode_list(item.get("genres")),
        "status": "pending",
    }


@dataclass
class WatchlistService:
    client: WatchlistClient
    store: WatchlistStore
    config: Mapping[str, Any] = field(default_factory=dict)
    progress: ProgressSink | None = None

    reconciler: Reconciler = field(init=False)

    def __post_init__(self) -> None:
        self.reconciler = Reconciler(self.store, self.client, self.progress)

    # config

    @property
    def plex_cfg(self) -> dict[str, Any]:
        return dict(self.config.get("plex") or {})

    @property
    def tokens(self) -> list[str]:
        return [str(t) for t in (self.plex_cfg.get("tokens") or []) if t]

    @property
    def skip_friend_sync(self) -> bool:
        return bool(self.plex_cfg.get("skip_friend_sync", False))

    def _require_tokens(self) -> list[str]:
        tokens = self.tokens
        if not tokens:
            raise ConfigurationError("No Plex token configured")
        return tokens

    # ping

    def ping_plex(self) -> bool:
        tokens = self._require_tokens()
        with ThreadPoolExecutor(max_workers=len(tokens)) as ex:
            results = list(ex.map(self.client.ping, tokens))
        ok = all(results)
        _log.info(f"Plex ping {'ok' if ok else 'failed'}", extra={"tokens": len(tokens), "ok": sum(results)})
        return ok

    # snapshot passes

    def _match_pending(self, source: Source, watchlists: Mapping[Identity, Iterable[StoredItem]]) -> dict[str, Any]:
        return match_pending_items(self.store, source, watchlists)

    def get_self_watchlist(self) -> dict[str, Any]:
        tokens = self._require_tokens()
        user_map = ensure_token_users(self.store, tokens)
        collected = collect_self(self.client, tokens, user_map)
        if not collected:
            raise WatchlistFetchError("Unable to fetch watchlist items")

        result = self.reconciler.reconcile(collected.items)
        self.match_rss_pending_items_self(result.watchlists)
        return self._with_failures(result, collected.failed)

    def _friend_pairs(self, tokens: list[str]) -> list[tuple[Friend, str]]:
        pairs: dict[str, tuple[Friend, str]] = {}
        for i, token in enumerate(tokens):
            try:
                friends = self.client.get_friends(token) or []
            except Exception as e:
                _log.warn(f"Friends lookup failed for {token_username(i)}: {type(e).__name__}: {e}")
                continue
            for friend in friends:
                pairs.setdefault(friend.watchlist_id, (friend, token))
        return list(pairs.values())

    def get_others_watchlists(self) -> dict[str, Any]:
        tokens = self._require_tokens()
        pairs = self._friend_pairs(tokens)
        user_map = ensure_friend_users(self.store, [f for f, _ in pairs])
        collected = collect_friends(self.client, pairs, user_map)
        if not collected:
            raise WatchlistFetchError("Unable to fetch others' watchlist items")

        result = self.reconciler.reconcile(collected.items)
        self.match_rss_pending_items_friends(result.watchlists)
        return self._with_failures(result, collected.failed)

    @staticmethod
    def _with_failures(result: ReconcileResult, failed: Mapping[Identity, str]) -> dict[str, Any]:
        out = dict(result.response)
        if failed:
            out["failed"] = [{"user": ident.as_dict(), "error": err} for ident, err in failed.items()]
        return out

    def sync_all(self) -> dict[str, Any]:
        """Full pass for personal tokens, then friends."""
        out: dict[str, Any] = {"self": self.get_self_watchlist()}
        if self.skip_friend_sync:
            _log.debug("Friend sync disabled; skipping others' watchlists")
            out["friends"] = {"total": 0, "users": []}
        else:
            out["friends"] = self.get_others_watchlists()
        return out

    # RSS feeds

    def generate_and_save_rss_feeds(self) -> dict[str, str]:
        tokens = self.tokens
        if not tokens:
            return {"error": "No Plex token configured"}

        urls = list(self.client.get_watchlist_urls(tokens, skip_friend_sync=self.skip_friend_sync) or [])
        if not any(urls):
            return {"error": "Unable to fetch watchlist URLs"}

        self_url, friends_url = (urls + ["", ""])[:2]
        db_urls = {"selfRss": self_url or "", "friendsRss": friends_url or ""}
        self.store.update_config(db_urls)
        _log.info("RSS feed URLs saved to database", extra=db_urls)
        return {"self": db_urls["selfRss"], "friends": db_urls["friendsRss"]}

    def ensure_rss_feeds(self) -> dict[str, Any]:
        cfg = self.store.get_config()
        if not cfg.get("selfRss") and not cfg.get("friendsRss"):
            _log.info("No RSS feeds found in database, attempting to generate...")
            self.generate_and_save_rss_feeds()
            cfg = self.store.get_config()
            if not cfg.get("selfRss") and not cfg.get("friendsRss"):
                raise WatchlistFetchError("Unable to generate or retrieve RSS feed URLs")
        return cfg

    def _rss_group(self, source: Source, url: str) -> dict[str, Any]:
        items = self.client.fetch_watchlist_rss(url, source)
        if source == SELF:
            user = self.store.get_user(token_username(0)) or {}
            ident = {"watchlistId": token_username(0), "username": token_username(0), "userId": user.get("id")}
        else:
            ident = {"watchlistId": "friends", "username": "Friends Watchlist", "userId": None}
        return {
            "total": len(items),
            "users": [{"user": ident, "watchlist": [_rss_group_item(i) for i in items]}],
        }

    def process_rss_watchlists(self) -> dict[str, Any]:
        cfg = self.ensure_rss_feeds()
        results: dict[str, Any] = {s: {"total": 0, "users": []} for s in SOURCES}
        for source, key in ((SELF, "selfRss"), (FRIENDS, "friendsRss")):
            url = cfg.get(key)
            if url:
                results[source] = self._rss_group(source, str(url))
        return results

    # pending items

    def store_rss_watchlist_items(self, items: Iterable[RssItem], source: Source) -> list[int]:
        return store_rss_items(self.store, items, source)

    def match_rss_pending_items_self(self, watchlists: Mapping[Identity, Iterable[StoredItem]]) -> dict[str, Any]:
        return self._match_pending(SELF, watchlists)

    def match_rss_pending_items_friends(self, watchlists: Mapping[Identity, Iterable[StoredItem]]) -> dict[str, Any]:
        return self._match_pending(FRIENDS, watchlists)
