# /providers/plex/client.py
# Plex client used by the watchlist engine
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

import requests
from plexapi.myplex import MyPlexAccount

from _logging import log as BASE_LOG
from wr_platform.watchlist._types import FRIENDS, Friend, Identity, ProgressFn, Source

from . import _rss as rss
from . import _watchlist as wl
from ._common import PlexError

_log = BASE_LOG.child("PLEX")


@dataclass
class PlexConfig:
    tokens: list[str] = field(default_factory=list)
    timeout: float = 10.0
    max_retries: int = 3
    watchlist_page_size: int = 100
    enrich_workers: int = 4

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "PlexConfig":
        plex = dict(cfg.get("plex") or {})
        return cls(
            tokens=[str(t) for t in (plex.get("tokens") or []) if t],
            timeout=float(plex.get("timeout") or 10.0),
            max_retries=int(plex.get("max_retries") or 3),
            watchlist_page_size=int(plex.get("watchlist_page_size") or 100),
        )


class PlexClient:
    def __init__(
        self,
        cfg: PlexConfig,
        *,
        session: requests.Session | None = None,
        account_factory: Callable[..., Any] = MyPlexAccount,
    ) -> None:
        self.cfg = cfg
        self.session = session or requests.Session()
        self.account_factory = account_factory

    def _http(self) -> dict[str, Any]:
        return {"timeout": self.cfg.timeout, "max_retries": self.cfg.max_retries}

    def account(self, token: str) -> Any:
        return self.account_factory(token=token, session=self.session, timeout=int(self.cfg.timeout))

    # WatchlistClient

    def ping(self, token: str) -> bool:
        try:
            username = self.account(token).username
        except Exception as e:
            _log.error(f"Plex ping failed: {type(e).__name__}: {e}")
            return False
        _log.debug(f"Plex ping ok ({username})")
        return True

    def fetch_self_watchlist(self, token: str) -> list[dict[str, Any]]:
        return wl.fetch_self_watchlist(self.account(token))

    def get_friends(self, token: str) -> list[Friend]:
        rows = wl.fetch_friends(self.session, token, **self._http())
        return [Friend(watchlist_id=r["watchlist_id"], username=r["username"]) for r in rows]

    def fetch_friend_watchlist(self, token: str, friend: Friend) -> list[dict[str, Any]]:
        return wl.fetch_friend_watchlist(
            self.session, token, friend.watchlist_id,
            page_size=self.cfg.watchlist_page_size, **self._http(),
        )

    def process_items(
        self,
        items: Mapping[Identity, Iterable[dict[str, Any]]],
        *,
        progress: ProgressFn | None = None,
    ) -> dict[Identity, list[dict[str, Any]]]:
        if not self.cfg.tokens:
            raise PlexError("No Plex token available for metadata lookups")
        token = self.cfg.tokens[0]
        batches = {ident: list(rows) for ident, rows in items.items()}
        counter = wl.ProgressCounter(sum(len(v) for v in batches.values()), progress)
        out: dict[Identity, list[dict[str, Any]]] = {}
        for ident, rows in batches.items():
            out[ident] = wl.enrich_items(
                self.session, token, rows,
                on_item=counter.tick,
                max_workers=self.cfg.enrich_workers,
                **self._http(),
            )
        _log.info(f"Enriched {counter.done} watchlist items", extra={"users": len(out)})
        return out

    def get_watchlist_urls(self, tokens: Iterable[str], *, skip_friend_sync: bool = False) -> list[str]:
        return rss.generate_watchlist_urls(self.session, tokens, skip_friend_sync=skip_friend_sync, **self._http())

    def fetch_watchlist_rss(self, url: str, source: Source) -> list[dict[str, Any]]:
        items = rss.fetch_rss_items(self.session, url, **self._http())
        _log.debug(f"{'friends' if source == FRIENDS else 'self'} RSS: {len(items)} items")
        return items


__all__ = ["PlexConfig", "PlexClient"]
