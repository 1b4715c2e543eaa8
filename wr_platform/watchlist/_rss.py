# wr_platform/watchlist/_rss.py
# RSS snapshot diffing: per-source first-GUID maps, replaced wholesale every poll.
from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from _logging import log as BASE_LOG

from ..id_map import decode_list, fingerprint, genres_of, guids_of
from ._pending import store_rss_items
from ._types import FRIENDS, SELF, RssItem, Source, WatchlistClient, WatchlistStore

_log = BASE_LOG.child("RSS")

SOURCES: tuple[Source, ...] = (SELF, FRIENDS)
_URL_KEYS: dict[str, str] = {SELF: "selfRss", FRIENDS: "friendsRss"}


def build_item_map(items: Iterable[RssItem]) -> dict[str, RssItem]:
    """Keyed on the raw first guid; items without guids cannot be tracked."""
    out: dict[str, RssItem] = {}
    dropped = 0
    for it in items:
        gs = guids_of(it)
        if not gs:
            dropped += 1
            continue
        out[gs[0]] = it
    if dropped:
        _log.debug(f"Dropped {dropped} RSS items without guids")
    return out


def _modified(old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
    return (
        old.get("title") != new.get("title")
        or old.get("type") != new.get("type")
        or (old.get("thumb") or "") != (new.get("thumb") or "")
        or genres_of(old) != genres_of(new)
    )


def to_temp_item(item: Mapping[str, Any]) -> RssItem:
    return {
        "title": item.get("title"),
        "type": item.get("type"),
        "thumb": item.get("thumb"),
        "guids": decode_list(item.get("guids")),
        "genres": decode_list(item.get("genres")),
        "key": item.get("key"),
    }


def detect_changes(previous: Mapping[str, RssItem], current: Mapping[str, RssItem]) -> list[RssItem]:
    changes: list[RssItem] = []
    for guid, item in current.items():
        old = previous.get(guid)
        if old is None:
            _log.info(f'New item detected: "{item.get("title")}"', extra={"guid": guid})
            changes.append(to_temp_item(item))
        elif _modified(old, item):
            _log.info(f'Modified item detected: "{item.get("title")}"', extra={"guid": guid})
            changes.append(to_temp_item(item))
    for guid, old in previous.items():
        if guid not in current:
            _log.info(f'Removed item detected: "{old.get("title")}"', extra={"guid": guid})
    return changes


@dataclass
class RssState:
    snapshots: dict[str, dict[str, RssItem]] = field(default_factory=lambda: {s: {} for s in SOURCES})
    queue: dict[tuple[Any, ...], RssItem] = field(default_factory=dict)
    last_queue_item_time: float | None = None
    refreshing: bool = False
    last_refresh_at: float | None = None
    last_refresh_error: str | None = None

    def clear_queue(self) -> list[RssItem]:
        items = list(self.queue.values())
        self.queue.clear()
        return items


class RssChangeDetector:
    """Polls both feeds, queues what changed and parks it in the pending table."""

    def __init__(
        self,
        client: WatchlistClient,
        store: WatchlistStore,
        state: RssState,
        lock: threading.Lock,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.store = store
        self.state = state
        self.lock = lock
        self.clock = clock

    def feed_urls(self) -> dict[str, str]:
        cfg = self.store.get_config()
        return {src: str(cfg[k]) for src, k in _URL_KEYS.items() if cfg.get(k)}

    def _fetch(self, source: Source, url: str) -> dict[str, RssItem] | None:
        try:
            return build_item_map(self.client.fetch_watchlist_rss(url, source))
        except Exception as e:
            _log.error(f"Error fetching {source} RSS feed: {e}")
            return None

    def initialize(self) -> dict[str, int]:
        urls = self.feed_urls()
        sizes: dict[str, int] = {}
        for source in SOURCES:
            url = urls.get(source)
            current = self._fetch(source, url) if url else {}
            if current is None:
                continue
            with self.lock:
                self.state.snapshots[source] = current
            sizes[source] = len(current)
        _log.info("RSS snapshots initialized", extra=sizes)
        return sizes

    def add_to_queue(self, items: Iterable[RssItem], source: Source) -> list[RssItem]:
        added: list[RssItem] = []
        with self.lock:
            for it in items:
                fp = fingerprint(it)
                if fp in self.state.queue:
                    continue
                self.state.queue[fp] = it
                added.append(it)
            if added:
                self.state.last_queue_item_time = self.clock()
        if added:
            store_rss_items(self.store, added, source)
            _log.debug(f"Queued {len(added)} {source} changes")
        return added

    def poll_source(self, source: Source, url: str) -> list[RssItem]:
        current = self._fetch(source, url)
        if current is None:
            return []
        with self.lock:
            previous = self.state.snapshots.get(source) or {}
        changes = detect_changes(previous, current)
        queued = self.add_to_queue(changes, source) if changes else []
        with self.lock:
            self.state.snapshots[source] = current
        return queued

    def poll(self) -> dict[str, int]:
        urls = self.feed_urls()
        out: dict[str, int] = {}
        for source in SOURCES:
            url = urls.get(source)
            if url:
                out[source] = len(self.poll_source(source, url))
        return out


__all__ = [
    "SOURCES",
    "build_item_map",
    "detect_changes",
    "to_temp_item",
    "RssState",
    "RssChangeDetector",
]
