# wr_platform/watchlist/_pending.py
# RSS-only sightings parked in the pending table until a full fetch covers them.
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from _logging import log as BASE_LOG

from ..id_map import any_guid_overlap, decode_list
from ._types import Identity, RssItem, Source, StoredItem, WatchlistStore

_log = BASE_LOG.child("PENDING")


def store_rss_items(store: WatchlistStore, items: Iterable[RssItem], source: Source) -> list[int]:
    rows = [
        {
            "title": it.get("title"),
            "type": it.get("type"),
            "thumb": it.get("thumb"),
            "guids": decode_list(it.get("guids")),
            "genres": decode_list(it.get("genres")),
            "key": it.get("key"),
            "source": source,
        }
        for it in items
    ]
    if not rows:
        return []
    ids = store.create_temp_rss_items(rows)
    store.sync_genres_from_watchlist()
    _log.debug(f"Stored {len(ids)} pending {source} RSS items")
    return ids


def _find_match(pending: Mapping[str, Any], watchlists: Mapping[Identity, Iterable[StoredItem]]) -> StoredItem | None:
    for items in watchlists.values():
        for it in items:
            if any_guid_overlap(pending, it):
                return it
    return None


def match_pending_items(
    store: WatchlistStore,
    source: Source,
    watchlists: Mapping[Identity, Iterable[StoredItem]],
) -> dict[str, Any]:
    """Drop pending rows whose guids now appear in a full fetch; keep the rest."""
    pending = store.get_temp_rss_items(source)
    if not pending:
        return {"matched": 0, "unmatched": 0}

    snapshot = {ident: list(items) for ident, items in watchlists.items()}
    matched: list[int] = []
    unmatched: list[dict[str, Any]] = []
    for row in pending:
        hit = _find_match(row, snapshot)
        if hit is not None:
            _log.debug(f'Matched pending "{row.get("title")}" to "{hit.get("title")}"')
            matched.append(int(row["id"]))
        else:
            unmatched.append(row)

    if matched:
        store.delete_temp_rss_items(matched)
        _log.info(f"Matched {len(matched)} pending {source} RSS items")
    for row in unmatched:
        _log.warn(
            f'No match found for {source} RSS item "{row.get("title")}"',
            extra={"guids": decode_list(row.get("guids"))},
        )
    return {"matched": len(matched), "unmatched": len(unmatched)}


__all__ = ["store_rss_items", "match_pending_items"]
