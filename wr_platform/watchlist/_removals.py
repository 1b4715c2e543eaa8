# wr_platform/watchlist/_removals.py
# stored keys that a fresh fetch no longer reports are deleted outright.
from __future__ import annotations

from collections.abc import Iterable, Mapping

from _logging import log as BASE_LOG

from ._types import Identity, RawItem, WatchlistStore

_log = BASE_LOG.child("REMOVALS")


def removed_keys(current_keys: Iterable[str], fetched_keys: Iterable[str]) -> list[str]:
    fetched = set(fetched_keys)
    return sorted({k for k in current_keys if k not in fetched})


def check_for_removed_items(
    store: WatchlistStore,
    items_by_identity: Mapping[Identity, Iterable[RawItem]],
) -> dict[int, list[str]]:
    """Per identity: delete stored - fetched. Returns {user_id: deleted keys}."""
    out: dict[int, list[str]] = {}
    for ident, items in items_by_identity.items():
        current = store.get_all_watchlist_items_for_user(ident.user_id)
        current_keys = [str(r.get("key")) for r in current if r.get("key")]
        fetched_keys = [str(it.get("id")) for it in items if it.get("id")]
        gone = removed_keys(current_keys, fetched_keys)
        if gone:
            _log.info(
                f"Detected {len(gone)} removed items for user {ident.user_id}",
                extra={"username": ident.username},
            )
            store.delete_watchlist_items(ident.user_id, gone)
            out[ident.user_id] = gone
    return out


__all__ = ["removed_keys", "check_for_removed_items"]
