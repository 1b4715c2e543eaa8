# wr_platform/watchlist/_reconciler.py
# merges per-identity fetches into stored, identity-linked watchlist rows.
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from _logging import log as BASE_LOG

from ..id_map import decode_list, guid_set, guids_of
from ._removals import check_for_removed_items
from ._types import (
    SELF,
    Identity,
    ProgressSink,
    RawItem,
    StoredItem,
    WatchlistClient,
    WatchlistStore,
)

_log = BASE_LOG.child("RECONCILE")

ItemsByIdentity = Mapping[Identity, Iterable[RawItem]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class Categorized:
    brand_new: dict[Identity, list[RawItem]] = field(default_factory=dict)
    to_link: dict[Identity, list[StoredItem]] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    response: dict[str, Any]
    watchlists: dict[Identity, list[StoredItem]]
    removed: dict[int, list[str]] = field(default_factory=dict)


# --- pure steps ----------------------------------------------------------------

def extract_keys(items_by_identity: ItemsByIdentity) -> tuple[set[str], dict[int, set[str]]]:
    all_keys: set[str] = set()
    user_keys: dict[int, set[str]] = {}
    for ident, items in items_by_identity.items():
        keys: set[str] = set()
        for it in items:
            k = it.get("id")
            if k:
                keys.add(str(k))
            else:
                _log.warn(f"Encountered item with null/undefined id for user {ident.user_id}",
                          extra={"title": it.get("title")})
        all_keys |= keys
        if keys:
            user_keys[ident.user_id] = keys
    _log.info(
        f"Collected {len(user_keys)} users and {len(all_keys)} unique keys",
        extra={"user_ids": sorted(user_keys)},
    )
    return all_keys, user_keys


def group_by_key(existing: Iterable[StoredItem]) -> dict[str, dict[int, StoredItem]]:
    out: dict[str, dict[int, StoredItem]] = {}
    for row in existing:
        key, uid = row.get("key"), row.get("user_id")
        if not key or not uid:
            continue
        out.setdefault(str(key), {})[int(uid)] = row
    return out


def make_link_row(ident: Identity, item: RawItem, template: StoredItem) -> StoredItem:
    now = _now_iso()
    return {
        "user_id": ident.user_id,
        "key": str(item["id"]),
        "title": template.get("title"),
        "type": template.get("type"),
        "thumb": template.get("thumb"),
        "guids": decode_list(template.get("guids")),
        "genres": decode_list(template.get("genres")),
        "status": "pending",
        "created_at": now,
        "updated_at": now,
    }


def _usable_template(row: StoredItem | None) -> bool:
    return bool(row and row.get("title") and row.get("type"))


def _guid_template(ident: Identity, item: RawItem, candidates: Iterable[StoredItem]) -> StoredItem | None:
    wanted = guid_set(item)
    if not wanted:
        return None
    best: StoredItem | None = None
    for row in candidates:
        if guid_set(row).isdisjoint(wanted):
            continue
        if int(row.get("user_id") or 0) != ident.user_id:
            return row
        best = best or row
    return best


def categorize(
    items_by_identity: ItemsByIdentity,
    existing_by_key: Mapping[str, Mapping[int, StoredItem]],
    guid_candidates: Iterable[StoredItem] = (),
) -> Categorized:
    """brand-new (key unseen) / link (seen under another user, or same content by guid) / present."""
    out = Categorized()
    candidates = list(guid_candidates)
    for ident, items in items_by_identity.items():
        new_items: list[RawItem] = []
        link_rows: list[StoredItem] = []
        seen: set[str] = set()
        for it in items:
            key = it.get("id")
            if not key or str(key) in seen:
                continue
            seen.add(str(key))
            by_user = existing_by_key.get(str(key))
            if by_user:
                if ident.user_id in by_user:
                    continue
                template = next(iter(by_user.values()))
                if _usable_template(template):
                    link_rows.append(make_link_row(ident, it, template))
                continue
            template = _guid_template(ident, it, candidates)
            if _usable_template(template):
                link_rows.append(make_link_row(ident, it, template))  # type: ignore[arg-type]
            else:
                new_items.append(it)
        if new_items:
            out.brand_new[ident] = new_items
        if link_rows:
            out.to_link[ident] = link_rows
    return out


def format_item(item: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": item.get("title"),
        "plexKey": item.get("key"),
        "type": item.get("type"),
        "thumb": item.get("thumb") or "",
        "guids": decode_list(item.get("guids")),
        "genres": decode_list(item.get("genres")),
        "status": "pending",
    }


def build_response(
    identities: Iterable[Identity],
    existing: list[StoredItem],
    to_link: Mapping[Identity, list[StoredItem]],
    processed: Mapping[Identity, list[StoredItem]],
) -> dict[str, Any]:
    users = []
    for ident in identities:
        rows = [r for r in existing if int(r.get("user_id") or 0) == ident.user_id]
        rows += list(to_link.get(ident, ()))
        rows += list(processed.get(ident, ()))
        users.append({"user": ident.as_dict(), "watchlist": [format_item(r) for r in rows]})
    total = (
        len(existing)
        + sum(len(v) for v in to_link.values())
        + sum(len(v) for v in processed.values())
    )
    return {"total": total, "users": users}


# --- reconciler ------------------------------------------------------------------

class Reconciler:
    def __init__(
        self,
        store: WatchlistStore,
        client: WatchlistClient,
        progress: ProgressSink | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.client = client
        self.progress = progress
        self.clock = clock

    def _emit(self, **event: Any) -> None:
        if not self.progress:
            return
        try:
            self.progress.emit(event)
        except Exception as e:
            _log.debug(f"progress emit failed: {e}")

    def get_existing_items(self, user_keys: Mapping[int, set[str]], all_keys: set[str]) -> list[StoredItem]:
        existing = self.store.get_bulk_watchlist_items(list(user_keys), sorted(all_keys))
        _log.info(
            f"Found {len(existing)} existing items in database",
            extra={
                "unique_users": len({r.get("user_id") for r in existing}),
                "unique_keys": len({r.get("key") for r in existing}),
            },
        )
        return existing

    def _guid_candidates(self, items_by_identity: ItemsByIdentity, existing_by_key: Mapping[str, Any]) -> list[StoredItem]:
        guids: set[str] = set()
        for items in items_by_identity.values():
            for it in items:
                if it.get("id") and str(it["id"]) not in existing_by_key:
                    guids.update(guids_of(it))
        if not guids:
            return []
        return self.store.get_watchlist_items_by_guids(sorted(guids))

    def process_and_save_new_items(self, brand_new: Mapping[Identity, list[RawItem]]) -> dict[Identity, list[StoredItem]]:
        if not brand_new:
            return {}

        _log.debug(f"Processing {len(brand_new)} users with new items")
        operation_id = f"process-{int(self.clock() * 1000)}"
        emit_progress = bool(self.progress and self.progress.has_active_connections())
        first = next(iter(brand_new))
        op_type = "self-watchlist" if first.kind == SELF else "others-watchlist"

        if emit_progress:
            self._emit(
                operationId=operation_id, type=op_type, phase="start", progress=0,
                message=f"Starting {'self' if op_type == 'self-watchlist' else 'others'} watchlist processing",
            )

        def _on_progress(pct: int, message: str) -> None:
            self._emit(operationId=operation_id, type=op_type, phase="processing",
                       progress=max(0, min(int(pct * 0.9), 94)), message=message)

        processed = self.client.process_items(brand_new, progress=_on_progress if emit_progress else None)
        if not isinstance(processed, dict):
            raise TypeError("process_items must return a mapping of identity to items")

        now = _now_iso()
        rows: list[StoredItem] = []
        for ident, items in processed.items():
            for it in items:
                rows.append({
                    "user_id": ident.user_id,
                    "key": it.get("key"),
                    "title": it.get("title"),
                    "type": it.get("type"),
                    "thumb": it.get("thumb"),
                    "guids": decode_list(it.get("guids")),
                    "genres": decode_list(it.get("genres")),
                    "status": "pending",
                    "created_at": now,
                    "updated_at": now,
                })

        if rows:
            if emit_progress:
                self._emit(operationId=operation_id, type=op_type, phase="saving", progress=95,
                           message=f"Saving {len(rows)} items to database")
            self.store.create_watchlist_items(rows)
            self.store.sync_genres_from_watchlist()
            _log.info(f"Processed {len(rows)} new items")
            if emit_progress:
                self._emit(operationId=operation_id, type=op_type, phase="complete", progress=100,
                           message="All items processed and saved")
        return {ident: list(items) for ident, items in processed.items()}

    def link_existing_items(self, to_link: Mapping[Identity, list[StoredItem]]) -> None:
        rows = [r for items in to_link.values() for r in items]
        if not rows:
            return
        self.store.create_watchlist_items(rows, on_conflict="merge")
        self.store.sync_genres_from_watchlist()
        _log.info(f"Linked {len(rows)} existing items to new users")

    def reconcile(self, items_by_identity: ItemsByIdentity) -> ReconcileResult:
        snapshot = {ident: list(items) for ident, items in items_by_identity.items()}

        all_keys, user_keys = extract_keys(snapshot)
        existing = self.get_existing_items(user_keys, all_keys)
        existing_by_key = group_by_key(existing)
        cats = categorize(snapshot, existing_by_key, self._guid_candidates(snapshot, existing_by_key))

        processed = self.process_and_save_new_items(cats.brand_new)
        self.link_existing_items(cats.to_link)

        removed = check_for_removed_items(self.store, snapshot)

        watchlists: dict[Identity, list[StoredItem]] = {}
        for ident in snapshot:
            rows = [r for r in existing if int(r.get("user_id") or 0) == ident.user_id]
            rows += cats.to_link.get(ident, [])
            rows += processed.get(ident, [])
            watchlists[ident] = rows

        response = build_response(snapshot.keys(), existing, cats.to_link, processed)
        return ReconcileResult(response=response, watchlists=watchlists, removed=removed)


__all__ = [
    "Categorized",
    "ReconcileResult",
    "Reconciler",
    "extract_keys",
    "group_by_key",
    "make_link_row",
    "categorize",
    "format_item",
    "build_response",
]
