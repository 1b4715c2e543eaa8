# wr_platform/store.py
# JSON-file datastore for users, watchlist rows, pending RSS rows and genres.
from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .id_map import decode_list, genres_of, guid_set
from .watchlist._errors import StoreError

_TABLES = ("users", "watchlist_items", "temp_rss_items", "genres", "config")
_ITEM_FIELDS = ("title", "type", "thumb", "guids", "genres", "status")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class JsonStore:
    """One JSON file per table under ``base_path``; every call is a locked read-modify-write."""

    base_path: Path
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.base_path = Path(self.base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, table: str) -> Path:
        if table not in _TABLES:
            raise StoreError(f"unknown table: {table}")
        return self.base_path / f"{table}.json"

    def _read(self, table: str, default: Any) -> Any:
        p = self._path(table)
        if not p.exists():
            return default
        try:
            return json.loads(p.read_text("utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"unable to read {p.name}: {e}") from e

    def _write_atomic(self, table: str, data: Any) -> None:
        p = self._path(table)
        tmp = p.with_suffix(p.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
            tmp.replace(p)
        except OSError as e:
            raise StoreError(f"unable to write {p.name}: {e}") from e

    def _rows(self, table: str) -> list[dict[str, Any]]:
        rows = self._read(table, [])
        if not isinstance(rows, list):
            raise StoreError(f"{table}.json is not a list")
        return rows

    @staticmethod
    def _next_id(rows: list[dict[str, Any]]) -> int:
        return max((int(r.get("id") or 0) for r in rows), default=0) + 1

    # --- users ---------------------------------------------------------------

    def get_user(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            for row in self._rows("users"):
                if row.get("name") == name:
                    return dict(row)
        return None

    def create_user(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._rows("users")
            name = fields.get("name")
            if any(r.get("name") == name for r in rows):
                raise StoreError(f"user already exists: {name}")
            now = _now_iso()
            row = {
                "id": self._next_id(rows),
                "name": name,
                "email": fields.get("email"),
                "alias": fields.get("alias"),
                "discord_id": fields.get("discord_id"),
                "notify_email": bool(fields.get("notify_email", False)),
                "notify_discord": bool(fields.get("notify_discord", False)),
                "can_sync": bool(fields.get("can_sync", True)),
                "created_at": now,
                "updated_at": now,
            }
            rows.append(row)
            self._write_atomic("users", rows)
            return dict(row)

    def get_all_users(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._rows("users")]

    def get_users_with_watchlist_count(self) -> list[dict[str, Any]]:
        with self._lock:
            counts: dict[int, int] = {}
            for it in self._rows("watchlist_items"):
                uid = int(it.get("user_id") or 0)
                counts[uid] = counts.get(uid, 0) + 1
            return [{**r, "watchlist_count": counts.get(int(r["id"]), 0)} for r in self._rows("users")]

    # --- watchlist items -----------------------------------------------------

    def get_bulk_watchlist_items(self, user_ids: Iterable[int], keys: Iterable[str]) -> list[dict[str, Any]]:
        uids = {int(u) for u in user_ids}
        ks = {str(k) for k in keys}
        if not uids or not ks:
            return []
        with self._lock:
            return [
                dict(r) for r in self._rows("watchlist_items")
                if int(r.get("user_id") or 0) in uids and str(r.get("key")) in ks
            ]

    def get_watchlist_items_by_guids(self, guids: Iterable[str]) -> list[dict[str, Any]]:
        wanted = guid_set(list(guids))
        if not wanted:
            return []
        with self._lock:
            return [dict(r) for r in self._rows("watchlist_items") if not guid_set(r).isdisjoint(wanted)]

    def get_all_watchlist_items_for_user(self, user_id: int) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._rows("watchlist_items") if int(r.get("user_id") or 0) == int(user_id)]

    def create_watchlist_items(
        self,
        items: Iterable[Mapping[str, Any]],
        *,
        on_conflict: str | None = None,
    ) -> None:
        """Insert rows unique on (user_id, key).

        on_conflict: None raises StoreError on a duplicate, "merge" updates the
        existing row, "ignore" keeps it untouched.
        """
        if on_conflict not in (None, "merge", "ignore"):
            raise StoreError(f"unsupported on_conflict policy: {on_conflict}")
        with self._lock:
            rows = self._rows("watchlist_items")
            index = {(int(r.get("user_id") or 0), str(r.get("key"))): r for r in rows}
            next_id = self._next_id(rows)
            now = _now_iso()
            for it in items:
                uid, key = int(it.get("user_id") or 0), str(it.get("key") or "")
                if not uid or not key:
                    raise StoreError(f"watchlist item needs user_id and key: {dict(it)}")
                existing = index.get((uid, key))
                if existing is not None:
                    if on_conflict is None:
                        raise StoreError(f"duplicate watchlist item user_id={uid} key={key}")
                    if on_conflict == "merge":
                        for f in _ITEM_FIELDS:
                            if f in it:
                                existing[f] = list(decode_list(it[f])) if f in ("guids", "genres") else it[f]
                        existing["updated_at"] = now
                    continue
                row = {
                    "id": next_id,
                    "user_id": uid,
                    "key": key,
                    "title": it.get("title"),
                    "type": it.get("type"),
                    "thumb": it.get("thumb"),
                    "guids": decode_list(it.get("guids")),
                    "genres": decode_list(it.get("genres")),
                    "status": it.get("status") or "pending",
                    "created_at": it.get("created_at") or now,
                    "updated_at": it.get("updated_at") or now,
                }
                next_id += 1
                rows.append(row)
                index[(uid, key)] = row
            self._write_atomic("watchlist_items", rows)

    def delete_watchlist_items(self, user_id: int, keys: Iterable[str]) -> int:
        drop = {str(k) for k in keys}
        with self._lock:
            rows = self._rows("watchlist_items")
            keep = [r for r in rows if not (int(r.get("user_id") or 0) == int(user_id) and str(r.get("key")) in drop)]
            removed = len(rows) - len(keep)
            if removed:
                self._write_atomic("watchlist_items", keep)
            return removed

    # --- pending RSS items ---------------------------------------------------

    def create_temp_rss_items(self, items: Iterable[Mapping[str, Any]]) -> list[int]:
        with self._lock:
            rows = self._rows("temp_rss_items")
            next_id = self._next_id(rows)
            now = _now_iso()
            ids: list[int] = []
            for it in items:
                rows.append({
                    "id": next_id,
                    "title": it.get("title"),
                    "type": it.get("type"),
                    "thumb": it.get("thumb"),
                    "guids": decode_list(it.get("guids")),
                    "genres": decode_list(it.get("genres")),
                    "key": it.get("key"),
                    "source": it.get("source"),
                    "created_at": now,
                })
                ids.append(next_id)
                next_id += 1
            self._write_atomic("temp_rss_items", rows)
            return ids

    def get_temp_rss_items(self, source: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._rows("temp_rss_items") if source is None or r.get("source") == source]

    def delete_temp_rss_items(self, ids: Iterable[int]) -> None:
        drop = {int(i) for i in ids}
        if not drop:
            return
        with self._lock:
            rows = self._rows("temp_rss_items")
            self._write_atomic("temp_rss_items", [r for r in rows if int(r.get("id") or 0) not in drop])

    # --- genres --------------------------------------------------------------

    def sync_genres_from_watchlist(self) -> None:
        with self._lock:
            seen: dict[str, str] = {}
            for r in self._rows("watchlist_items"):
                for g in genres_of(r):
                    seen.setdefault(g.lower(), g)
            self._write_atomic("genres", sorted(seen.values(), key=str.lower))

    def get_all_genres(self) -> list[str]:
        with self._lock:
            return list(self._read("genres", []))

    # --- config --------------------------------------------------------------

    def get_config(self) -> dict[str, Any]:
        with self._lock:
            data = self._read("config", {})
            return dict(data) if isinstance(data, dict) else {}

    def update_config(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        with self._lock:
            data = self.get_config()
            data.update(dict(fields))
            data["updated_at"] = _now_iso()
            self._write_atomic("config", data)
            return data
