# /providers/plex/_watchlist.py
# Plex watchlist reads: own watchlist (plexapi), friends + friend watchlists (GraphQL), metadata enrichment
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import requests

from _logging import log as BASE_LOG
from wr_platform.id_map import decode_list, norm_type

from ._common import DISCOVER, check_response, graphql, plex_headers, request_with_retries, safe_json

_log = BASE_LOG.child("PLEX")

FRIENDS_QUERY = """
query GetAllFriends {
  allFriendsV2 {
    user { id username }
  }
}
"""

FRIEND_WATCHLIST_QUERY = """
query GetWatchlistHub($uuid: ID = "", $first: PaginationInt!, $after: String) {
  user(id: $uuid) {
    watchlist(first: $first, after: $after) {
      nodes { id title type }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

# ── row helpers ───────────────────────────────────────────────────────────────

def _key_of(obj: Any) -> Optional[str]:
    rk = getattr(obj, "ratingKey", None)
    if rk:
        return str(rk)
    key = str(getattr(obj, "key", "") or "")
    if key.startswith("/library/metadata/"):
        return key[len("/library/metadata/"):].split("/", 1)[0] or None
    return None


def _tags(values: Any) -> List[str]:
    out: List[str] = []
    for v in values or []:
        tag = v.get("tag") if isinstance(v, Mapping) else getattr(v, "tag", None)
        if tag:
            out.append(str(tag))
    return out


def _guid_ids(values: Any) -> List[str]:
    out: List[str] = []
    for v in values or []:
        gid = v.get("id") if isinstance(v, Mapping) else getattr(v, "id", None)
        if gid:
            out.append(str(gid))
    return out


def raw_from_plexapi(media: Any) -> Optional[Dict[str, Any]]:
    key = _key_of(media)
    if not key:
        return None
    guids = _guid_ids(getattr(media, "guids", None))
    primary = getattr(media, "guid", None)
    if not guids and primary:
        guids = [str(primary)]
    return {
        "id": key,
        "title": getattr(media, "title", None),
        "type": norm_type(getattr(media, "type", None)),
        "thumb": getattr(media, "thumb", None),
        "guids": guids,
        "genres": _tags(getattr(media, "genres", None)),
    }


def raw_from_node(node: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    key = node.get("id")
    if not key:
        return None
    return {"id": str(key), "title": node.get("title"), "type": norm_type(node.get("type"))}


# ── fetches ───────────────────────────────────────────────────────────────────

def fetch_self_watchlist(account: Any) -> List[Dict[str, Any]]:
    """``account`` is a plexapi MyPlexAccount."""
    out: List[Dict[str, Any]] = []
    for media in account.watchlist(maxresults=100000) or []:
        row = raw_from_plexapi(media)
        if row:
            out.append(row)
    _log.debug(f"self watchlist: {len(out)} items")
    return out


def fetch_friends(
    session: requests.Session, token: str, *, timeout: float = 10.0, max_retries: int = 3,
) -> List[Dict[str, str]]:
    data = graphql(session, token, FRIENDS_QUERY, timeout=timeout, max_retries=max_retries)
    out: List[Dict[str, str]] = []
    for row in data.get("allFriendsV2") or []:
        user = (row or {}).get("user") or {}
        if user.get("id") and user.get("username"):
            out.append({"watchlist_id": str(user["id"]), "username": str(user["username"])})
    _log.debug(f"friends: {len(out)}")
    return out


def fetch_friend_watchlist(
    session: requests.Session,
    token: str,
    watchlist_id: str,
    *,
    page_size: int = 100,
    timeout: float = 10.0,
    max_retries: int = 3,
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    after: Optional[str] = None
    while True:
        variables: Dict[str, Any] = {"uuid": watchlist_id, "first": int(page_size)}
        if after:
            variables["after"] = after
        data = graphql(session, token, FRIEND_WATCHLIST_QUERY, variables, timeout=timeout, max_retries=max_retries)
        wl = ((data.get("user") or {}).get("watchlist") or {})
        for node in wl.get("nodes") or []:
            row = raw_from_node(node or {})
            if row:
                out.append(row)
        info = wl.get("pageInfo") or {}
        if not info.get("hasNextPage") or not info.get("endCursor"):
            break
        after = str(info["endCursor"])
    return out


# ── enrichment ────────────────────────────────────────────────────────────────

def fetch_metadata(
    session: requests.Session, token: str, key: str, *, timeout: float = 10.0, max_retries: int = 3,
) -> Dict[str, Any]:
    resp = request_with_retries(
        session, "GET", f"{DISCOVER}/library/metadata/{key}",
        headers=plex_headers(token),
        timeout=timeout,
        max_retries=max_retries,
    )
    check_response(resp, f"metadata {key}")
    data = safe_json(resp)
    mc = (data or {}).get("MediaContainer") or {}
    rows = mc.get("Metadata") or []
    return dict(rows[0]) if rows and isinstance(rows[0], Mapping) else {}


def enrich_item(raw: Mapping[str, Any], meta: Mapping[str, Any]) -> Dict[str, Any]:
    guids = _guid_ids(meta.get("Guid")) or decode_list(raw.get("guids"))
    genres = _tags(meta.get("Genre")) or decode_list(raw.get("genres"))
    return {
        "key": str(raw.get("id")),
        "title": meta.get("title") or raw.get("title"),
        "type": norm_type(meta.get("type") or raw.get("type")),
        "thumb": meta.get("thumb") or raw.get("thumb"),
        "guids": guids,
        "genres": genres,
    }


def enrich_items(
    session: requests.Session,
    token: str,
    items: Iterable[Mapping[str, Any]],
    *,
    on_item: Optional[Callable[[], None]] = None,
    max_workers: int = 4,
    timeout: float = 10.0,
    max_retries: int = 3,
) -> List[Dict[str, Any]]:
    rows = [dict(it) for it in items if it.get("id")]
    if not rows:
        return []

    def _one(raw: Dict[str, Any]) -> Dict[str, Any]:
        try:
            meta = fetch_metadata(session, token, str(raw["id"]), timeout=timeout, max_retries=max_retries)
        except (requests.RequestException, RuntimeError) as e:
            _log.warn(f'Metadata lookup failed for "{raw.get("title")}": {e}')
            meta = {}
        return enrich_item(raw, meta)

    out: List[Dict[str, Any]] = []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(rows)))) as ex:
        futs = [ex.submit(_one, r) for r in rows]
        for fut in as_completed(futs):
            out.append(fut.result())
            if on_item:
                on_item()
    order = {str(r["id"]): i for i, r in enumerate(rows)}
    out.sort(key=lambda r: order.get(r["key"], 0))
    return out


class ProgressCounter:
    """Thread-safe done/total counter reporting whole percentages."""

    def __init__(self, total: int, report: Optional[Callable[[int, str], None]]) -> None:
        self.total = max(0, int(total))
        self.done = 0
        self.report = report
        self._lock = threading.Lock()

    def tick(self) -> None:
        with self._lock:
            self.done += 1
            done, total = self.done, self.total
        if self.report and total:
            self.report(int(done * 100 / total), f"Processed {done} of {total} items")


__all__ = [
    "raw_from_plexapi",
    "raw_from_node",
    "fetch_self_watchlist",
    "fetch_friends",
    "fetch_friend_watchlist",
    "fetch_metadata",
    "enrich_item",
    "enrich_items",
    "ProgressCounter",
]
