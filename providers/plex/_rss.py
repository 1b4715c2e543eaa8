# /providers/plex/_rss.py
# Plex watchlist RSS: feed URL generation and JSON feed reads
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from _logging import log as BASE_LOG
from wr_platform.id_map import decode_list, norm_type

from ._common import CLIENT_ID, DISCOVER, check_response, plex_headers, request_with_retries, safe_json

_log = BASE_LOG.child("RSS")

FEED_SELF = "watchlist"
FEED_FRIENDS = "friendsWatchlist"


def generate_rss_url(
    session: requests.Session, token: str, feed_type: str, *, timeout: float = 10.0, max_retries: int = 3,
) -> Optional[str]:
    headers = dict(plex_headers(token))
    headers["Content-Type"] = "application/json"
    resp = request_with_retries(
        session, "POST", f"{DISCOVER}/rss",
        headers=headers,
        params={"X-Plex-Token": token, "X-Plex-Client-Identifier": CLIENT_ID},
        json={"feedType": feed_type},
        timeout=timeout,
        max_retries=max_retries,
    )
    check_response(resp, f"rss {feed_type}")
    data = safe_json(resp)
    info = (data or {}).get("RSSInfo") or []
    url = (info[0] or {}).get("url") if info and isinstance(info[0], Mapping) else None
    return str(url) if url else None


def generate_watchlist_urls(
    session: requests.Session,
    tokens: Iterable[str],
    *,
    skip_friend_sync: bool = False,
    timeout: float = 10.0,
    max_retries: int = 3,
) -> List[str]:
    """[self_url, friends_url] from the first token that yields any; a missing feed keeps its slot as "".

    The friends slot is omitted when friend sync is skipped.
    """
    feeds = [FEED_SELF] if skip_friend_sync else [FEED_SELF, FEED_FRIENDS]
    for token in tokens:
        urls: List[str] = []
        try:
            for feed in feeds:
                url = generate_rss_url(session, token, feed, timeout=timeout, max_retries=max_retries)
                urls.append(url or "")
        except (requests.RequestException, RuntimeError) as e:
            _log.warn(f"RSS URL generation failed for a token: {e}")
            continue
        if any(urls):
            return urls
    return []


def _thumb(item: Mapping[str, Any]) -> Optional[str]:
    th = item.get("thumbnail")
    if isinstance(th, Mapping):
        return th.get("url")
    return th or item.get("thumb")


def _key(item: Mapping[str, Any]) -> Optional[str]:
    link = str(item.get("link") or "")
    if link:
        return link.rstrip("/").rsplit("/", 1)[-1] or None
    gs = decode_list(item.get("guids"))
    return gs[0] if gs else None


def parse_rss_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "title": item.get("title"),
        "type": norm_type(item.get("category") or item.get("type")),
        "thumb": _thumb(item),
        "guids": decode_list(item.get("guids")),
        "genres": decode_list(item.get("keywords") or item.get("genres")),
        "key": _key(item),
    }


def fetch_rss_items(
    session: requests.Session, url: str, *, timeout: float = 10.0, max_retries: int = 3,
) -> List[Dict[str, Any]]:
    resp = request_with_retries(
        session, "GET", url,
        headers={"Accept": "application/json"},
        params={"format": "json"},
        timeout=timeout,
        max_retries=max_retries,
    )
    check_response(resp, "rss feed")
    data = safe_json(resp)
    items = (data or {}).get("items") if isinstance(data, Mapping) else None
    return [parse_rss_item(it) for it in (items or []) if isinstance(it, Mapping)]


__all__ = [
    "FEED_SELF",
    "FEED_FRIENDS",
    "generate_rss_url",
    "generate_watchlist_urls",
    "parse_rss_item",
    "fetch_rss_items",
]
