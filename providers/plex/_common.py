# /providers/plex/_common.py
# Plex module for common HTTP utilities
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

import json
import os
import time
import uuid
from typing import Any, Mapping

import requests

from _logging import log as BASE_LOG

__all__ = [
    "DISCOVER",
    "COMMUNITY",
    "CLIENT_ID",
    "PlexError",
    "PlexAuthError",
    "plex_headers",
    "safe_json",
    "request_with_retries",
    "check_response",
    "graphql",
]

DISCOVER = "https://discover.provider.plex.tv"
COMMUNITY = "https://community.plex.tv/api"

CLIENT_ID = (
    os.environ.get("WR_PLEX_CID")
    or os.environ.get("PLEX_CLIENT_IDENTIFIER")
    or str(uuid.uuid4())
)

_log = BASE_LOG.child("PLEX")


class PlexError(RuntimeError):
    pass


class PlexAuthError(PlexError):
    pass


def plex_headers(token: str) -> dict[str, str]:
    return {
        "X-Plex-Product": "WatchRelay",
        "X-Plex-Platform": "WatchRelay",
        "X-Plex-Version": "1.0.0",
        "X-Plex-Client-Identifier": CLIENT_ID,
        "X-Plex-Token": token,
        "Accept": "application/json",
    }


def safe_json(resp: requests.Response) -> Any:
    try:
        if not (resp.text or "").strip():
            return {}
        ctype = (resp.headers.get("Content-Type") or "").lower()
        if "json" in ctype:
            return resp.json()
        return json.loads(resp.text)
    except ValueError:
        return {}


def request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    retry_on: tuple[int, ...] = (429, 500, 502, 503, 504),
    backoff_base: float = 0.5,
    **kwargs: Any,
) -> requests.Response:
    last: Any = None
    for i in range(max(1, int(max_retries))):
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
            if resp.status_code in retry_on and i < max_retries - 1:
                wait = backoff_base * (2**i)
                if resp.status_code == 429:
                    ra = resp.headers.get("Retry-After")
                    try:
                        wait = max(wait, float(ra)) if ra else wait
                    except ValueError:
                        pass
                _log.debug(f"{method} {url} -> {resp.status_code}; retry in {wait:.1f}s")
                time.sleep(wait)
                last = resp
                continue
            return resp
        except requests.RequestException as e:
            last = e
            if i < max_retries - 1:
                time.sleep(backoff_base * (2**i))
            else:
                break
    if isinstance(last, requests.Response):
        return last
    raise requests.RequestException(f"request failed after retries: {method} {url}") from last


def check_response(resp: requests.Response, what: str) -> None:
    if resp.status_code == 401:
        raise PlexAuthError(f"{what}: unauthorized (bad Plex token)")
    if not resp.ok:
        raise PlexError(f"{what}: HTTP {resp.status_code}")


def graphql(
    session: requests.Session,
    token: str,
    query: str,
    variables: Mapping[str, Any] | None = None,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
) -> dict[str, Any]:
    headers = dict(plex_headers(token))
    headers["Content-Type"] = "application/json"
    resp = request_with_retries(
        session, "POST", COMMUNITY,
        headers=headers,
        json={"query": query, "variables": dict(variables or {})},
        timeout=timeout,
        max_retries=max_retries,
    )
    check_response(resp, "GraphQL")
    data = safe_json(resp)
    if not isinstance(data, dict):
        raise PlexError("GraphQL: unexpected payload")
    errors = data.get("errors") or []
    if errors:
        msg = "; ".join(str((e or {}).get("message") or e) for e in errors)
        raise PlexError(f"GraphQL errors: {msg}")
    return dict(data.get("data") or {})
