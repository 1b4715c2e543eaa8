# wr_platform/watchlist/__init__.py
from __future__ import annotations

from ._errors import (
    ConfigurationError,
    IdentityError,
    StoreError,
    WatchlistError,
    WatchlistFetchError,
)
from ._types import FRIENDS, SELF, CollectResult, Friend, Identity
from .facade import WatchlistService
from ._workflow import RssWorkflow

__all__ = [
    "WatchlistService",
    "RssWorkflow",
    "Identity",
    "Friend",
    "CollectResult",
    "SELF",
    "FRIENDS",
    "WatchlistError",
    "ConfigurationError",
    "WatchlistFetchError",
    "IdentityError",
    "StoreError",
]
