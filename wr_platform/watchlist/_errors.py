# wr_platform/watchlist/_errors.py
# exception hierarchy for the watchlist engine.
from __future__ import annotations


class WatchlistError(Exception):
    """Base class for watchlist engine failures."""


class ConfigurationError(WatchlistError):
    """No usable Plex credentials configured."""


class WatchlistFetchError(WatchlistError):
    """Nothing could be fetched for any identity, or feed URLs are unavailable."""


class IdentityError(WatchlistError):
    """A local user record came back without an id."""


class StoreError(WatchlistError):
    """Storage-layer failure; fatal to the current pass."""


__all__ = ["WatchlistError", "ConfigurationError", "WatchlistFetchError", "IdentityError", "StoreError"]
