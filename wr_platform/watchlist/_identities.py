# wr_platform/watchlist/_identities.py
# maps Plex tokens and friends onto local user ids, creating users on first sight.
from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor

from _logging import log as BASE_LOG

from ._errors import IdentityError, StoreError
from ._types import Friend, WatchlistStore

_log = BASE_LOG.child("IDENTITY")


def token_username(index: int) -> str:
    return f"token{index + 1}"


def _ensure_user(store: WatchlistStore, name: str) -> int:
    user = store.get_user(name)
    if not user:
        try:
            user = store.create_user({
                "name": name,
                "email": f"{name}@placeholder.com",
                "notify_email": False,
                "notify_discord": False,
                "can_sync": True,
            })
            _log.info(f"Created local user {name}", extra={"user_id": (user or {}).get("id")})
        except StoreError:
            # another pass created it between our read and write
            user = store.get_user(name)
            if not user:
                raise
    uid = (user or {}).get("id")
    if not uid:
        raise IdentityError(f"No ID for user {name}")
    return int(uid)


def ensure_token_users(store: WatchlistStore, tokens: Sequence[str]) -> dict[str, int]:
    """token index i -> local user 'token{i+1}'; returns {username: user_id}."""
    names = [token_username(i) for i in range(len(tokens))]
    if not names:
        return {}
    with ThreadPoolExecutor(max_workers=len(names)) as ex:
        ids = list(ex.map(lambda n: _ensure_user(store, n), names))
    return dict(zip(names, ids))


def ensure_friend_users(store: WatchlistStore, friends: Iterable[Friend]) -> dict[str, int]:
    """Friends are stored under their username; returns {watchlist_id: user_id}."""
    friends = list(friends)
    if not friends:
        return {}
    with ThreadPoolExecutor(max_workers=len(friends)) as ex:
        ids = list(ex.map(lambda f: _ensure_user(store, f.username), friends))
    return {f.watchlist_id: uid for f, uid in zip(friends, ids)}


__all__ = ["token_username", "ensure_token_users", "ensure_friend_users"]
