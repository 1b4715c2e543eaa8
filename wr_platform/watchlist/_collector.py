# wr_platform/watchlist/_collector.py
# parallel per-identity watchlist fetches with per-task failure capture.
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from _logging import log as BASE_LOG

from ._identities import token_username
from ._types import FRIENDS, SELF, CollectResult, Friend, Identity, RawItem, WatchlistClient

_log = BASE_LOG.child("COLLECT")

FetchFn = Callable[[], Iterable[RawItem]]


def fan_out(jobs: Mapping[Identity, FetchFn]) -> CollectResult:
    """Run every fetch in parallel (no cap); keep what succeeded, record what failed.

    Identities that return nothing are left out of ``items``.
    """
    res = CollectResult()
    if not jobs:
        return res

    got: dict[Identity, list[RawItem]] = {}
    with ThreadPoolExecutor(max_workers=len(jobs)) as ex:
        futs = {ex.submit(fn): ident for ident, fn in jobs.items()}
        for fut in as_completed(futs):
            ident = futs[fut]
            try:
                got[ident] = list(fut.result() or [])
            except Exception as e:
                res.failed[ident] = f"{type(e).__name__}: {e}"
                _log.warn(
                    f"Watchlist fetch failed for {ident.username}",
                    extra={"watchlist_id": ident.watchlist_id, "error": res.failed[ident]},
                )

    # keep configuration order, independent of completion order
    for ident in jobs:
        items = got.get(ident)
        if items:
            res.items[ident] = items
        elif ident in got:
            _log.debug(f"Empty watchlist for {ident.username}; omitted")

    if res.failed:
        _log.warn(
            f"{len(res.failed)} of {len(jobs)} watchlist fetches failed",
            extra={"failed": sorted(i.username for i in res.failed)},
        )
    return res


def collect_self(client: WatchlistClient, tokens: Sequence[str], user_map: Mapping[str, int]) -> CollectResult:
    jobs: dict[Identity, FetchFn] = {}
    for i, token in enumerate(tokens):
        name = token_username(i)
        uid = user_map.get(name)
        if not uid:
            _log.error(f"No user ID found for token user: {name}")
            continue
        ident = Identity(watchlist_id=name, username=name, user_id=uid, kind=SELF)
        jobs[ident] = (lambda t=token: client.fetch_self_watchlist(t))
    return fan_out(jobs)


def collect_friends(
    client: WatchlistClient,
    friends: Iterable[tuple[Friend, str]],
    user_map: Mapping[str, int],
) -> CollectResult:
    jobs: dict[Identity, FetchFn] = {}
    for friend, token in friends:
        uid = user_map.get(friend.watchlist_id)
        if not uid:
            _log.warn(f"No user ID found for friend with watchlist ID: {friend.watchlist_id}")
            continue
        ident = Identity(watchlist_id=friend.watchlist_id, username=friend.username, user_id=uid, kind=FRIENDS)
        jobs[ident] = (lambda f=friend, t=token: client.fetch_friend_watchlist(t, f))
    return fan_out(jobs)


__all__ = ["fan_out", "collect_self", "collect_friends"]
