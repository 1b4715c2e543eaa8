# wr_platform/watchlist/_refresher.py
# fires one full refresh once the change queue has been quiet long enough.
from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from _logging import log as BASE_LOG

from ._rss import RssState

_log = BASE_LOG.child("REFRESH")


class BatchRefresher:
    def __init__(
        self,
        state: RssState,
        lock: threading.Lock,
        refresh: Callable[[], Any],
        *,
        quiet_period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state
        self.lock = lock
        self.refresh = refresh
        self.quiet_period = float(quiet_period)
        self.clock = clock

    def is_due(self, now: float | None = None) -> bool:
        """Caller holds the lock."""
        if not self.state.queue or self.state.last_queue_item_time is None:
            return False
        now = self.clock() if now is None else now
        return now - self.state.last_queue_item_time >= self.quiet_period

    def tick(self) -> bool:
        """Returns True when a refresh ran on this tick."""
        with self.lock:
            if self.state.refreshing:
                _log.debug("Refresh already in progress; tick skipped")
                return False
            if not self.is_due():
                return False
            self.state.refreshing = True
            batch = self.state.clear_queue()

        _log.info(f"Quiet period elapsed; refreshing watchlists for {len(batch)} queued changes")
        err: str | None = None
        try:
            self.refresh()
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            _log.error(f"Error processing queue: {err}")
        finally:
            with self.lock:
                self.state.refreshing = False
                self.state.last_refresh_at = self.clock()
                self.state.last_refresh_error = err
        return True


__all__ = ["BatchRefresher"]
