# wr_platform/watchlist/_workflow.py
# RSS workflow: one owner for snapshots, change queue and refresh guard.
from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from _logging import log as BASE_LOG

from ._refresher import BatchRefresher
from ._rss import RssChangeDetector, RssState
from ._scheduler import RepeatingTask
from .facade import WatchlistService

_log = BASE_LOG.child("WORKFLOW")


class RssWorkflow:
    def __init__(
        self,
        service: WatchlistService,
        *,
        poll_interval: float = 10.0,
        quiet_period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.service = service
        self.poll_interval = float(poll_interval)
        self.quiet_period = float(quiet_period)
        self.clock = clock

        self.state = RssState()
        self._lock = threading.Lock()
        self.detector = RssChangeDetector(service.client, service.store, self.state, self._lock, clock=clock)
        self.refresher = BatchRefresher(
            self.state, self._lock, self.refresh_watchlists, quiet_period=self.quiet_period, clock=clock,
        )
        self._rss_task: RepeatingTask | None = None
        self._queue_task: RepeatingTask | None = None
        self._started_at: float | None = None

    @classmethod
    def from_config(cls, service: WatchlistService, cfg: Mapping[str, Any], **kw: Any) -> "RssWorkflow":
        rss = dict(cfg.get("rss") or {})
        return cls(
            service,
            poll_interval=float(rss.get("poll_interval_sec") or 10),
            quiet_period=float(rss.get("quiet_period_sec") or 60),
            **kw,
        )

    # ticks

    def poll_rss(self) -> dict[str, int]:
        return self.detector.poll()

    def check_queue(self) -> bool:
        return self.refresher.tick()

    def tick(self) -> bool:
        """One RSS poll followed by one queue check."""
        self.poll_rss()
        return self.check_queue()

    def refresh_watchlists(self) -> dict[str, Any]:
        _log.info("Refreshing watchlists")
        out = self.service.sync_all()
        _log.info("Watchlists refreshed successfully")
        return out

    # lifecycle

    @property
    def running(self) -> bool:
        return bool(
            (self._rss_task and self._rss_task.running)
            or (self._queue_task and self._queue_task.running)
        )

    def start(self) -> bool:
        """Ping, full sync, feed URLs, snapshot baseline, then both periodic tasks."""
        if self.running:
            return True
        _log.info("Starting RSS watchlist workflow")
        try:
            if not self.service.ping_plex():
                raise RuntimeError("Plex ping failed")
            _log.info("Plex connection verified")

            self.refresh_watchlists()

            feeds = self.service.generate_and_save_rss_feeds()
            if "error" in feeds:
                raise RuntimeError(f"Failed to generate RSS feeds: {feeds['error']}")

            self.detector.initialize()
            self.start_tasks()
        except Exception as e:
            _log.error(f"Error in RSS workflow start: {type(e).__name__}: {e}")
            return False
        _log.success("RSS watchlist workflow running")
        return True

    def start_tasks(self) -> None:
        self.stop_tasks()
        self._rss_task = RepeatingTask("RssCheck", self.poll_interval, self.poll_rss)
        self._queue_task = RepeatingTask("QueueProcessor", self.poll_interval, self.check_queue)
        self._rss_task.start()
        self._queue_task.start()
        self._started_at = time.time()

    def stop_tasks(self) -> None:
        for task in (self._rss_task, self._queue_task):
            if task:
                task.stop()
        self._rss_task = None
        self._queue_task = None

    def stop(self) -> None:
        _log.info("Stopping RSS watchlist workflow")
        self.stop_tasks()
        with self._lock:
            self.state.clear_queue()
        self._started_at = None

    def status(self) -> dict[str, Any]:
        with self._lock:
            st = {
                "running": self.running,
                "started_at": self._started_at,
                "refreshing": self.state.refreshing,
                "queue_size": len(self.state.queue),
                "snapshots": {src: len(items) for src, items in self.state.snapshots.items()},
                "last_queue_item_time": self.state.last_queue_item_time,
                "last_refresh_at": self.state.last_refresh_at,
                "last_refresh_error": self.state.last_refresh_error,
            }
        st["tasks"] = {
            "rss": self._rss_task.status() if self._rss_task else None,
            "queue": self._queue_task.status() if self._queue_task else None,
        }
        return st


__all__ = ["RssWorkflow"]
