# services/progress.py
# In-process progress bus; each subscriber drains its own queue.
from __future__ import annotations

import json
import queue
import threading
import time
from typing import Any, Iterator, Mapping

from _logging import log as BASE_LOG

_log = BASE_LOG.child("PROGRESS")

__all__ = ["ProgressBus", "format_sse"]


class ProgressBus:
    def __init__(self, max_queue: int = 256) -> None:
        self.max_queue = max(1, int(max_queue))
        self._subs: set[queue.Queue] = set()
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self.max_queue)
        with self._lock:
            self._subs.add(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subs.discard(q)

    def has_active_connections(self) -> bool:
        with self._lock:
            return bool(self._subs)

    def emit(self, event: Mapping[str, Any]) -> None:
        evt = dict(event)
        evt.setdefault("ts", int(time.time() * 1000))
        with self._lock:
            subs = list(self._subs)
        for q in subs:
            try:
                q.put_nowait(evt)
            except queue.Full:
                _log.debug("progress subscriber is lagging; event dropped")

    def drain(self, q: queue.Queue, *, timeout: float = 0.25) -> Iterator[dict[str, Any]]:
        """Yield what is queued now; waits up to ``timeout`` for the first event."""
        try:
            yield q.get(timeout=timeout)
        except queue.Empty:
            return
        while True:
            try:
                yield q.get_nowait()
            except queue.Empty:
                return


def format_sse(event: Mapping[str, Any]) -> str:
    return f"event: progress\ndata: {json.dumps(dict(event), separators=(',', ':'))}\n\n"
