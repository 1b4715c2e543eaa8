# wr_platform/watchlist/_scheduler.py
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

from _logging import log as BASE_LOG

_log = BASE_LOG.child("SCHED")


class RepeatingTask:
    """Calls ``fn`` every ``interval`` seconds on a daemon thread until stopped.

    The first call happens one interval after ``start()``. A tick that raises is
    logged and the task keeps going.
    """

    def __init__(self, name: str, interval: float, fn: Callable[[], Any]) -> None:
        self.name = name
        self.interval = max(0.05, float(interval))
        self.fn = fn

        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._poke = threading.Event()
        self._lock = threading.Lock()
        self._status: Dict[str, Any] = {
            "running": False,
            "ticks": 0,
            "last_tick": 0,
            "last_error": "",
        }

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._status)

    @property
    def running(self) -> bool:
        t = self._thread
        return bool(t and t.is_alive() and not self._stop.is_set())

    # control

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._poke.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 3.0) -> None:
        self._stop.set()
        self._poke.set()
        t = self._thread
        if t and t.is_alive() and t is not threading.current_thread():
            t.join(timeout=timeout)

    def run_once(self) -> None:
        err = ""
        try:
            self.fn()
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            _log.error(f"{self.name} tick failed: {err}")
        finally:
            with self._lock:
                self._status["ticks"] += 1
                self._status["last_tick"] = int(time.time())
                self._status["last_error"] = err

    # internals

    def _loop(self) -> None:
        with self._lock:
            self._status["running"] = True
        try:
            while not self._stop.is_set():
                self._sleep_or_poke(self.interval)
                if self._stop.is_set():
                    break
                self.run_once()
        finally:
            with self._lock:
                self._status["running"] = False

    def _sleep_or_poke(self, seconds: float) -> None:
        if seconds <= 0:
            return
        self._poke.wait(timeout=seconds)
        self._poke.clear()


__all__ = ["RepeatingTask"]
