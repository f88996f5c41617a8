"""
Periodic flush-and-refetch of the local caches.

Each cache domain runs its own cycle: idle -> flushing -> fetching -> idle.
A domain holds at most one cycle in flight; a trigger that arrives while a
cycle is running is coalesced (dropped) instead of racing the running fetch.
"""

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..jsonlog import json_log

REFRESH_INTERVAL_MS = 300_000

IDLE = "idle"
FLUSHING = "flushing"
FETCHING = "fetching"

# Outcomes returned by refresh calls.
REFRESHED = "refreshed"
FAILED = "failed"
COALESCED = "coalesced"
FRESH = "fresh"


def _always_stale() -> bool:
    return True


@dataclass
class RefreshDomain:
    name: str
    flush: Callable[[], None]
    fetch: Callable[[], Any]
    is_stale: Callable[[], bool] = _always_stale


class RefreshScheduler:
    def __init__(self, interval_ms: int = REFRESH_INTERVAL_MS):
        self.interval_ms = interval_ms
        self._domains: Dict[str, RefreshDomain] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._states: Dict[str, str] = {}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def register(self, domain: RefreshDomain) -> None:
        self._domains[domain.name] = domain
        self._locks[domain.name] = threading.Lock()
        self._states[domain.name] = IDLE

    def domains(self):
        return list(self._domains.keys())

    def state(self, name: str) -> str:
        return self._states[name]

    def _cycle(self, name: str, *, flush: bool) -> str:
        domain = self._domains[name]
        lock = self._locks[name]
        if not lock.acquire(blocking=False):
            json_log("info", "refresh.coalesced", domain=name, state=self._states[name])
            return COALESCED
        try:
            if flush:
                self._states[name] = FLUSHING
                domain.flush()
            self._states[name] = FETCHING
            domain.fetch()
            json_log("info", "refresh.completed", domain=name, flushed=flush)
            return REFRESHED
        except Exception as ex:
            # A failed cycle must never take down the timer thread.
            json_log("error", "refresh.cycle_failed", domain=name, error=str(ex), error_type=type(ex).__name__)
            return FAILED
        finally:
            self._states[name] = IDLE
            lock.release()

    def refresh(self, name: str) -> str:
        return self._cycle(name, flush=True)

    def refresh_if_stale(self, name: str) -> str:
        domain = self._domains[name]
        try:
            stale = domain.is_stale()
        except Exception as ex:
            json_log("warning", "refresh.stale_check_failed", domain=name, error=str(ex))
            stale = True
        if not stale:
            return FRESH
        return self._cycle(name, flush=False)

    def tick(self) -> Dict[str, str]:
        return {name: self.refresh(name) for name in list(self._domains.keys())}

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        interval_s = self.interval_ms / 1000.0
        while not self._stop.wait(interval_s):
            self.tick()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="cache-refresh", daemon=True)
        self._thread.start()
        json_log("info", "refresh.started", interval_ms=self.interval_ms, domains=self.domains())

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        json_log("info", "refresh.stopped")
