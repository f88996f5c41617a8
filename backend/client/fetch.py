import threading
import time
from typing import Any, Callable, Optional

from ..jsonlog import json_log
from .errors import EmptyResultError, FetchError, NetworkError, ParseError, QuotaError

MAX_RETRIES_DEFAULT = 3
RETRY_DELAY_MS_DEFAULT = 1000


def _is_empty(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, (list, dict, str)) and not payload:
        return True
    return False


class FetchWithFallback:
    """
    Network fetch with fixed-delay retries and a cache fallback.

    On any fetch-group failure the cached payload wins immediately if one
    exists. Without a cache the fetch is retried `max_retries` times, waiting
    `retry_delay_ms` between attempts, and the last error propagates. A fresh
    payload is written through to the cache before it is returned.

    At most one run per domain is in flight: fetchers built for the same
    domain share `lock`, so a user-triggered load waits for a timer refresh
    (and vice versa) instead of racing it.

    `on_alert` is the blocking user-facing error hook; it only fires for
    non-silent runs that end without data, and each firing bumps
    `error_count`.
    """

    def __init__(
        self,
        name: str,
        load_cached: Callable[[], Any],
        save: Callable[[Any], Any],
        *,
        sleep: Callable[[float], None] = time.sleep,
        on_alert: Optional[Callable[[str, Exception], None]] = None,
        lock: Optional[threading.Lock] = None,
    ):
        self.name = name
        self.lock = lock if lock is not None else threading.Lock()
        self.load_cached = load_cached
        self.save = save
        self.sleep = sleep
        self.on_alert = on_alert
        self.error_count = 0
        self.attempts = 0

    def _attempt(self, fetch_fn, parse_fn, require_non_empty: bool):
        try:
            raw = fetch_fn()
        except FetchError:
            raise
        except Exception as ex:
            raise NetworkError(str(ex)) from ex
        try:
            payload = parse_fn(raw) if parse_fn is not None else raw
        except FetchError:
            raise
        except Exception as ex:
            raise ParseError(str(ex)) from ex
        if require_non_empty and _is_empty(payload):
            raise EmptyResultError(f"{self.name}: empty result")
        return payload

    def run(
        self,
        fetch_fn: Callable[[], Any],
        parse_fn: Optional[Callable[[Any], Any]] = None,
        *,
        silent: bool = False,
        max_retries: int = MAX_RETRIES_DEFAULT,
        retry_delay_ms: int = RETRY_DELAY_MS_DEFAULT,
        require_non_empty: bool = True,
    ) -> Any:
        with self.lock:
            return self._run(fetch_fn, parse_fn, silent, max_retries, retry_delay_ms, require_non_empty)

    def _run(self, fetch_fn, parse_fn, silent, max_retries, retry_delay_ms, require_non_empty) -> Any:
        self.attempts = 0
        attempt = 0
        while True:
            attempt += 1
            self.attempts = attempt
            try:
                payload = self._attempt(fetch_fn, parse_fn, require_non_empty)
            except FetchError as ex:
                cached = self.load_cached()
                if cached is not None:
                    json_log(
                        "warning",
                        "fetch.fallback_to_cache",
                        domain=self.name,
                        attempt=attempt,
                        error=str(ex),
                        error_type=type(ex).__name__,
                    )
                    return cached
                if attempt <= max_retries:
                    json_log(
                        "info",
                        "fetch.retry",
                        domain=self.name,
                        attempt=attempt,
                        delay_ms=retry_delay_ms,
                        error=str(ex),
                    )
                    self.sleep(retry_delay_ms / 1000.0)
                    continue
                json_log("error", "fetch.failed", domain=self.name, attempts=attempt, silent=silent, error=str(ex))
                if not silent:
                    self.error_count += 1
                    if self.on_alert is not None:
                        self.on_alert(self.name, ex)
                raise
            try:
                self.save(payload)
            except QuotaError as ex:
                json_log("warning", "fetch.cache_write_failed", domain=self.name, error=str(ex))
            return payload
