"""
Timestamped local caches.

Every cache record lives under two keys of the key-value store: the JSON
payload at `key` and the save time (epoch milliseconds, as a string) at
`key + "Timestamp"`. A record older than CACHE_DURATION_MS is stale; a record
with no readable timestamp is always stale so callers lean toward refetching.

Customer-facing caches wrap their payload in an envelope carrying the owning
identity. Loading under a different identity is a miss, so one customer never
sees another customer's receipts after a login switch on the same device.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..jsonlog import json_log
from .errors import IdentityMismatchError, PaymentValidationError, QuotaError
from .kvstore import KeyValueStore
from . import receipts as receipt_ops

CACHE_DURATION_MS = 300_000

PRODUCTS_CACHE_KEY = "storeProductsCache"
LAST_VIEW_KEY = "storeProductsLastView"
CUSTOMERS_CACHE_KEY = "customersCache"
CUSTOMERS_CACHE_KEY_PARSED = "customersCache_parsed"
PENDING_ORDER_CACHE_KEY = "pendingOrderCache"
RECEIPTS_CACHE_KEY = "customerReceiptsCache"

OWNER_FIELD = "customerName"


def timestamp_key(key: str) -> str:
    return key + "Timestamp"


def epoch_ms() -> int:
    return int(time.time() * 1000)


def same_identity(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return str(a).strip().upper() == str(b).strip().upper()


@dataclass(frozen=True)
class CacheRecord:
    payload: Any
    saved_at_ms: Optional[int]


class TimestampedCache:
    def __init__(self, store: KeyValueStore, now_ms: Callable[[], int] = epoch_ms):
        self.store = store
        self.now_ms = now_ms

    def save(self, key: str, payload: Any, *, stamp: bool = True, strict: bool = False) -> bool:
        """
        Write `payload` then its timestamp. Returns False when the store refused
        the write (the previous value at `key` stays in place). With strict=True
        the QuotaError propagates instead.
        """
        raw = json.dumps(payload)
        try:
            self.store.set(key, raw)
            if stamp:
                self.store.set(timestamp_key(key), str(self.now_ms()))
        except QuotaError as ex:
            json_log("warning", "cache.save_failed", key=key, error=str(ex))
            if strict:
                raise
            return False
        return True

    def load_record(self, key: str, validator: Optional[Callable[[Any], bool]] = None) -> Optional[CacheRecord]:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            json_log("warning", "cache.invalid_json", key=key)
            return None
        if validator is not None and not validator(payload):
            json_log("warning", "cache.invalid_payload", key=key)
            return None
        return CacheRecord(payload=payload, saved_at_ms=self.saved_at(key))

    def load(self, key: str, validator: Optional[Callable[[Any], bool]] = None) -> Any:
        rec = self.load_record(key, validator)
        return rec.payload if rec is not None else None

    def saved_at(self, key: str) -> Optional[int]:
        raw = self.store.get(timestamp_key(key))
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def is_stale(self, key: str, max_age_ms: int = CACHE_DURATION_MS) -> bool:
        ts = self.saved_at(key)
        if ts is None:
            return True
        return (self.now_ms() - ts) >= max_age_ms

    def flush(self, *keys: str) -> None:
        for key in keys:
            self.store.remove(key)
            self.store.remove(timestamp_key(key))


def _is_product_list(payload: Any) -> bool:
    if not isinstance(payload, list) or not payload:
        return False
    for p in payload:
        if not isinstance(p, dict):
            return False
        name = p.get("name")
        rate = p.get("rate")
        if not isinstance(name, str) or not name.strip():
            return False
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            return False
    return True


class ProductCache:
    key = PRODUCTS_CACHE_KEY

    def __init__(self, cache: TimestampedCache):
        self.cache = cache

    def save(self, products: List[Dict[str, Any]]) -> bool:
        return self.cache.save(self.key, products)

    def load(self) -> Optional[List[Dict[str, Any]]]:
        return self.cache.load(self.key, _is_product_list)

    def is_stale(self, max_age_ms: int = CACHE_DURATION_MS) -> bool:
        return self.cache.is_stale(self.key, max_age_ms)

    def flush(self) -> None:
        self.cache.flush(self.key)

    def touch_last_view(self) -> bool:
        try:
            self.cache.store.set(LAST_VIEW_KEY, str(self.cache.now_ms()))
        except QuotaError as ex:
            json_log("warning", "cache.save_failed", key=LAST_VIEW_KEY, error=str(ex))
            return False
        return True


class IdentityScopedCache:
    """Cache whose payload is only visible to the identity that saved it."""

    key: str = ""
    field: str = ""

    def __init__(self, cache: TimestampedCache):
        self.cache = cache

    def _valid_payload(self, payload: Any) -> bool:
        return True

    def _valid_envelope(self, env: Any) -> bool:
        return (
            isinstance(env, dict)
            and isinstance(env.get(OWNER_FIELD), str)
            and self.field in env
            and self._valid_payload(env[self.field])
        )

    def save(self, identity: str, payload: Any) -> bool:
        return self.cache.save(self.key, {OWNER_FIELD: identity, self.field: payload})

    def _owned_envelope(self, identity: str) -> Optional[CacheRecord]:
        rec = self.cache.load_record(self.key, self._valid_envelope)
        if rec is None:
            return None
        owner = rec.payload[OWNER_FIELD]
        if not same_identity(owner, identity):
            raise IdentityMismatchError(owner, identity)
        return rec

    def load_record(self, identity: str) -> Optional[CacheRecord]:
        """A hit may carry a None payload (cached "nothing"), which differs from a miss."""
        try:
            rec = self._owned_envelope(identity)
        except IdentityMismatchError as ex:
            json_log("info", "cache.identity_mismatch", key=self.key, owner=ex.owner, identity=ex.identity)
            return None
        if rec is None:
            return None
        return CacheRecord(payload=rec.payload[self.field], saved_at_ms=rec.saved_at_ms)

    def load(self, identity: str) -> Any:
        rec = self.load_record(identity)
        return rec.payload if rec is not None else None

    def is_stale(self, identity: Optional[str] = None, max_age_ms: int = CACHE_DURATION_MS) -> bool:
        if identity is not None and self.load_record(identity) is None:
            return True
        return self.cache.is_stale(self.key, max_age_ms)

    def flush(self) -> None:
        self.cache.flush(self.key)


class ReceiptsCache(IdentityScopedCache):
    key = RECEIPTS_CACHE_KEY
    field = "receipts"

    def _valid_payload(self, payload: Any) -> bool:
        return isinstance(payload, list) and all(isinstance(r, dict) for r in payload)

    def apply_payment(self, identity: str, receipt_ref, payments: Dict[str, float]) -> bool:
        """
        Optimistically update the cached copy of one receipt. Returns False when
        the receipt is not in the cache for this identity or the cached copy
        rejects the payment; the remote copy stays authoritative either way.
        """
        rec = self.load_record(identity)
        if rec is None:
            return False
        receipts = list(rec.payload)
        try:
            idx = receipt_ops.find_receipt_index(receipts, receipt_ref)
        except LookupError:
            json_log("warning", "cache.receipt_not_found", key=self.key, receipt_ref=receipt_ref)
            return False
        try:
            receipts[idx] = receipt_ops.apply_payment(receipts[idx], payments)
        except PaymentValidationError as ex:
            json_log("warning", "cache.payment_rejected", key=self.key, receipt_ref=receipt_ref, error=str(ex))
            return False
        return self.save(identity, receipts)


class PendingOrderCache(IdentityScopedCache):
    key = PENDING_ORDER_CACHE_KEY
    field = "order"

    def _valid_payload(self, payload: Any) -> bool:
        return payload is None or isinstance(payload, dict)

    def save(self, identity: str, order: Optional[Dict[str, Any]], special_prices: Optional[Dict[str, float]] = None) -> bool:
        return self.cache.save(
            self.key,
            {OWNER_FIELD: identity, self.field: order, "specialPrices": dict(special_prices or {})},
        )

    def load_special_prices(self, identity: str) -> Dict[str, float]:
        try:
            rec = self._owned_envelope(identity)
        except IdentityMismatchError:
            return {}
        if rec is None or not isinstance(rec.payload.get("specialPrices"), dict):
            return {}
        return rec.payload["specialPrices"]


class CustomerCache(IdentityScopedCache):
    """
    Raw customers CSV under `customersCache` plus the parsed list under
    `customersCache_parsed`. Both share `customersCacheTimestamp`.
    """

    key = CUSTOMERS_CACHE_KEY_PARSED
    raw_key = CUSTOMERS_CACHE_KEY
    field = "customers"

    def _valid_payload(self, payload: Any) -> bool:
        return isinstance(payload, list) and all(isinstance(c, dict) and c.get("name") for c in payload)

    def save(self, identity: str, customers: List[Dict[str, Any]], raw_csv: Optional[str] = None) -> bool:
        ok = self.cache.save(self.key, {OWNER_FIELD: identity, self.field: customers}, stamp=False)
        if not ok:
            return False
        return self.cache.save(self.raw_key, raw_csv if raw_csv is not None else "")

    def load_raw(self) -> Optional[str]:
        raw = self.cache.load(self.raw_key)
        return raw if isinstance(raw, str) and raw else None

    def load_record(self, identity: str) -> Optional[CacheRecord]:
        rec = super().load_record(identity)
        if rec is None:
            return None
        return CacheRecord(payload=rec.payload, saved_at_ms=self.cache.saved_at(self.raw_key))

    def is_stale(self, identity: Optional[str] = None, max_age_ms: int = CACHE_DURATION_MS) -> bool:
        if identity is not None and self.load_record(identity) is None:
            return True
        return self.cache.is_stale(self.raw_key, max_age_ms)

    def flush(self) -> None:
        self.cache.flush(self.key, self.raw_key)
