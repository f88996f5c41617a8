"""
Application context for the POS client.

One AppContext is built at startup and handed to every screen/command. It
owns the key-value store, the API client, the login session, the four
timestamped caches with their fetchers, and the in-memory session state
(products, customers, receipts, pending order, special prices).
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..jsonlog import json_log
from .api import StoreApiClient
from .auth import CUSTOMER, STORE, AuthSession
from .cache import (
    CustomerCache,
    PendingOrderCache,
    ProductCache,
    ReceiptsCache,
    TimestampedCache,
    epoch_ms,
    same_identity,
)
from .cart import Cart, search_products
from .config import ClientSettings, client_settings
from .errors import AuthError, QuotaError, ReceiptNotFoundError
from .fetch import FetchWithFallback
from .kvstore import KeyValueStore, SqliteKeyValueStore
from .models import Payments, Product
from .receipts import (
    DEFAULT_STORE_NAME,
    ReceiptRef,
    apply_payment,
    build_pending_order,
    build_receipt,
    find_receipt_index,
    receipt_ref_of,
    sort_receipts_newest_first,
    validate_payment,
)
from .report import filter_receipts, summarize
from .scheduler import RefreshDomain, RefreshScheduler
from .sheets import parse_all_receipts, parse_customer_orders, parse_customer_receipts, parse_customers, parse_products

PRODUCTS = "products"
CUSTOMERS = "customers"
RECEIPTS = "receipts"
PENDING_ORDER = "pendingOrder"


class AppContext:
    def __init__(
        self,
        store: KeyValueStore,
        api: StoreApiClient,
        *,
        now_ms: Callable[[], int] = epoch_ms,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
        on_alert: Optional[Callable[[str, Exception], None]] = None,
        store_name: str = DEFAULT_STORE_NAME,
    ):
        self.store = store
        self.api = api
        self.clock = clock
        self.store_name = store_name
        self.cache = TimestampedCache(store, now_ms)
        self.auth = AuthSession(store, now_ms)

        self.products_cache = ProductCache(self.cache)
        self.customers_cache = CustomerCache(self.cache)
        self.receipts_cache = ReceiptsCache(self.cache)
        self.pending_cache = PendingOrderCache(self.cache)

        self.products: List[Product] = []
        self.customers: List[Dict[str, str]] = []
        # Receipts in sheet column order; `receipts` is the same set newest first.
        self.receipt_columns: List[Dict[str, Any]] = []
        self.receipts: List[Dict[str, Any]] = []
        self.receipts_owner: Optional[str] = None
        self.pending_order: Optional[Dict[str, Any]] = None
        self.special_prices: Dict[str, float] = {}

        self._sleep = sleep
        self._on_alert = on_alert
        # One in-flight fetch per domain, shared by user loads and timer refreshes.
        self.fetch_locks = {name: threading.Lock() for name in (PRODUCTS, CUSTOMERS, RECEIPTS, PENDING_ORDER)}
        self.products_fetch = self._fetcher(PRODUCTS, self.products_cache.load, self.products_cache.save)
        self.customers_fetch = self._fetcher(CUSTOMERS, self._cached_customers, self._save_customers)

    def _fetcher(self, name: str, load_cached, save) -> FetchWithFallback:
        return FetchWithFallback(
            name, load_cached, save, sleep=self._sleep, on_alert=self._on_alert, lock=self.fetch_locks[name]
        )

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None, **kwargs) -> "AppContext":
        settings = settings or client_settings
        return cls(
            SqliteKeyValueStore(settings.cache_db),
            StoreApiClient(settings.api_base_url, timeout_s=settings.http_timeout_s),
            store_name=settings.store_name,
            **kwargs,
        )

    # Identity

    def require_identity(self) -> str:
        identity = self.auth.identity
        if not identity:
            raise AuthError("not logged in")
        return identity

    def require_store(self) -> None:
        if self.auth.auth_type != STORE:
            raise AuthError("store login required")

    def _receipts_owner(self, customer_name: Optional[str]) -> str:
        identity = self.require_identity()
        if self.auth.auth_type == CUSTOMER:
            if customer_name and not same_identity(customer_name, identity):
                raise AuthError("customers can only access their own receipts")
            return identity
        if not customer_name:
            raise ValueError("customer name is required")
        return customer_name

    def login(self, password: str) -> Dict[str, Any]:
        return self.auth.login(self.api, password)

    def logout(self) -> None:
        """Forget the session and every identity-scoped cache."""
        self.auth.logout()
        self.customers_cache.flush()
        self.receipts_cache.flush()
        self.pending_cache.flush()
        self.customers = []
        self.receipt_columns = []
        self.receipts = []
        self.receipts_owner = None
        self.pending_order = None
        self.special_prices = {}

    # Products

    def load_products(self, silent: bool = False) -> List[Product]:
        payload = self.products_fetch.run(self.api.fetch_products_csv, parse_products, silent=silent)
        self.products = [Product.from_dict(p) for p in payload]
        self.products_cache.touch_last_view()
        return self.products

    def cached_products(self) -> List[Product]:
        payload = self.products_cache.load()
        self.products = [Product.from_dict(p) for p in payload] if payload else []
        return self.products

    def ensure_products(self, silent: bool = True) -> List[Product]:
        """Paint from cache first, then refetch only when the cache is stale or missing."""
        if self.cached_products() and not self.products_cache.is_stale():
            return self.products
        return self.load_products(silent=silent)

    def search(self, query: str) -> List[Product]:
        return search_products(self.products, query)

    # Customers

    def _cached_customers(self) -> Optional[Dict[str, Any]]:
        names = self.customers_cache.load(self.require_identity())
        if names is None:
            return None
        return {"csv": self.customers_cache.load_raw() or "", "customers": names}

    def _save_customers(self, payload: Dict[str, Any]) -> bool:
        return self.customers_cache.save(self.require_identity(), payload["customers"], payload["csv"])

    def load_customers(self, silent: bool = False) -> List[Dict[str, str]]:
        self.require_store()
        payload = self.customers_fetch.run(
            self.api.fetch_customers_csv,
            lambda raw: {"csv": raw, "customers": parse_customers(raw)},
            silent=silent,
        )
        self.customers = payload["customers"]
        return self.customers

    # Receipts

    def _receipts_fetcher(self, owner: str) -> FetchWithFallback:
        return self._fetcher(
            RECEIPTS,
            lambda: self.receipts_cache.load(owner),
            lambda receipts: self.receipts_cache.save(owner, receipts),
        )

    def load_receipts(self, customer_name: Optional[str] = None, silent: bool = False) -> List[Dict[str, Any]]:
        owner = self._receipts_owner(customer_name)
        receipts = self._receipts_fetcher(owner).run(
            self.api.fetch_customers_receipts_csv,
            lambda raw: parse_customer_receipts(raw, owner),
            silent=silent,
            require_non_empty=False,
        )
        self._set_receipts(owner, receipts)
        return self.receipts

    def _set_receipts(self, owner: str, columns: List[Dict[str, Any]]) -> None:
        self.receipt_columns = list(columns)
        self.receipts = sort_receipts_newest_first(self.receipt_columns)
        self.receipts_owner = owner

    def _owns_receipts(self, customer_name: str) -> bool:
        return self.receipts_owner is not None and same_identity(self.receipts_owner, customer_name)

    def _receipt_columns_for(self, owner: str) -> List[Dict[str, Any]]:
        if self._owns_receipts(owner):
            return self.receipt_columns
        cached = self.receipts_cache.load(owner)
        if cached is not None:
            self._set_receipts(owner, cached)
            return self.receipt_columns
        self.load_receipts(owner if self.auth.auth_type == STORE else None, silent=True)
        return self.receipt_columns

    # Pending order

    def _cached_pending(self, identity: str) -> Optional[Dict[str, Any]]:
        rec = self.pending_cache.load_record(identity)
        if rec is None:
            return None
        return {"order": rec.payload, "specialPrices": self.pending_cache.load_special_prices(identity)}

    def load_pending_order(self, silent: bool = False) -> Optional[Dict[str, Any]]:
        identity = self.require_identity()
        if self.auth.auth_type != CUSTOMER:
            raise AuthError("customer login required")

        def parse(raw):
            entry = parse_customer_orders(raw).get(identity.strip().upper())
            if entry is None:
                return {"order": None, "specialPrices": {}}
            return {"order": entry.order, "specialPrices": entry.special_prices}

        fetcher = self._fetcher(
            PENDING_ORDER,
            lambda: self._cached_pending(identity),
            lambda p: self.pending_cache.save(identity, p["order"], p["specialPrices"]),
        )
        payload = fetcher.run(self.api.fetch_customer_orders_csv, parse, silent=silent, require_non_empty=False)
        self.pending_order = payload["order"]
        self.special_prices = dict(payload["specialPrices"] or {})
        return self.pending_order

    def pending_orders(self) -> Dict[str, Dict[str, Any]]:
        """Store view: every customer with an order awaiting approval."""
        self.require_store()
        rows = parse_customer_orders(self.api.fetch_customer_orders_csv())
        return {e.customer_name: e.order for e in rows.values() if e.order}

    # Cart and writes

    def new_cart(self) -> Cart:
        return Cart(special_prices=self.special_prices)

    def checkout(self, cart: Cart, customer_name: str) -> Dict[str, Any]:
        self.require_store()
        receipt = build_receipt(cart, customer_name, self.clock(), store_name=self.store_name)
        self.api.save_receipt(receipt)
        json_log("info", "pos.receipt_saved", customer=customer_name, receipt_id=receipt["receiptId"])
        cached = self.receipts_cache.load(customer_name)
        if cached is not None:
            self.receipts_cache.save(customer_name, cached + [receipt])
        if self._owns_receipts(customer_name):
            self._set_receipts(self.receipts_owner, self.receipt_columns + [receipt])
        cart.clear()
        return receipt

    def place_order(self, cart: Cart) -> Dict[str, Any]:
        identity = self.require_identity()
        if self.auth.auth_type != CUSTOMER:
            raise AuthError("customer login required")
        order = build_pending_order(cart, identity, self.clock(), store_name=self.store_name)
        self.api.save_order(order)
        # A new order replaces the previous pending one.
        self.pending_order = order
        self.pending_cache.save(identity, order, self.special_prices)
        cart.clear()
        json_log("info", "pos.order_placed", customer=identity, receipt_id=order["receiptId"])
        return order

    def approve_order(self, customer_name: str, approved: bool) -> Dict[str, Any]:
        self.require_store()
        result = self.api.approve_order(customer_name, approved)
        # Approval turns the order into a receipt on the sheet side.
        if self.receipts_cache.load(customer_name) is not None:
            self.receipts_cache.flush()
        return result

    def delete_customer(self, customer_name: str) -> Dict[str, Any]:
        self.require_store()
        result = self.api.delete_customer(customer_name)
        self.customers_cache.flush()
        self.customers = [c for c in self.customers if not same_identity(c.get("name"), customer_name)]
        if self.receipts_cache.load(customer_name) is not None:
            self.receipts_cache.flush()
        return result

    def delete_receipt(self, customer_name: str, receipt_ref: ReceiptRef) -> Dict[str, Any]:
        self.require_store()
        result = self.api.delete_receipt(customer_name, receipt_ref)
        # Ordinals shift after a delete; drop the cache instead of patching it.
        self.receipts_cache.flush()
        if self._owns_receipts(customer_name):
            columns = self.receipt_columns
            try:
                idx = find_receipt_index(columns, receipt_ref)
            except ReceiptNotFoundError:
                return result
            self._set_receipts(self.receipts_owner, columns[:idx] + columns[idx + 1:])
        return result

    def update_special_prices(self, customer_name: str, special_prices: Dict[str, float]) -> Dict[str, Any]:
        self.require_store()
        return self.api.update_special_prices(customer_name, special_prices)

    def record_payment(
        self,
        customer_name: str,
        receipt_ref: ReceiptRef,
        payments: Union[Payments, Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Record cash/online payments against one receipt.

        `receipt_ref` is the receipt's stable id, or for receipts that predate
        ids, its ordinal among the customer's receipt columns. Overpayment is
        rejected before anything is sent or written. The sheet is updated
        first; the cached copy is patched afterwards on a best-effort basis.
        """
        if not isinstance(payments, Payments):
            payments = Payments.from_dict(payments)
        owner = self._receipts_owner(customer_name)
        # Ordinals count sheet columns, so they resolve against column order.
        columns = self._receipt_columns_for(owner)
        idx = find_receipt_index(columns, receipt_ref)
        target = columns[idx]
        validate_payment(target.get("grandTotal"), payments)

        # From here on the receipt is addressed by its own id, not the caller's ordinal.
        ref = receipt_ref_of(target)
        if ref is None:
            ref = receipt_ref
        self.api.update_receipt_payment(owner, ref, payments.to_dict(), grand_total=target.get("grandTotal"))
        updated = apply_payment(target, payments)
        self._set_receipts(owner, columns[:idx] + [updated] + columns[idx + 1:])
        try:
            if not self.receipts_cache.apply_payment(owner, ref, payments.to_dict()):
                json_log("warning", "pos.payment_cache_miss", customer=owner, receipt_ref=ref)
        except QuotaError as ex:
            json_log("warning", "pos.payment_cache_failed", customer=owner, error=str(ex))
        json_log(
            "info",
            "pos.payment_recorded",
            customer=owner,
            receipt_ref=ref,
            remaining_balance=updated["remainingBalance"],
        )
        return updated

    # Reporting

    def all_receipts(self) -> List[Dict[str, Any]]:
        self.require_store()
        raw = self.customers_cache.load_raw()
        if raw is None:
            raw = self.api.fetch_customers_csv()
            self.customers_cache.save(self.require_identity(), parse_customers(raw), raw)
        return parse_all_receipts(raw)

    def sales_report(self, kind: str = "all", value: Optional[str] = None) -> Dict[str, Any]:
        receipts = filter_receipts(self.all_receipts(), kind, value)
        stats = summarize(receipts, self.products or self.cached_products())
        return {"filter": {"type": kind, "value": value}, **stats}

    # Refresh

    def flush_all(self) -> None:
        self.products_cache.flush()
        self.customers_cache.flush()
        self.receipts_cache.flush()
        self.pending_cache.flush()

    def build_scheduler(self, interval_ms: Optional[int] = None) -> RefreshScheduler:
        scheduler = RefreshScheduler(interval_ms) if interval_ms is not None else RefreshScheduler()
        scheduler.register(
            RefreshDomain(
                PRODUCTS,
                flush=self.products_cache.flush,
                fetch=lambda: self.load_products(silent=True),
                is_stale=self.products_cache.is_stale,
            )
        )
        auth_type = self.auth.auth_type
        if auth_type == STORE:
            scheduler.register(
                RefreshDomain(
                    CUSTOMERS,
                    flush=self.customers_cache.flush,
                    fetch=lambda: self.load_customers(silent=True),
                    is_stale=lambda: self.customers_cache.is_stale(self.require_identity()),
                )
            )
        elif auth_type == CUSTOMER:
            scheduler.register(
                RefreshDomain(
                    RECEIPTS,
                    flush=self.receipts_cache.flush,
                    fetch=lambda: self.load_receipts(silent=True),
                    is_stale=lambda: self.receipts_cache.is_stale(self.require_identity()),
                )
            )
            scheduler.register(
                RefreshDomain(
                    PENDING_ORDER,
                    flush=self.pending_cache.flush,
                    fetch=lambda: self.load_pending_order(silent=True),
                    is_stale=lambda: self.pending_cache.is_stale(self.require_identity()),
                )
            )
        return scheduler
