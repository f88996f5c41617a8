import json
import socket
import time
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from ..jsonlog import json_log
from .errors import NetworkError, ParseError, WebhookError

USER_AGENT = "POS-Client/1.0"


class StoreApiClient:
    """
    HTTP client for the store proxy API. GET requests carry a `t=<epoch ms>`
    cache buster so intermediaries never serve a stale sheet export.
    """

    def __init__(self, base_url: str, timeout_s: float = 25.0):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_s = timeout_s

    def _url(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        q = dict(params or {})
        q["t"] = int(time.time() * 1000)
        return f"{self.base_url}{path}?{urlencode(q, quote_via=quote)}"

    def _open(self, req: Request) -> str:
        try:
            with urlopen(req, timeout=self.timeout_s) as resp:
                return resp.read().decode("utf-8")
        except HTTPError as ex:
            body = ""
            try:
                body = ex.read().decode("utf-8", errors="replace")
            except Exception:
                body = ""
            raise WebhookError(f"HTTP {ex.code} from {req.full_url}: {body[:200]}") from ex
        except (URLError, socket.timeout, TimeoutError, ConnectionError) as ex:
            raise NetworkError(f"request to {req.full_url} failed: {ex}") from ex

    def fetch_text(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        req = Request(self._url(path, params), headers={"User-Agent": USER_AGENT, "Accept": "text/csv"}, method="GET")
        try:
            return self._open(req)
        except WebhookError as ex:
            # GET failures are fetch failures for the cache layer.
            raise NetworkError(str(ex)) from ex

    def post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        req = Request(f"{self.base_url}{path}", data=data, headers={"User-Agent": USER_AGENT}, method="POST")
        req.add_header("Content-Type", "application/json")
        raw = self._open(req)
        try:
            result = json.loads(raw) if raw.strip() else {}
        except ValueError as ex:
            raise ParseError(f"invalid JSON from {path}") from ex
        if isinstance(result, dict) and result.get("success") is False:
            json_log("warning", "api.write_rejected", path=path, error=result.get("error"))
            raise WebhookError(str(result.get("error") or f"{path} failed"))
        return result if isinstance(result, dict) else {"result": result}

    def fetch_products_csv(self) -> str:
        return self.fetch_text("/api/products")

    def fetch_customers_csv(self) -> str:
        return self.fetch_text("/api/customers")

    def fetch_customers_receipts_csv(self) -> str:
        return self.fetch_text("/api/customers-receipts")

    def fetch_customer_orders_csv(self) -> str:
        return self.fetch_text("/api/customer-orders")

    def save_receipt(self, receipt: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/api/save-receipt", receipt)

    def save_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/api/save-order", order)

    def approve_order(self, customer_name: str, approved: bool) -> Dict[str, Any]:
        return self.post_json("/api/approve-order", {"customerName": customer_name, "approved": bool(approved)})

    def delete_customer(self, customer_name: str) -> Dict[str, Any]:
        return self.post_json("/api/delete-customer", {"customerName": customer_name})

    def delete_receipt(self, customer_name: str, receipt_ref) -> Dict[str, Any]:
        return self.post_json("/api/delete-receipt", {"customerName": customer_name, **_ref_fields(receipt_ref)})

    def update_special_prices(self, customer_name: str, special_prices: Dict[str, float]) -> Dict[str, Any]:
        return self.post_json(
            "/api/update-special-prices",
            {"customerName": customer_name, "specialPrices": special_prices},
        )

    def update_receipt_payment(
        self,
        customer_name: str,
        receipt_ref,
        payments: Dict[str, float],
        grand_total: Optional[float] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"customerName": customer_name, "payments": payments, **_ref_fields(receipt_ref)}
        if grand_total is not None:
            body["grandTotal"] = grand_total
        return self.post_json("/api/update-receipt-payment", body)

    def verify_password(self, password: str) -> Dict[str, Any]:
        try:
            return self.post_json("/api/verify-password", {"password": password})
        except WebhookError as ex:
            if "HTTP 401" in str(ex):
                return {"success": False, "error": "Incorrect password"}
            raise


def _ref_fields(receipt_ref) -> Dict[str, Any]:
    if isinstance(receipt_ref, str):
        return {"receiptId": receipt_ref}
    return {"receiptIndex": int(receipt_ref)}
