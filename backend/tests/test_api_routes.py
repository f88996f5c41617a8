import pytest
from fastapi.testclient import TestClient

from backend.app.config import settings
from backend.app.main import app
from backend.app.security import hash_password
from backend.app.upstream import UpstreamError
from backend.app.routers import auth as auth_routes
from backend.app.routers import customers as customers_routes
from backend.app.routers import orders as orders_routes
from backend.app.routers import products as products_routes
from backend.app.routers import receipts as receipts_routes

ORDERS_CSV = "CUSTOMER,PASSWORD,ORDER\nAlice,alice-pw,\nBob,bob-pw,\n"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(settings, "store_products_url", "https://sheets.example/products.csv")
    monkeypatch.setattr(settings, "customers_url", "https://sheets.example/customers.csv")
    monkeypatch.setattr(settings, "customers_orders_url", "https://sheets.example/orders.csv")
    monkeypatch.setattr(settings, "sheets_webhook_url", "https://script.example/macros/s/abc/exec")
    monkeypatch.setattr(settings, "store_password", "store-pw")
    return TestClient(app)


class _Webhook:
    def __init__(self, result=None):
        self.result = result if result is not None else {"ok": 1}
        self.payloads = []

    def __call__(self, payload, **kwargs):
        self.payloads.append((payload, kwargs))
        return self.result


def test_products_proxy_is_cacheable(client, monkeypatch):
    seen = []
    monkeypatch.setattr(products_routes, "fetch_csv", lambda url, name: seen.append(url) or "PRODUCT,RATE\nMilk,40\n")
    res = client.get("/api/products?t=123")
    assert res.status_code == 200
    assert res.text == "PRODUCT,RATE\nMilk,40\n"
    assert res.headers["content-type"].startswith("text/csv")
    assert res.headers["cache-control"] == "public, max-age=300"
    assert res.headers["x-request-id"]
    assert seen == ["https://sheets.example/products.csv"]


def test_missing_upstream_config_is_500(client, monkeypatch):
    monkeypatch.setattr(settings, "store_products_url", "")
    res = client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "STORE_PRODUCTS not configured"}


def test_customer_lists_are_not_cached(client, monkeypatch):
    monkeypatch.setattr(customers_routes, "fetch_csv", lambda url, name: "CUSTOMER\nAlice\n")
    for path in ("/api/customers", "/api/customers-receipts"):
        res = client.get(path)
        assert res.status_code == 200
        assert "no-store" in res.headers["cache-control"]


def test_customer_orders_html_is_rejected(client, monkeypatch):
    def html(url, name):
        raise UpstreamError(500, f"{name} returned HTML instead of CSV", hint="publish as CSV")

    monkeypatch.setattr(orders_routes, "fetch_csv", html)
    res = client.get("/api/customer-orders")
    assert res.status_code == 500
    assert res.json()["error"] == "customer orders returned HTML instead of CSV"
    assert res.json()["hint"] == "publish as CSV"


def test_receipts_requires_customer(client):
    res = client.get("/api/receipts")
    assert res.status_code == 400
    assert res.json()["detail"] == "Customer name is required"


def test_receipts_asks_webhook(client, monkeypatch):
    seen = []
    monkeypatch.setattr(receipts_routes, "get_webhook", lambda params: seen.append(params) or {"receipts": []})
    res = client.get("/api/receipts", params={"customer": "Alice"})
    assert res.status_code == 200
    assert res.json() == {"receipts": []}
    assert seen == [{"action": "getReceipts", "customer": "Alice"}]


def test_save_receipt_relays_with_timeout(client, monkeypatch):
    hook = _Webhook({"row": 4})
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    body = {"receiptId": "9b1deb4d-3b7d-4bad-9bdd-2b0d7b3dcb6d", "customerName": "Alice", "items": [], "grandTotal": 10}
    res = client.post("/api/save-receipt", json=body)
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Receipt saved successfully", "row": 4}
    payload, kwargs = hook.payloads[0]
    assert payload["receiptId"] == body["receiptId"]
    assert kwargs == {"timeout_s": 25.0}


def test_update_payment_rejects_overpayment(client, monkeypatch):
    hook = _Webhook()
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    res = client.post(
        "/api/update-receipt-payment",
        json={"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": 80, "online": 30}, "grandTotal": 100},
    )
    assert res.status_code == 400
    assert hook.payloads == []


def test_update_payment_relays_balance(client, monkeypatch):
    hook = _Webhook({})
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    res = client.post(
        "/api/update-receipt-payment",
        json={"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": 50, "online": 0}, "grandTotal": 100},
    )
    assert res.status_code == 200
    payload, _ = hook.payloads[0]
    assert payload == {
        "action": "updateReceiptPayment",
        "customerName": "Alice",
        "receiptIndex": 0,
        "payments": {"cash": 50.0, "online": 0.0},
        "remainingBalance": 50.0,
    }


@pytest.mark.parametrize(
    "body",
    [
        '{"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": NaN, "online": 0}, "grandTotal": 100}',
        '{"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": NaN, "online": 0}}',
        '{"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": 10, "online": Infinity}}',
        '{"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": 10, "online": 0}, "grandTotal": NaN}',
        '{"customerName": "Alice", "receiptIndex": 0, "payments": {"cash": -5, "online": 0}}',
    ],
)
def test_update_payment_rejects_bad_amounts(client, monkeypatch, body):
    hook = _Webhook()
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    res = client.post("/api/update-receipt-payment", content=body, headers={"Content-Type": "application/json"})
    assert res.status_code == 422
    assert res.json()["detail"] == "validation failed"
    assert hook.payloads == []


def test_save_receipt_rejects_non_finite_total(client, monkeypatch):
    hook = _Webhook()
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    body = '{"customerName": "Alice", "items": [], "grandTotal": NaN}'
    res = client.post("/api/save-receipt", content=body, headers={"Content-Type": "application/json"})
    assert res.status_code == 422
    assert hook.payloads == []


def test_stable_id_wins_over_ordinal(client, monkeypatch):
    hook = _Webhook({})
    monkeypatch.setattr(receipts_routes, "post_webhook", hook)
    rid = "9b1deb4d-3b7d-4bad-9bdd-2b0d7b3dcb6d"
    res = client.post("/api/delete-receipt", json={"customerName": "Alice", "receiptId": rid, "receiptIndex": 2})
    assert res.status_code == 200
    assert hook.payloads[0][0] == {"action": "deleteReceipt", "customerName": "Alice", "receiptId": rid}


def test_receipt_reference_required(client, monkeypatch):
    monkeypatch.setattr(receipts_routes, "post_webhook", _Webhook())
    res = client.post("/api/delete-receipt", json={"customerName": "Alice"})
    assert res.status_code == 400


def test_approve_and_special_prices_actions(client, monkeypatch):
    orders_hook = _Webhook({})
    customers_hook = _Webhook({})
    monkeypatch.setattr(orders_routes, "post_webhook", orders_hook)
    monkeypatch.setattr(customers_routes, "post_webhook", customers_hook)

    assert client.post("/api/approve-order", json={"customerName": "Alice", "approved": False}).status_code == 200
    assert orders_hook.payloads[0][0] == {"action": "approveOrder", "customerName": "Alice", "approved": False}

    assert client.post("/api/update-special-prices", json={"customerName": "Alice", "specialPrices": {"Milk": 35}}).status_code == 200
    assert client.post("/api/delete-customer", json={"customerName": "Bob"}).status_code == 200
    assert [p["action"] for p, _ in customers_hook.payloads] == ["updateSpecialPrices", "deleteCustomer"]


def test_webhook_failure_reports_error(client, monkeypatch):
    def down(payload, **kwargs):
        raise UpstreamError(500, "Request timed out - please check your network connection")

    monkeypatch.setattr(orders_routes, "post_webhook", down)
    res = client.post("/api/save-order", json={"customerName": "Alice", "items": [], "grandTotal": 0})
    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Request timed out - please check your network connection"}


def test_verify_store_password(client):
    res = client.post("/api/verify-password", json={"password": "store-pw"})
    assert res.status_code == 200
    assert res.json() == {"success": True, "type": "store"}


def test_verify_store_password_hash(client, monkeypatch):
    monkeypatch.setattr(settings, "store_password", hash_password("store-pw"))
    assert client.post("/api/verify-password", json={"password": "store-pw"}).json()["type"] == "store"


def test_verify_customer_password(client, monkeypatch):
    monkeypatch.setattr(auth_routes, "fetch_csv", lambda url, name: ORDERS_CSV)
    res = client.post("/api/verify-password", json={"password": "bob-pw"})
    assert res.json() == {"success": True, "type": "customer", "customerName": "Bob"}


def test_verify_wrong_password(client, monkeypatch):
    monkeypatch.setattr(auth_routes, "fetch_csv", lambda url, name: ORDERS_CSV)
    res = client.post("/api/verify-password", json={"password": "nope"})
    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "Incorrect password"}


def test_verify_password_survives_customer_sheet_outage(client, monkeypatch):
    def down(url, name):
        raise UpstreamError(500, "Failed to fetch customer orders")

    monkeypatch.setattr(auth_routes, "fetch_csv", down)
    assert client.post("/api/verify-password", json={"password": "nope"}).status_code == 401


def test_verify_password_edge_cases(client, monkeypatch):
    assert client.post("/api/verify-password", json={}).status_code == 400
    monkeypatch.setattr(settings, "store_password", "")
    res = client.post("/api/verify-password", json={"password": "x"})
    assert res.status_code == 500
    assert res.json()["error"] == "Password verification not configured"


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["upstreams"]["webhook"] is True
