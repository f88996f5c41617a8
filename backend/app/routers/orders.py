from typing import Any, Dict, List

from fastapi import APIRouter
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict

from ...jsonlog import json_log
from ..config import settings
from ..upstream import fetch_csv, post_webhook, require_config
from ..validation import CustomerName, Money
from .customers import NO_CACHE_HEADERS

router = APIRouter(prefix="/api", tags=["orders"])


@router.get("/customer-orders")
def get_customer_orders():
    url = require_config(settings.customers_orders_url, "CUSTOMERS_ORDERS")
    body = fetch_csv(url, name="customer orders")
    return Response(content=body, media_type="text/csv; charset=utf-8", headers=NO_CACHE_HEADERS)


class OrderIn(BaseModel):
    # Order documents are stored verbatim in the sheet; unknown fields pass through.
    model_config = ConfigDict(extra="allow")

    customerName: CustomerName
    items: List[Dict[str, Any]]
    grandTotal: Money


@router.post("/save-order")
def save_order(data: OrderIn):
    payload = data.model_dump()
    result = post_webhook({"action": "saveOrder", **payload})
    json_log("info", "orders.saved", customer=data.customerName, receipt_id=payload.get("receiptId"))
    return {"success": True, "message": "Order saved successfully", **result}


class ApproveOrderIn(BaseModel):
    customerName: CustomerName
    approved: bool


@router.post("/approve-order")
def approve_order(data: ApproveOrderIn):
    result = post_webhook({"action": "approveOrder", "customerName": data.customerName, "approved": data.approved})
    json_log("info", "orders.reviewed", customer=data.customerName, approved=data.approved)
    message = "Order approved successfully" if data.approved else "Order rejected successfully"
    return {"success": True, "message": message, **result}
