from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from ...jsonlog import json_log
from ..payment_guards import remaining_balance
from ..upstream import get_webhook, post_webhook
from ..validation import CustomerName, Money, NonNegativeMoney, ReceiptId
from .customers import NO_CACHE_HEADERS

router = APIRouter(prefix="/api", tags=["receipts"])

SAVE_RECEIPT_TIMEOUT_S = 25.0


@router.get("/receipts")
def get_receipts(customer: Optional[str] = Query(default=None)):
    if not (customer or "").strip():
        raise HTTPException(status_code=400, detail="Customer name is required")
    data = get_webhook({"action": "getReceipts", "customer": customer.strip()})
    return JSONResponse(content=data, headers=NO_CACHE_HEADERS)


class ReceiptIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    customerName: CustomerName
    items: List[Dict[str, Any]]
    grandTotal: Money


@router.post("/save-receipt")
def save_receipt(data: ReceiptIn):
    payload = data.model_dump()
    result = post_webhook(payload, timeout_s=SAVE_RECEIPT_TIMEOUT_S)
    json_log("info", "receipts.saved", customer=data.customerName, receipt_id=payload.get("receiptId"))
    return JSONResponse(
        content={"success": True, "message": "Receipt saved successfully", **result},
        headers={"Cache-Control": "no-cache, no-store, must-revalidate, max-age=0"},
    )


class ReceiptRefIn(BaseModel):
    customerName: CustomerName
    receiptId: Optional[ReceiptId] = None
    receiptIndex: Optional[int] = None


def _ref_fields(data: ReceiptRefIn) -> Dict[str, Any]:
    # Stable ids win; ordinals are only for receipts saved before ids existed.
    if data.receiptId:
        return {"receiptId": data.receiptId}
    if data.receiptIndex is None:
        raise HTTPException(status_code=400, detail="receiptId or receiptIndex is required")
    if data.receiptIndex < 0:
        raise HTTPException(status_code=400, detail="receiptIndex must be >= 0")
    return {"receiptIndex": data.receiptIndex}


class PaymentsIn(BaseModel):
    cash: NonNegativeMoney = 0
    online: NonNegativeMoney = 0


class UpdatePaymentIn(ReceiptRefIn):
    payments: PaymentsIn
    grandTotal: Optional[Money] = None


@router.post("/update-receipt-payment")
def update_receipt_payment(data: UpdatePaymentIn):
    ref = _ref_fields(data)
    payload: Dict[str, Any] = {
        "action": "updateReceiptPayment",
        "customerName": data.customerName,
        **ref,
        "payments": {"cash": data.payments.cash, "online": data.payments.online},
    }
    if data.grandTotal is not None:
        remaining = remaining_balance(
            Decimal(str(data.grandTotal)),
            Decimal(str(data.payments.cash)),
            Decimal(str(data.payments.online)),
        )
        payload["remainingBalance"] = float(remaining)
    result = post_webhook(payload)
    json_log("info", "receipts.payment_updated", customer=data.customerName, **ref)
    return {"success": True, "message": "Payment updated successfully", **result}


@router.post("/delete-receipt")
def delete_receipt(data: ReceiptRefIn):
    ref = _ref_fields(data)
    result = post_webhook({"action": "deleteReceipt", "customerName": data.customerName, **ref})
    json_log("info", "receipts.deleted", customer=data.customerName, **ref)
    return {"success": True, "message": "Receipt deleted successfully", **result}
