from typing import Dict

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from ...jsonlog import json_log
from ..config import settings
from ..upstream import fetch_csv, post_webhook, require_config
from ..validation import CustomerName, Money

router = APIRouter(prefix="/api", tags=["customers"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _customers_csv() -> Response:
    url = require_config(settings.customers_url, "CUSTOMERS_URL")
    body = fetch_csv(url, name="customers")
    return Response(content=body, media_type="text/csv; charset=utf-8", headers=NO_CACHE_HEADERS)


@router.get("/customers")
def get_customers():
    return _customers_csv()


@router.get("/customers-receipts")
def get_customers_receipts():
    """Same sheet as /customers: one row per customer, one RECEIPT* column per receipt."""
    return _customers_csv()


class DeleteCustomerIn(BaseModel):
    customerName: CustomerName


@router.post("/delete-customer")
def delete_customer(data: DeleteCustomerIn):
    result = post_webhook({"action": "deleteCustomer", "customerName": data.customerName})
    json_log("info", "customers.deleted", customer=data.customerName)
    return {"success": True, "message": "Customer deleted successfully", **result}


class SpecialPricesIn(BaseModel):
    customerName: CustomerName
    specialPrices: Dict[str, Money]


@router.post("/update-special-prices")
def update_special_prices(data: SpecialPricesIn):
    for name, price in data.specialPrices.items():
        if price < 0:
            raise HTTPException(status_code=400, detail=f"special price for {name!r} must be >= 0")
    result = post_webhook(
        {
            "action": "updateSpecialPrices",
            "customerName": data.customerName,
            "specialPrices": data.specialPrices,
        }
    )
    return {"success": True, "message": "Special prices updated successfully", **result}
