from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...client.errors import ParseError
from ...client.sheets import parse_customer_orders
from ...jsonlog import json_log
from ..config import settings
from ..security import verify_customer_password, verify_store_password
from ..upstream import UpstreamError, fetch_csv
from ..validation import Password

router = APIRouter(prefix="/api", tags=["auth"])


class VerifyPasswordIn(BaseModel):
    password: Optional[Password] = None


def _match_customer(password: str) -> Optional[str]:
    url = settings.customers_orders_url
    if not url:
        return None
    try:
        rows = parse_customer_orders(fetch_csv(url, name="customer orders"))
    except (UpstreamError, ParseError) as ex:
        # Customer logins are unavailable, but the store password still works.
        json_log("warning", "auth.customer_lookup_failed", error=str(ex))
        return None
    for entry in rows.values():
        if verify_customer_password(password, entry.password):
            return entry.customer_name
    return None


@router.post("/verify-password")
def verify_password(data: VerifyPasswordIn):
    password = data.password or ""
    if not password:
        return JSONResponse(status_code=400, content={"success": False, "error": "Password is required"})
    if not settings.store_password:
        json_log("error", "auth.not_configured")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Password verification not configured"},
        )
    if verify_store_password(password, settings.store_password):
        return {"success": True, "type": "store"}
    customer_name = _match_customer(password)
    if customer_name:
        return {"success": True, "type": "customer", "customerName": customer_name}
    json_log("info", "auth.password_rejected")
    return JSONResponse(status_code=401, content={"success": False, "error": "Incorrect password"})
