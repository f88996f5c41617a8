from fastapi import APIRouter
from fastapi.responses import Response

from ..config import settings
from ..upstream import fetch_csv, require_config

router = APIRouter(prefix="/api", tags=["products"])


@router.get("/products")
def get_products():
    url = require_config(settings.store_products_url, "STORE_PRODUCTS")
    body = fetch_csv(url, name="products")
    # The product sheet changes rarely; let browsers and CDNs keep it for the staleness window.
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Cache-Control": "public, max-age=300"},
    )
