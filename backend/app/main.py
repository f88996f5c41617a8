from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import time
import uuid
from datetime import datetime, timezone
from ..jsonlog import json_log
from .config import settings
from .upstream import UpstreamError
from .routers.products import router as products_router
from .routers.customers import router as customers_router
from .routers.orders import router as orders_router
from .routers.receipts import router as receipts_router
from .routers.auth import router as auth_router

app = FastAPI(title="Store POS Sheets API", version=settings.api_version)
STARTED_AT_UTC = datetime.now(timezone.utc)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


@app.exception_handler(UpstreamError)
def _upstream_error(req: Request, exc: UpstreamError):
    json_log(
        "error",
        "http.upstream_error",
        request_id=_current_request_id(req),
        path=req.url.path,
        error=exc.error,
    )
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.error, **exc.extra})


@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: Exception):
    content = {"detail": "validation failed"}
    if settings.env in {"local", "dev"} and hasattr(exc, "errors"):
        # Raw inputs may hold NaN, which JSONResponse refuses to encode.
        content["errors"] = [{k: v for k, v in e.items() if k not in ("input", "ctx")} for e in exc.errors()]
    return JSONResponse(status_code=422, content=content)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    rid = _current_request_id(req)
    json_log(
        "error",
        "http.request.unhandled",
        request_id=rid,
        method=req.method,
        path=req.url.path,
        error=str(exc),
    )
    content = {"success": False, "detail": "internal error", "request_id": rid}
    if settings.env in {"local", "dev"}:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)

# Correlation id + basic structured request logging.
@app.middleware("http")
async def _request_logging(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    started = time.time()
    path = request.url.path
    method = request.method
    client_ip = (request.client.host if request.client else None)

    try:
        response = await call_next(request)
    except Exception as exc:
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "error",
            "http.request.error",
            request_id=rid,
            method=method,
            path=path,
            client_ip=client_ip,
            duration_ms=dur_ms,
            error=str(exc),
        )
        raise

    response.headers["X-Request-Id"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    if path != "/health":
        dur_ms = int((time.time() - started) * 1000)
        json_log(
            "info",
            "http.request",
            request_id=rid,
            method=method,
            path=path,
            status_code=response.status_code,
            client_ip=client_ip,
            duration_ms=dur_ms,
        )
    return response

# The POS pages call the API cross-origin from phones and desktops.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(products_router)
app.include_router(customers_router)
app.include_router(orders_router)
app.include_router(receipts_router)
app.include_router(auth_router)


@app.get("/health")
def health(req: Request):
    return {
        "status": "ok",
        "env": settings.env,
        "service": "pos-sheets-api",
        "version": settings.api_version,
        "started_at": STARTED_AT_UTC.isoformat(),
        "upstreams": {
            "products": bool(settings.store_products_url),
            "customers": bool(settings.customers_url),
            "customer_orders": bool(settings.customers_orders_url),
            "webhook": bool(settings.sheets_webhook_url),
            "password": bool(settings.store_password),
        },
        "request_id": _current_request_id(req),
    }


@app.get("/meta")
def meta():
    return {
        "service": "pos-sheets-api",
        "version": settings.api_version,
        "env": settings.env,
        "uptime_seconds": int((datetime.now(timezone.utc) - STARTED_AT_UTC).total_seconds()),
        "started_at": STARTED_AT_UTC.isoformat(),
    }
