"""
Calls to the spreadsheet: published CSV exports (reads) and the Apps Script
webhook (writes). Both are plain HTTP; errors surface as UpstreamError and
are rendered by the handler in `main.py`.
"""

import json
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from ..jsonlog import json_log
from .config import settings

USER_AGENT = "Mozilla/5.0 (compatible; POS-System/1.0)"


class UpstreamError(Exception):
    def __init__(self, status_code: int, error: str, **extra):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.extra = extra


def require_config(value: str, name: str) -> str:
    if not value:
        raise UpstreamError(500, f"{name} not configured")
    return value


def looks_like_html(body: str) -> bool:
    head = (body or "").lstrip()[:200].lower()
    return head.startswith("<!doctype html") or head.startswith("<html") or "<html" in head


def fetch_csv(url: str, *, name: str) -> str:
    req = urllib.request.Request(url, headers={"Accept": "text/csv", "User-Agent": USER_AGENT}, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=settings.upstream_timeout_s) as resp:
            body = resp.read().decode("utf-8")
    except urllib.error.HTTPError as ex:
        json_log("error", "upstream.csv_http_error", source=name, status=ex.code)
        raise UpstreamError(500, f"Failed to fetch {name}: {ex.code} {ex.reason}") from ex
    except (urllib.error.URLError, socket.timeout, TimeoutError) as ex:
        json_log("error", "upstream.csv_unreachable", source=name, error=str(ex))
        raise UpstreamError(500, f"Failed to fetch {name}: {ex}") from ex
    if looks_like_html(body):
        # Sheets serves a login/error page instead of CSV when the tab is not published.
        json_log("error", "upstream.csv_is_html", source=name)
        raise UpstreamError(
            500,
            f"{name} returned HTML instead of CSV",
            hint="Publish the sheet to the web as CSV and use the export URL.",
        )
    return body


def _decode(body: str) -> Dict[str, Any]:
    if not body:
        return {}
    try:
        out = json.loads(body)
    except ValueError:
        return {"raw": body}
    return out if isinstance(out, dict) else {"result": out}


def post_webhook(payload: Dict[str, Any], *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
    url = require_config(settings.sheets_webhook_url, "SHEETS_WEBHOOK_URL")
    data = json.dumps(payload, default=str).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s or settings.upstream_timeout_s) as resp:
            body = resp.read().decode("utf-8") if resp else ""
    except urllib.error.HTTPError as ex:
        json_log("error", "upstream.webhook_http_error", action=payload.get("action"), status=ex.code)
        raise UpstreamError(500, f"Webhook request failed: {ex.code} {ex.reason}") from ex
    except (socket.timeout, TimeoutError) as ex:
        json_log("error", "upstream.webhook_timeout", action=payload.get("action"))
        raise UpstreamError(500, "Request timed out - please check your network connection") from ex
    except urllib.error.URLError as ex:
        if isinstance(ex.reason, (socket.timeout, TimeoutError)):
            raise UpstreamError(500, "Request timed out - please check your network connection") from ex
        json_log("error", "upstream.webhook_unreachable", action=payload.get("action"), error=str(ex))
        raise UpstreamError(500, f"Webhook request failed: {ex.reason}") from ex
    return _decode(body)


def get_webhook(params: Dict[str, Any]) -> Dict[str, Any]:
    base = require_config(settings.sheets_webhook_url, "SHEETS_WEBHOOK_URL")
    url = base.replace("/exec", "") + "?" + urlencode(params, quote_via=quote)
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=settings.upstream_timeout_s) as resp:
            body = resp.read().decode("utf-8")
    except urllib.error.HTTPError as ex:
        raise UpstreamError(500, f"Failed to fetch receipts: {ex.code} {ex.reason}") from ex
    except (urllib.error.URLError, socket.timeout, TimeoutError) as ex:
        raise UpstreamError(500, f"Failed to fetch receipts: {ex}") from ex
    try:
        return json.loads(body)
    except ValueError as ex:
        raise UpstreamError(500, "Webhook returned invalid JSON") from ex
