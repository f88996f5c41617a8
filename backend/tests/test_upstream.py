import socket

import pytest

from backend.app import upstream
from backend.app.config import settings
from backend.app.upstream import UpstreamError, fetch_csv, get_webhook, looks_like_html, post_webhook


class _Resp:
    def __init__(self, body: str):
        self._body = body.encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_looks_like_html():
    assert looks_like_html("  <!DOCTYPE html><html>")
    assert looks_like_html("<HTML><body>")
    assert not looks_like_html("PRODUCT,RATE\nMilk,40")


def test_fetch_csv_rejects_html_page(monkeypatch):
    monkeypatch.setattr(upstream.urllib.request, "urlopen", lambda req, timeout: _Resp("<!DOCTYPE html><p>sign in"))
    with pytest.raises(UpstreamError) as exc_info:
        fetch_csv("https://sheets.example/x.csv", name="products")
    assert exc_info.value.error == "products returned HTML instead of CSV"
    assert "hint" in exc_info.value.extra


def test_post_webhook_timeout_message(monkeypatch):
    monkeypatch.setattr(settings, "sheets_webhook_url", "https://script.example/exec")

    def slow(req, timeout):
        raise socket.timeout("timed out")

    monkeypatch.setattr(upstream.urllib.request, "urlopen", slow)
    with pytest.raises(UpstreamError) as exc_info:
        post_webhook({"action": "saveOrder"}, timeout_s=1)
    assert exc_info.value.error == "Request timed out - please check your network connection"


def test_post_webhook_requires_url(monkeypatch):
    monkeypatch.setattr(settings, "sheets_webhook_url", "")
    with pytest.raises(UpstreamError) as exc_info:
        post_webhook({"action": "saveOrder"})
    assert exc_info.value.error == "SHEETS_WEBHOOK_URL not configured"


def test_get_webhook_strips_exec(monkeypatch):
    monkeypatch.setattr(settings, "sheets_webhook_url", "https://script.example/macros/s/abc/exec")
    seen = []

    def fake(req, timeout):
        seen.append(req.full_url)
        return _Resp('{"receipts": []}')

    monkeypatch.setattr(upstream.urllib.request, "urlopen", fake)
    assert get_webhook({"action": "getReceipts", "customer": "Al Noor"}) == {"receipts": []}
    assert seen == ["https://script.example/macros/s/abc?action=getReceipts&customer=Al%20Noor"]
