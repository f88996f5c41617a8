import json
import secrets
from typing import Any, Dict, Optional

from ..jsonlog import json_log
from .cache import epoch_ms
from .errors import AuthError, QuotaError

AUTH_STORAGE_KEY = "storeAuth"
SESSION_TTL_MS = 24 * 60 * 60 * 1000

STORE = "store"
CUSTOMER = "customer"


def generate_token(now_ms: int) -> str:
    return f"auth_{now_ms}_{secrets.token_hex(6)}"


class AuthSession:
    """Login state persisted under `storeAuth` as {token, expires, type, customerName}."""

    def __init__(self, store, now_ms=epoch_ms):
        self.store = store
        self.now_ms = now_ms

    def _read(self) -> Optional[Dict[str, Any]]:
        raw = self.store.get(AUTH_STORAGE_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def current(self) -> Optional[Dict[str, Any]]:
        data = self._read()
        if data is None:
            return None
        try:
            expires = int(data.get("expires") or 0)
        except (TypeError, ValueError):
            expires = 0
        if expires <= self.now_ms():
            self.clear()
            return None
        return data

    def set_authenticated(self, auth_type: str = STORE, customer_name: Optional[str] = None) -> Dict[str, Any]:
        if auth_type not in (STORE, CUSTOMER):
            raise ValueError(f"unknown auth type: {auth_type}")
        if auth_type == CUSTOMER and not customer_name:
            raise ValueError("customer sessions need a customer name")
        now = self.now_ms()
        data = {
            "token": generate_token(now),
            "expires": now + SESSION_TTL_MS,
            "type": auth_type,
            "customerName": customer_name if auth_type == CUSTOMER else None,
        }
        try:
            self.store.set(AUTH_STORAGE_KEY, json.dumps(data))
        except QuotaError as ex:
            json_log("warning", "auth.persist_failed", error=str(ex))
        return data

    def clear(self) -> None:
        self.store.remove(AUTH_STORAGE_KEY)

    @property
    def is_authenticated(self) -> bool:
        return self.current() is not None

    @property
    def auth_type(self) -> Optional[str]:
        data = self.current()
        return data.get("type") if data else None

    @property
    def identity(self) -> Optional[str]:
        """Customer name for customer sessions, "store" for the store session."""
        data = self.current()
        if data is None:
            return None
        if data.get("type") == CUSTOMER:
            return data.get("customerName")
        return STORE

    def login(self, api, password: str) -> Dict[str, Any]:
        if not (password or "").strip():
            raise AuthError("password is required")
        result = api.verify_password(password)
        if not result.get("success"):
            json_log("info", "auth.login_failed")
            raise AuthError(result.get("error") or "Incorrect password")
        auth_type = result.get("type") or STORE
        data = self.set_authenticated(auth_type, result.get("customerName"))
        json_log("info", "auth.login", type=auth_type, customer=data.get("customerName"))
        return data

    def logout(self) -> None:
        self.clear()
