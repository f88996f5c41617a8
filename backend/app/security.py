import hmac
from typing import Optional
from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def is_bcrypt_hash(value: Optional[str]) -> bool:
    return bool(value) and value.startswith("$2")


def verify_store_password(password: str, configured: Optional[str]) -> bool:
    # PASSWORD may hold either the plain secret or a bcrypt hash of it.
    if not configured or not password:
        return False
    if is_bcrypt_hash(configured):
        return _pwd_context.verify(password, configured)
    return hmac.compare_digest(password.encode("utf-8"), configured.encode("utf-8"))


def verify_customer_password(password: str, stored: Optional[str]) -> bool:
    if not stored or not password:
        return False
    stored = stored.strip()
    if is_bcrypt_hash(stored):
        return _pwd_context.verify(password.strip(), stored)
    return hmac.compare_digest(password.strip().encode("utf-8"), stored.encode("utf-8"))
