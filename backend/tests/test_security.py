from backend.app.security import (
    hash_password,
    is_bcrypt_hash,
    verify_customer_password,
    verify_store_password,
)


def test_store_password_plain_text():
    assert verify_store_password("open-sesame", "open-sesame") is True
    assert verify_store_password("open-sesam", "open-sesame") is False


def test_store_password_bcrypt_hash_roundtrip():
    h = hash_password("open-sesame")
    assert is_bcrypt_hash(h)
    assert verify_store_password("open-sesame", h) is True
    assert verify_store_password("wrong", h) is False


def test_unconfigured_or_empty_password_never_matches():
    assert verify_store_password("anything", "") is False
    assert verify_store_password("", "secret") is False
    assert verify_customer_password("", "") is False


def test_customer_password_ignores_surrounding_whitespace():
    assert verify_customer_password(" bob-pw ", "bob-pw\n") is True
    assert verify_customer_password("BOB-PW", "bob-pw") is False
