from typing import Optional

import pytest
from pydantic import BaseModel, ValidationError

from backend.app.validation import CustomerName, Money, NonNegativeMoney, Password, ReceiptId


class _M(BaseModel):
    customer: CustomerName
    receipt_id: Optional[ReceiptId] = None
    password: Optional[Password] = None


def test_customer_name_is_stripped():
    m = _M(customer="  Alice ", password=" pw ")
    assert m.customer == "Alice"
    assert m.password == "pw"


def test_blank_customer_name_rejected():
    with pytest.raises(ValidationError):
        _M(customer="   ")


def test_receipt_id_accepts_uuid():
    m = _M(customer="Alice", receipt_id="9B1DEB4D-3B7D-4BAD-9BDD-2B0D7B3DCB6D")
    assert m.receipt_id == "9B1DEB4D-3B7D-4BAD-9BDD-2B0D7B3DCB6D"


@pytest.mark.parametrize("bad", ["0", "not-a-uuid", "9b1deb4d3b7d4bad9bdd2b0d7b3dcb6d"])
def test_receipt_id_rejects_ordinals_and_junk(bad):
    with pytest.raises(ValidationError):
        _M(customer="Alice", receipt_id=bad)


class _Amounts(BaseModel):
    total: Money
    paid: NonNegativeMoney = 0


@pytest.mark.parametrize("bad", [{"total": float("nan")}, {"total": float("inf")}, {"total": 1, "paid": -0.5}])
def test_amounts_must_be_finite_and_non_negative(bad):
    with pytest.raises(ValidationError):
        _Amounts(**bad)


def test_amounts_accept_plain_numbers():
    assert _Amounts(total="12.5", paid=0).total == 12.5
