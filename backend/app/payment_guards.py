from decimal import Decimal

from fastapi import HTTPException


def assert_not_overpaid(
    grand_total: Decimal,
    cash: Decimal,
    online: Decimal,
    detail: str = "payment exceeds receipt total",
):
    if not (cash.is_finite() and online.is_finite() and grand_total.is_finite()):
        raise HTTPException(status_code=400, detail="payment amounts must be finite numbers")
    if cash < 0 or online < 0:
        raise HTTPException(status_code=400, detail="payment amounts must be >= 0")
    if (cash + online) > grand_total:
        raise HTTPException(status_code=400, detail=detail)


def remaining_balance(grand_total: Decimal, cash: Decimal, online: Decimal) -> Decimal:
    assert_not_overpaid(grand_total, cash, online)
    return grand_total - cash - online
