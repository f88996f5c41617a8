from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .models import Product, to_number
from .receipts import paid_amount, profit_margin_for, remaining_balance

FILTER_KINDS = ("all", "day", "month", "year")


def _receipt_date(receipt: Dict[str, Any]) -> Optional[date]:
    raw = str(receipt.get("date") or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%d/%m/%Y").date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def filter_receipts(receipts: List[Dict[str, Any]], kind: str = "all", value: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    kind=day   value "YYYY-MM-DD"
    kind=month value "YYYY-MM"
    kind=year  value "YYYY"
    """
    if kind not in FILTER_KINDS:
        raise ValueError(f"unknown filter: {kind}")
    if kind == "all":
        return list(receipts)
    if not value:
        raise ValueError(f"filter {kind} needs a value")

    if kind == "day":
        want = date.fromisoformat(value)
        match = lambda d: d == want
    elif kind == "month":
        y, m = (int(p) for p in value.split("-")[:2])
        match = lambda d: d.year == y and d.month == m
    else:
        y = int(value)
        match = lambda d: d.year == y

    out = []
    for r in receipts:
        d = _receipt_date(r)
        if d is not None and match(d):
            out.append(r)
    return out


def summarize(receipts: List[Dict[str, Any]], products: Optional[List[Product]] = None) -> Dict[str, Any]:
    sales = 0.0
    paid = 0.0
    outstanding = 0.0
    profit = 0.0
    for r in receipts:
        sales += to_number(r.get("grandTotal"))
        paid += paid_amount(r)
        outstanding += max(0.0, remaining_balance(r))
        profit += profit_margin_for(r, products)
    return {
        "count": len(receipts),
        "sales": round(sales, 2),
        "paid": round(paid, 2),
        "outstanding": round(outstanding, 2),
        "profit": round(profit, 2),
    }
