"""
Receipt and pending-order documents.

Receipts travel as plain dicts in the camelCase shape stored in the sheet:

    {receiptId, storeName, customerName, date: "DD/MM/YYYY", time: "hh:mm AM",
     items: [{name, quantity, rate, total, purchaseCost, profitMargin}],
     grandTotal, profitMargin, payments: {cash, online}, remainingBalance}

`receiptId` is a UUID assigned at creation and is the lookup key for
payments and deletes. Receipts written before ids existed only carry
`_originalIndex` (their ordinal among the customer's receipt columns); an
integer reference falls back to that ordinal.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .cart import Cart
from .errors import PaymentValidationError, ReceiptNotFoundError
from .models import Payments, Product, to_number

DEFAULT_STORE_NAME = "SHREEJI'S STORE"
PENDING_FOOTER = "Order Pending Approval"
THANK_YOU_FOOTER = "Thank you for your purchase!"

ReceiptRef = Union[int, str]

# (name, rate, total, separator) column widths.
DESKTOP_LAYOUT = (22, 8, 10, 50)
MOBILE_LAYOUT = (15, 7, 8, 35)


def new_receipt_id() -> str:
    return str(uuid.uuid4())


def format_date(now: datetime) -> str:
    return now.strftime("%d/%m/%Y")


def format_time(now: datetime) -> str:
    return now.strftime("%I:%M %p")


def build_receipt(cart: Cart, customer_name: str, now: datetime, store_name: str = DEFAULT_STORE_NAME) -> Dict[str, Any]:
    if not cart.items:
        raise ValueError("cart is empty")
    grand_total = cart.grand_total
    return {
        "receiptId": new_receipt_id(),
        "storeName": store_name,
        "customerName": customer_name,
        "date": format_date(now),
        "time": format_time(now),
        "items": [it.to_receipt_item() for it in cart.items],
        "grandTotal": grand_total,
        "profitMargin": cart.profit_margin,
        "payments": Payments().to_dict(),
        "remainingBalance": grand_total,
    }


def build_pending_order(cart: Cart, customer_name: str, now: datetime, store_name: str = DEFAULT_STORE_NAME) -> Dict[str, Any]:
    order = build_receipt(cart, customer_name, now, store_name=store_name)
    order["status"] = "pending"
    return order


def _money(v) -> Decimal:
    return Decimal(str(to_number(v)))


def paid_amount(receipt: Dict[str, Any]) -> float:
    return Payments.from_dict(receipt.get("payments")).total


def remaining_balance(receipt: Dict[str, Any]) -> float:
    if receipt.get("remainingBalance") is not None:
        return to_number(receipt.get("remainingBalance"))
    return to_number(receipt.get("grandTotal")) - paid_amount(receipt)


def validate_payment(grand_total, payments: Payments) -> None:
    cash, online, total = _money(payments.cash), _money(payments.online), _money(grand_total)
    # NaN compares as InvalidOperation in Decimal, so finiteness goes first.
    if not (cash.is_finite() and online.is_finite()):
        raise PaymentValidationError("payment amounts must be finite numbers")
    if cash < 0 or online < 0:
        raise PaymentValidationError("payment amounts must be >= 0")
    if not total.is_finite():
        raise PaymentValidationError("receipt total is not a finite number")
    if cash + online > total:
        raise PaymentValidationError(
            f"payment {payments.total:.2f} exceeds receipt total {to_number(grand_total):.2f}"
        )


def apply_payment(receipt: Dict[str, Any], payments: Union[Payments, Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of `receipt` with `payments` recorded. Rejects overpayment before touching anything."""
    if not isinstance(payments, Payments):
        payments = Payments.from_dict(payments)
    grand_total = receipt.get("grandTotal")
    validate_payment(grand_total, payments)
    remaining = _money(grand_total) - _money(payments.cash) - _money(payments.online)
    out = dict(receipt)
    out["payments"] = payments.to_dict()
    out["remainingBalance"] = float(remaining)
    return out


def find_receipt_index(receipts: List[Dict[str, Any]], ref: ReceiptRef) -> int:
    if isinstance(ref, bool):
        raise ReceiptNotFoundError(f"invalid receipt reference: {ref!r}")
    if isinstance(ref, str):
        for i, r in enumerate(receipts):
            if r.get("receiptId") == ref:
                return i
        raise ReceiptNotFoundError(f"receipt {ref!r} not found")
    if isinstance(ref, int):
        for i, r in enumerate(receipts):
            if r.get("_originalIndex") == ref:
                return i
        if 0 <= ref < len(receipts) and all("_originalIndex" not in r for r in receipts):
            return ref
        raise ReceiptNotFoundError(f"receipt at ordinal {ref} not found")
    raise ReceiptNotFoundError(f"invalid receipt reference: {ref!r}")


def find_receipt(receipts: List[Dict[str, Any]], ref: ReceiptRef) -> Dict[str, Any]:
    return receipts[find_receipt_index(receipts, ref)]


def receipt_ref_of(receipt: Dict[str, Any]) -> Optional[ReceiptRef]:
    if receipt.get("receiptId"):
        return receipt["receiptId"]
    if isinstance(receipt.get("_originalIndex"), int):
        return receipt["_originalIndex"]
    return None


def parse_receipt_datetime(receipt: Dict[str, Any]) -> Optional[datetime]:
    date_s = str(receipt.get("date") or "").strip()
    if not date_s:
        return None
    try:
        day = datetime.strptime(date_s, "%d/%m/%Y")
    except ValueError:
        return None
    time_s = str(receipt.get("time") or "").strip().upper()
    for fmt in ("%I:%M %p", "%I:%M:%S %p", "%H:%M"):
        try:
            t = datetime.strptime(time_s, fmt)
            return day.replace(hour=t.hour, minute=t.minute, second=t.second)
        except ValueError:
            continue
    return day


def sort_receipts_newest_first(receipts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    def key(r):
        dt = parse_receipt_datetime(r) or datetime.min
        idx = r.get("_originalIndex")
        # Same timestamp: lower column ordinal first.
        return (-dt.timestamp() if dt != datetime.min else float("inf"), idx if isinstance(idx, int) else 999)

    return sorted(receipts, key=key)


def total_unpaid(receipts: List[Dict[str, Any]]) -> float:
    return sum(max(0.0, remaining_balance(r)) for r in receipts)


def profit_margin_for(receipt: Dict[str, Any], products: Optional[List[Product]] = None) -> float:
    """Stored margin when present, otherwise recomputed from item costs or the product list."""
    if receipt.get("profitMargin") is not None:
        return to_number(receipt.get("profitMargin"))
    by_name = {p.name: p for p in (products or [])}
    total = 0.0
    for item in receipt.get("items") or []:
        rate = to_number(item.get("rate"))
        qty = to_number(item.get("quantity"))
        if item.get("purchaseCost") is not None:
            cost = to_number(item.get("purchaseCost"))
        else:
            p = by_name.get(item.get("name"))
            cost = (p.purchase_cost or 0.0) if p else 0.0
        total += (rate - cost) * qty
    return total


def _clip(name: str, width: int) -> str:
    name = " ".join(str(name).split())
    if len(name) > width:
        return name[: width - 3] + "..."
    return name


def format_receipt_text(receipt: Dict[str, Any], mobile: bool = False, pending: bool = False) -> str:
    name_w, rate_w, total_w, sep_w = MOBILE_LAYOUT if mobile else DESKTOP_LAYOUT
    sep = "·" * sep_w
    items = [
        it for it in (receipt.get("items") or [])
        if it and it.get("name") and it.get("rate") is not None and it.get("quantity") is not None
    ]

    lines = []
    for n, it in enumerate(items, start=1):
        prefix = f"{n}. "
        avail = name_w - len(prefix)
        rate = to_number(it.get("rate"))
        qty = it.get("quantity")
        lines.append(
            f"{prefix}{_clip(it['name'], avail).ljust(avail)} "
            f"{str(qty).rjust(2)} x {f'{rate:.2f}'.rjust(rate_w)} = {f'{rate * to_number(qty):.2f}'.rjust(total_w)}"
        )

    serial_w = len(str(len(items))) + 2
    line_w = serial_w + name_w + 1 + 2 + 1 + 1 + 1 + rate_w + 1 + 1 + 1 + total_w
    total_value = f"₹{to_number(receipt.get('grandTotal')):.2f}".rjust(line_w - name_w)
    header = "Item           Qty  Rate    Total" if mobile else "Item                  Qty    Rate      Total"
    customer = receipt.get("customerName")

    out = [
        receipt.get("storeName") or DEFAULT_STORE_NAME,
        f"Customer: {customer}" if customer else "",
        "",
        f"Date: {receipt.get('date') or ''}",
        f"Time: {receipt.get('time') or ''}",
        "",
        sep,
        header,
        sep,
        "\n".join(lines),
        sep,
        "Total".ljust(name_w) + total_value,
        sep,
        "",
        PENDING_FOOTER if pending else THANK_YOU_FOOTER,
    ]
    return "\n".join(out)
