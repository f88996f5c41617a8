"""
Readers for the spreadsheet CSV exports and the JSON-in-a-cell convention.

JSON cells are written compact by `encode_cell` and read back by
`decode_cell`, which also accepts the older variants found in existing
sheets: a cell wrapped in an extra pair of quotes with doubled inner quotes,
and a JSON string that itself contains JSON (double encoding). An empty cell
is None in both directions.
"""

import csv
import io
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..jsonlog import json_log
from .errors import EmptyResultError, ParseError
from .models import to_number

PURCHASE_COST_HEADERS = ("PURCHASE COST", "PURCHASECOST", "PURCHASE_COST")
STOCK_HEADERS = ("STOCK INFO", "STOCKINFO", "STOCK_INFO", "STOCK", "QUANTITY", "QTY")


def encode_cell(obj: Any) -> str:
    if obj is None:
        return ""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def decode_cell(text: Optional[str]) -> Any:
    if text is None:
        return None
    s = str(text).strip()
    if not s:
        return None
    try:
        value = json.loads(s)
    except ValueError:
        legacy = s
        if len(legacy) >= 2 and legacy.startswith('"') and legacy.endswith('"'):
            legacy = legacy[1:-1]
        legacy = legacy.replace('""', '"')
        try:
            value = json.loads(legacy)
        except ValueError as ex:
            raise ParseError(f"invalid JSON cell: {s[:80]!r}") from ex
    if isinstance(value, str):
        inner = value.strip()
        if inner[:1] in ("{", "["):
            try:
                value = json.loads(inner)
            except ValueError as ex:
                raise ParseError(f"invalid double-encoded JSON cell: {inner[:80]!r}") from ex
    return value


def _read_rows(csv_text: str) -> List[List[str]]:
    if csv_text is None:
        raise ParseError("no CSV content")
    try:
        rows = list(csv.reader(io.StringIO(csv_text)))
    except csv.Error as ex:
        raise ParseError(f"malformed CSV: {ex}") from ex
    return [r for r in rows if any((c or "").strip() for c in r)]


def _normalize_headers(header: List[str]) -> List[str]:
    return [(h or "").strip().upper() for h in header]


def _records(csv_text: str) -> List[Dict[str, str]]:
    rows = _read_rows(csv_text)
    if not rows:
        return []
    headers = _normalize_headers(rows[0])
    out = []
    for row in rows[1:]:
        rec: Dict[str, str] = {}
        for i, h in enumerate(headers):
            # First column wins when a header repeats.
            if h and h not in rec:
                rec[h] = (row[i] if i < len(row) else "").strip()
        out.append(rec)
    return out


def _first(rec: Dict[str, str], names) -> Optional[str]:
    for n in names:
        v = rec.get(n)
        if v not in (None, ""):
            return v
    return None


def parse_products(csv_text: str) -> List[Dict[str, Any]]:
    products = []
    for rec in _records(csv_text):
        name = rec.get("PRODUCT") or ""
        rate_raw = rec.get("RATE") or ""
        if not name or name.upper() == "PRODUCT" or rate_raw.upper() == "RATE":
            continue
        rate = to_number(rate_raw, default=-1.0)
        if rate <= 0:
            continue
        product: Dict[str, Any] = {
            "name": name,
            "rate": rate,
            "purchaseCost": to_number(_first(rec, PURCHASE_COST_HEADERS)),
        }
        stock = _first(rec, STOCK_HEADERS)
        if stock is not None:
            product["stock"] = int(to_number(stock))
        products.append(product)
    if not products:
        raise EmptyResultError("no valid products in sheet")
    return products


def parse_customers(csv_text: str) -> List[Dict[str, str]]:
    rows = _read_rows(csv_text)
    if not rows:
        return []
    headers = _normalize_headers(rows[0])
    col = headers.index("CUSTOMER") if "CUSTOMER" in headers else 0
    seen = set()
    customers = []
    for row in rows[1:]:
        name = (row[col] if col < len(row) else "").strip()
        if not name or name.upper() == "CUSTOMER" or name in seen:
            continue
        seen.add(name)
        customers.append({"name": name})
    return customers


def _row_receipts(headers: List[str], row: List[str], customer: str) -> List[Dict[str, Any]]:
    receipts = []
    ordinal = 0
    for i, h in enumerate(headers):
        if not h.startswith("RECEIPT"):
            continue
        cell = row[i] if i < len(row) else ""
        try:
            receipt = decode_cell(cell)
        except ParseError as ex:
            json_log("warning", "sheets.receipt_cell_invalid", customer=customer, column=h, error=str(ex))
            receipt = None
        if isinstance(receipt, dict):
            receipt["_originalIndex"] = ordinal
            if receipt.get("profitMargin") is not None:
                receipt["profitMargin"] = to_number(receipt["profitMargin"])
            receipts.append(receipt)
        # Empty and invalid cells still occupy an ordinal.
        ordinal += 1
    return receipts


def _customer_col(headers: List[str]) -> int:
    return headers.index("CUSTOMER") if "CUSTOMER" in headers else 0


def parse_customer_receipts(csv_text: str, customer_name: str) -> List[Dict[str, Any]]:
    rows = _read_rows(csv_text)
    if not rows:
        return []
    headers = _normalize_headers(rows[0])
    col = _customer_col(headers)
    want = (customer_name or "").strip().upper()
    for row in rows[1:]:
        name = (row[col] if col < len(row) else "").strip()
        if name.upper() == want:
            return _row_receipts(headers, row, name)
    return []


def parse_all_receipts(csv_text: str) -> List[Dict[str, Any]]:
    rows = _read_rows(csv_text)
    if not rows:
        return []
    headers = _normalize_headers(rows[0])
    col = _customer_col(headers)
    out = []
    for row in rows[1:]:
        name = (row[col] if col < len(row) else "").strip()
        if not name or name.upper() == "CUSTOMER":
            continue
        out.extend(_row_receipts(headers, row, name))
    return out


@dataclass
class CustomerOrderRow:
    customer_name: str
    password: str = ""
    order: Optional[Dict[str, Any]] = None
    special_prices: Dict[str, float] = field(default_factory=dict)


def parse_customer_orders(csv_text: str) -> Dict[str, CustomerOrderRow]:
    """Rows of (customer, password, order JSON, special prices JSON), keyed by upper-cased customer name."""
    rows = _read_rows(csv_text)
    out: Dict[str, CustomerOrderRow] = {}
    for row in rows[1:]:
        if len(row) < 2:
            continue
        name = (row[0] or "").strip()
        if not name:
            continue
        entry = CustomerOrderRow(customer_name=name, password=(row[1] or "").strip())
        try:
            order = decode_cell(row[2] if len(row) > 2 else "")
            entry.order = order if isinstance(order, dict) else None
        except ParseError as ex:
            json_log("warning", "sheets.order_cell_invalid", customer=name, error=str(ex))
        try:
            prices = decode_cell(row[3] if len(row) > 3 else "")
            if isinstance(prices, dict):
                entry.special_prices = {str(k): to_number(v) for k, v in prices.items()}
        except ParseError as ex:
            json_log("warning", "sheets.special_prices_invalid", customer=name, error=str(ex))
        out[name.upper()] = entry
    return out
