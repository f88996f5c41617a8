from dataclasses import dataclass
from typing import Any, Dict, Optional


def to_number(v, default: float = 0.0) -> float:
    if v is None or isinstance(v, bool):
        return default
    try:
        return float(str(v).strip().replace(",", ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class Product:
    name: str
    rate: float
    purchase_cost: Optional[float] = None
    stock: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "rate": self.rate}
        if self.purchase_cost is not None:
            out["purchaseCost"] = self.purchase_cost
        if self.stock is not None:
            out["stock"] = self.stock
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Product":
        stock = d.get("stock")
        return cls(
            name=str(d.get("name") or "").strip(),
            rate=to_number(d.get("rate")),
            purchase_cost=to_number(d["purchaseCost"]) if d.get("purchaseCost") is not None else None,
            stock=int(to_number(stock)) if stock is not None else None,
        )


@dataclass
class CartItem:
    name: str
    rate: float
    quantity: int
    purchase_cost: float = 0.0
    stock: Optional[int] = None

    @property
    def total(self) -> float:
        return self.rate * self.quantity

    @property
    def profit(self) -> float:
        return (self.rate - self.purchase_cost) * self.quantity

    def to_receipt_item(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "rate": self.rate,
            "total": self.total,
            "purchaseCost": self.purchase_cost,
            "profitMargin": self.profit,
        }


@dataclass(frozen=True)
class Payments:
    cash: float = 0.0
    online: float = 0.0

    @property
    def total(self) -> float:
        return self.cash + self.online

    def to_dict(self) -> Dict[str, float]:
        return {"cash": self.cash, "online": self.online}

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "Payments":
        d = d or {}
        return cls(cash=to_number(d.get("cash")), online=to_number(d.get("online")))
