from typing import Dict, List, Optional

from .models import CartItem, Product

SEARCH_LIMIT = 50


def effective_price(product: Product, special_prices: Optional[Dict[str, float]] = None) -> float:
    # Customer-specific prices are keyed by the exact product name.
    if special_prices and product.name in special_prices:
        try:
            return float(special_prices[product.name])
        except (TypeError, ValueError):
            pass
    return product.rate or 0.0


def search_products(products: List[Product], query: str, limit: int = SEARCH_LIMIT) -> List[Product]:
    q = (query or "").strip().lower()
    if not q:
        return list(products[:limit])
    return [p for p in products if q in p.name.lower()]


class Cart:
    """
    Session-owned list of items. Lines are merged by product name; the line
    rate is a snapshot that may differ from the product's list rate.
    """

    def __init__(self, special_prices: Optional[Dict[str, float]] = None):
        self.items: List[CartItem] = []
        self.special_prices = dict(special_prices or {})

    def __len__(self) -> int:
        return len(self.items)

    def _find(self, name: str) -> Optional[CartItem]:
        for it in self.items:
            if it.name == name:
                return it
        return None

    def add(self, product: Product, quantity: int = 1, rate: Optional[float] = None) -> CartItem:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")
        existing = self._find(product.name)
        if existing:
            existing.quantity += quantity
            if rate is not None:
                existing.rate = float(rate)
            return existing
        item = CartItem(
            name=product.name,
            rate=float(rate) if rate is not None else effective_price(product, self.special_prices),
            quantity=quantity,
            purchase_cost=product.purchase_cost or 0.0,
            stock=product.stock,
        )
        self.items.append(item)
        return item

    def update_quantity(self, name: str, change: int) -> Optional[CartItem]:
        item = self._find(name)
        if item is None:
            raise KeyError(name)
        item.quantity += change
        if item.quantity <= 0:
            self.remove(name)
            return None
        return item

    def set_rate(self, name: str, rate: float) -> CartItem:
        if rate < 0:
            raise ValueError("rate must be >= 0")
        item = self._find(name)
        if item is None:
            raise KeyError(name)
        item.rate = float(rate)
        return item

    def remove(self, name: str) -> None:
        self.items = [it for it in self.items if it.name != name]

    def clear(self) -> None:
        self.items = []

    @property
    def grand_total(self) -> float:
        return sum(it.total for it in self.items)

    @property
    def profit_margin(self) -> float:
        return sum(it.profit for it in self.items)
