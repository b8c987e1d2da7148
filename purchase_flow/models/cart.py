"""POS cart models.

The cart is local, in-progress sale state. Stock is checked against the
Inventory Service before a line is added, but the check is advisory: the
checkout collaborator re-verifies.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_TAX_RATE = 0.10


class Product(BaseModel):
    """Minimal product reference needed to put an item in the cart."""

    id: str
    name: str
    sku: Optional[str] = None
    price: float = Field(..., ge=0.0)


class CartLine(BaseModel):
    product_id: str
    name: str
    sku: Optional[str] = None
    unit_price: float = Field(..., ge=0.0)
    quantity: int = Field(..., gt=0)

    @property
    def total(self) -> float:
        return self.unit_price * self.quantity


class Cart(BaseModel):
    lines: List[CartLine] = Field(default_factory=list)
    tax_rate: float = DEFAULT_TAX_RATE

    def find(self, product_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def quantity_of(self, product_id: str) -> int:
        line = self.find(product_id)
        return line.quantity if line else 0

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> float:
        return sum(line.total for line in self.lines)

    @property
    def tax(self) -> float:
        return self.subtotal * self.tax_rate

    @property
    def total(self) -> float:
        return self.subtotal + self.tax

    def summary(self) -> dict:
        return {
            "lines": [
                {**line.model_dump(), "total": round(line.total, 2)}
                for line in self.lines
            ],
            "line_count": self.line_count,
            "item_count": self.item_count,
            "subtotal": round(self.subtotal, 2),
            "tax": round(self.tax, 2),
            "total": round(self.total, 2),
        }
