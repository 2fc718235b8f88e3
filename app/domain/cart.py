# app/domain/cart.py
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CartLineSnapshot:
    """One cart line joined with the catalog figures read at checkout start."""

    product_id: int
    name: str
    quantity: int
    unit_price: Decimal
    stock_quantity: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLineSnapshot":
        return cls(
            product_id=int(data["product_id"]),
            name=data["name"],
            quantity=int(data["quantity"]),
            unit_price=Decimal(data["unit_price"]),
            stock_quantity=int(data.get("stock_quantity", 0)),
        )
