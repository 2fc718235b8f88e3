# app/repos/cart_repo.py
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.data.models.cart_item import CartItemModel
from app.data.models.product import ProductModel
from app.domain.cart import CartLineSnapshot


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart_lines(self, user_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.user_id == user_id)
                .order_by(CartItemModel.product_id)
            ).scalars().all()
        )

    def get_cart_item(self, user_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def snapshot(self, user_id: int) -> List[CartLineSnapshot]:
        """Cart lines joined with current price/stock, ascending product id."""
        rows = self.db.execute(
            select(
                CartItemModel.product_id,
                CartItemModel.quantity,
                ProductModel.name,
                ProductModel.price,
                ProductModel.stock_quantity,
            )
            .join(ProductModel, ProductModel.id == CartItemModel.product_id)
            .where(CartItemModel.user_id == user_id)
            .order_by(CartItemModel.product_id)
        ).all()

        return [
            CartLineSnapshot(
                product_id=row.product_id,
                name=row.name,
                quantity=row.quantity,
                unit_price=row.price,
                stock_quantity=row.stock_quantity,
            )
            for row in rows
        ]

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, user_id: int, product_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id == product_id,
            )
        )
        return result.rowcount

    def clear_cart(self, user_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(CartItemModel.user_id == user_id)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
