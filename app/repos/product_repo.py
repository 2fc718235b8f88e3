# app/repos/product_repo.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.data.models.product import ProductModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_stock(self, product_id: int) -> int | None:
        product = self.get_product(product_id)
        if product is None:
            return None
        self.db.refresh(product, ["stock_quantity"])
        return product.stock_quantity

    def decrement_if_available(self, product_id: int, quantity: int) -> bool:
        """Atomic conditional decrement; False when stock is short.

        The WHERE clause re-checks availability under the row's write
        lock, so two concurrent callers can never overcommit a product.
        """
        result = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.stock_quantity >= quantity,
            )
            .values(stock_quantity=ProductModel.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment(self, product_id: int, quantity: int) -> bool:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock_quantity=ProductModel.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
