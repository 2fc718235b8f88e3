from sqlalchemy import CheckConstraint, Column, Integer, Numeric, String

from app.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    # mutated only through InventoryService (reserve / restore)
    stock_quantity = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )
