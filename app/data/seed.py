# app/data/seed.py
from decimal import Decimal

from app.data.database import SessionLocal, init_db
from app.data.models.product import ProductModel
from app.data.models.user import UserModel
from app.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

PRODUCTS = [
    {"id": 1, "name": "Keyboard", "price": Decimal("199.99"), "stock_quantity": 25},
    {"id": 2, "name": "Mouse", "price": Decimal("49.50"), "stock_quantity": 100},
    {"id": 3, "name": "Monitor", "price": Decimal("899.00"), "stock_quantity": 5},
]

USERS = [
    {"id": 1, "name": "admin", "is_admin": True},
    {"id": 2, "name": "shopper", "is_admin": False},
]


def seed():
    init_db()
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            logger.info("Database already seeded")
            return
        db.add_all(UserModel(**u) for u in USERS)
        db.add_all(ProductModel(**p) for p in PRODUCTS)
        db.commit()
        logger.info(f"Seeded {len(USERS)} users and {len(PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    seed()
