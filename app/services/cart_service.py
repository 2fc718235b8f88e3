from decimal import Decimal
from typing import Dict, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.data.models.cart_item import CartItemModel
from app.domain.errors import ValidationError
from app.repos.cart_repo import CartRepo
from app.repos.product_repo import ProductRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart lines of a user (one line per product).
    commands (add, set quantity, remove, clear) modify state,
    query (get) is read only; prices always come from the catalog.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    #query
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        lines = self.repo.snapshot(user_id)
        total = sum((l.unit_price * l.quantity for l in lines), Decimal("0.00"))

        return {
            "user_id": user_id,
            "items": [
                {
                    "product_id": l.product_id,
                    "name": l.name,
                    "quantity": l.quantity,
                    "price": l.unit_price,
                }
                for l in lines
            ],
            "total": total,
        }

    #commands
    def add_product(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")

        if self.products.get_product(product_id) is None:
            raise ValidationError(f"Product {product_id} does not exist")

        existing_item = self.repo.get_cart_item(user_id, product_id)
        try:
            if existing_item:
                logger.info(
                    f"Product {product_id} already in cart of user {user_id}, quantity "
                    f"{existing_item.quantity} -> {existing_item.quantity + quantity}"
                )
                existing_item.quantity += quantity
            else:
                logger.info(f"Adding product {product_id} to cart of user {user_id}")
                self.repo.add_cart_item(
                    CartItemModel(user_id=user_id, product_id=product_id, quantity=quantity)
                )
            self.repo.commit()
        except IntegrityError:
            # same product added concurrently, unique (user, product) kicked in
            self.repo.rollback()
            raise ValidationError("Cart was modified concurrently, please retry")

        return self.get_cart(user_id)

    def set_quantity(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")

        item = self.repo.get_cart_item(user_id, product_id)
        if not item:
            raise ValidationError(f"Product {product_id} is not in the cart")

        item.quantity = quantity
        self.repo.commit()
        return self.get_cart(user_id)

    def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        logger.info(f"Removing product {product_id} from cart of user {user_id}")
        self.repo.delete_cart_item(user_id, product_id)
        self.repo.commit()
        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> Dict[str, Any]:
        removed = self.repo.clear_cart(user_id)
        self.repo.commit()
        logger.info(f"Cleared {removed} lines from cart of user {user_id}")
        return self.get_cart(user_id)
