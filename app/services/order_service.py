# app/services/order_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.domain import order_status
from app.domain.errors import Forbidden, OrderNotFound, ValidationError
from app.repos.order_repo import OrderRepo
from app.repos.user_repo import UserRepo
from app.services.inventory_service import InventoryService
from app.utils.settings import ALLOW_CANCEL_SHIPPED
from app.utils.logging import get_logger

logger = get_logger(__name__)


class OrderService:
    """
    Order queries and post-checkout lifecycle.

    Cancellation restores stock for every line and flips the status in a
    single transaction; either both land or neither does.
    """

    def __init__(
        self,
        db: Session,
        inventory: InventoryService | None = None,
        allow_cancel_shipped: bool = ALLOW_CANCEL_SHIPPED,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.users = UserRepo(db)
        self.inventory = inventory or InventoryService(db)
        self.allow_cancel_shipped = allow_cancel_shipped

    # query
    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(order_id)
        self._check_access(order, user_id)
        return serialize_order(order)

    def list_orders(
        self,
        user_id: int,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        if status is not None and status not in order_status.ALL_STATUSES:
            raise ValidationError(f"Invalid status {status!r}")
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        orders, total_count = self.repo.list_orders(user_id, status=status, page=page, limit=limit)
        return {
            "orders": [serialize_order(o) for o in orders],
            "pagination": {
                "current_page": page,
                "total_pages": -(-total_count // limit),
                "total_count": total_count,
                "limit": limit,
            },
        }

    # commands
    def cancel(self, order_id: int, actor_user_id: int) -> Dict[str, Any]:
        order = self.repo.get_order_for_update(order_id)
        if not order:
            raise OrderNotFound(order_id)
        try:
            self._check_access(order, actor_user_id)
            self._cancel_locked(order)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} cancelled by user {actor_user_id}")
        return serialize_order(order)

    def advance_status(self, order_id: int, new_status: str, actor_user_id: int) -> Dict[str, Any]:
        if new_status not in order_status.ALL_STATUSES:
            raise ValidationError(f"Invalid status {new_status!r}")

        order = self.repo.get_order_for_update(order_id)
        if not order:
            raise OrderNotFound(order_id)
        try:
            if not self.users.is_admin(actor_user_id):
                raise Forbidden("Only administrators can change order status")
            old_status = order.status
            if new_status == order_status.CANCELLED:
                self._cancel_locked(order)
            else:
                self.repo.update_status(order, new_status, self.allow_cancel_shipped)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} moved from {old_status} to {new_status} by user {actor_user_id}")
        return serialize_order(order)

    def _cancel_locked(self, order: OrderModel) -> None:
        # validate first so a rejected cancel touches nothing
        order_status.check_transition(order.status, order_status.CANCELLED, self.allow_cancel_shipped)
        for line in order.lines:
            self.inventory.restore(line.product_id, line.quantity)
        self.repo.update_status(order, order_status.CANCELLED, self.allow_cancel_shipped)

    def _check_access(self, order: OrderModel, user_id: int) -> None:
        if order.user_id != user_id and not self.users.is_admin(user_id):
            raise Forbidden("Access to this order is denied")


def serialize_order(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total_amount": order.total_amount,
        "shipping_address": order.shipping_address,
        "payment_reference": order.payment_reference,
        "created_at": order.created_at,
        "items": [
            {
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price_at_time": line.price_at_time,
            }
            for line in order.lines
        ],
    }
