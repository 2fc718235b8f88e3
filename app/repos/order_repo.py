# app/repos/order_repo.py
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.data.models.order import OrderModel, OrderLineModel
from app.data.models.payment_attempt import PaymentAttemptModel
from app.data.models.checkout_recovery import CheckoutRecoveryModel
from app.domain import order_status
from app.domain.cart import CartLineSnapshot


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(
        self,
        user_id: int,
        lines: List[CartLineSnapshot],
        total: Decimal,
        shipping_address: str,
        payment_reference: str | None,
    ) -> OrderModel:
        # order + lines are flushed together; the caller owns the commit
        order = OrderModel(
            user_id=user_id,
            status=order_status.PENDING,
            total_amount=total,
            shipping_address=shipping_address,
            payment_reference=payment_reference,
            lines=[
                OrderLineModel(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price_at_time=line.unit_price,
                )
                for line in lines
            ],
        )
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.lines))
            .where(OrderModel.id == order_id)
        ).scalar_one_or_none()

    def get_order_for_update(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.lines))
            .where(OrderModel.id == order_id)
            .with_for_update()
        ).scalar_one_or_none()

    def list_orders(
        self,
        user_id: int,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[OrderModel], int]:
        query = select(OrderModel).where(OrderModel.user_id == user_id)
        count_query = select(func.count(OrderModel.id)).where(OrderModel.user_id == user_id)
        if status:
            query = query.where(OrderModel.status == status)
            count_query = count_query.where(OrderModel.status == status)

        total_count = self.db.execute(count_query).scalar_one()
        orders = self.db.execute(
            query.options(selectinload(OrderModel.lines))
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(orders), total_count

    def update_status(
        self,
        order: OrderModel,
        new_status: str,
        allow_cancel_shipped: bool = False,
    ) -> OrderModel:
        order_status.check_transition(order.status, new_status, allow_cancel_shipped)
        order.status = new_status
        self.db.flush()
        return order

    def add_payment_attempt(self, attempt: PaymentAttemptModel) -> PaymentAttemptModel:
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def add_recovery(self, recovery: CheckoutRecoveryModel) -> CheckoutRecoveryModel:
        self.db.add(recovery)
        self.db.flush()
        return recovery

    def get_recovery_for_update(self, recovery_id: int) -> CheckoutRecoveryModel | None:
        return self.db.execute(
            select(CheckoutRecoveryModel)
            .where(CheckoutRecoveryModel.id == recovery_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_open_recoveries(self, max_attempts: int) -> List[CheckoutRecoveryModel]:
        return list(
            self.db.execute(
                select(CheckoutRecoveryModel)
                .where(
                    CheckoutRecoveryModel.status == "open",
                    CheckoutRecoveryModel.attempts < max_attempts,
                )
                .order_by(CheckoutRecoveryModel.id)
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
