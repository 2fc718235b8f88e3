from sqlalchemy import Column, Integer, ForeignKey, String, DateTime
from datetime import datetime, timezone
import uuid

from app.data.database import Base


class ReservationModel(Base):
    """Short-lived hold on stock taken while a checkout waits for payment.

    The stock is decremented when the hold is taken; the hold is either
    committed (the decrement becomes permanent) or released/expired
    (the quantity goes back to the product).
    """

    __tablename__ = "stock_reservations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    checkout_id = Column(String(36), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="held", index=True)  # held, committed, released, expired
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
