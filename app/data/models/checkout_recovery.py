from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, JSON, ForeignKey
from datetime import datetime, timezone

from app.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CheckoutRecoveryModel(Base):
    """Approved payment whose order commit did not complete.

    Holds everything needed to finish the checkout later with the same
    payment reference (the charge is never authorized twice).
    """

    __tablename__ = "checkout_recoveries"

    id = Column(Integer, primary_key=True)
    checkout_id = Column(String(36), nullable=False, unique=True)
    user_id = Column(Integer, nullable=False, index=True)

    payment_reference = Column(String, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    shipping_address = Column(Text, nullable=False)
    lines = Column(JSON, nullable=False)  # [{product_id, name, quantity, unit_price}]
    reservation_ids = Column(JSON, nullable=False)

    status = Column(String(20), nullable=False, default="open", index=True)  # open, resolved
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
