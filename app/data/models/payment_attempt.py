from sqlalchemy import Column, Integer, String, DateTime, Numeric
from datetime import datetime, timezone

from app.data.database import Base


class PaymentAttemptModel(Base):
    __tablename__ = "payment_attempts"

    id = Column(Integer, primary_key=True)
    checkout_id = Column(String(36), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    payment_method = Column(String(20), nullable=False)
    masked_card = Column(String(32), nullable=False)  # never the full PAN
    amount = Column(Numeric(10, 2), nullable=False)

    outcome = Column(String(20), nullable=False)  # approved, declined
    reference = Column(String, nullable=True)
    reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
