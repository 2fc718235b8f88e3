# app/repos/reservation_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.reservation import ReservationModel


class ReservationRepo:
    def __init__(self, db: Session):
        self.db = db

    def add(self, reservation: ReservationModel) -> ReservationModel:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get(self, reservation_id: str) -> ReservationModel | None:
        return self.db.get(ReservationModel, reservation_id, populate_existing=True)

    def get_many(self, reservation_ids: List[str]) -> List[ReservationModel]:
        if not reservation_ids:
            return []
        return list(
            self.db.execute(
                select(ReservationModel)
                .where(ReservationModel.id.in_(reservation_ids))
                .order_by(ReservationModel.product_id)
            ).scalars().all()
        )

    def transition(self, reservation_id: str, old_status: str, new_data: dict) -> int:
        """Compare-and-set on the reservation status; returns rowcount."""
        result = self.db.execute(
            update(ReservationModel)
            .where(
                ReservationModel.id == reservation_id,
                ReservationModel.status == old_status,
            )
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def find_expired(self, now: datetime, limit: int = 500) -> List[ReservationModel]:
        return list(
            self.db.execute(
                select(ReservationModel)
                .where(
                    ReservationModel.status == "held",
                    ReservationModel.expires_at < now,
                )
                .order_by(ReservationModel.expires_at)
                .limit(limit)
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
