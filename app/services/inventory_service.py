# app/services/inventory_service.py
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Iterable, List
import uuid

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.data.models.reservation import ReservationModel
from app.domain.errors import InsufficientStock, ValidationError
from app.repos.product_repo import ProductRepo
from app.repos.reservation_repo import ReservationRepo
from app.utils.retry import db_retry
from app.utils.settings import RESERVATION_TTL_SECONDS, RESERVE_MAX_ATTEMPTS
from app.utils.logging import get_logger

logger = get_logger(__name__)

HELD = "held"
COMMITTED = "committed"
RELEASED = "released"
EXPIRED = "expired"


@dataclass(frozen=True)
class ReservationResult:
    product_id: int
    quantity: int
    reservation_id: str | None = None
    expires_at: datetime | None = None

    @property
    def reserved(self) -> bool:
        return self.reservation_id is not None


class InventoryService:
    """
    Authoritative stock for products.

    try_reserve takes a time-bounded hold (stock is decremented right away
    in a short transaction), release/expiry hands it back exactly once,
    commit_reservations makes it permanent inside the caller's transaction.
    """

    def __init__(
        self,
        db: Session,
        reservation_ttl: int = RESERVATION_TTL_SECONDS,
        max_attempts: int = RESERVE_MAX_ATTEMPTS,
    ):
        self.db = db
        self.products = ProductRepo(db)
        self.reservations = ReservationRepo(db)
        self.reservation_ttl = reservation_ttl
        self._reserve = db_retry(max_attempts)(self._reserve_once)
        self._release = db_retry(max_attempts)(self._release_once)

    # ------------------------------------------------------------------
    # holds
    # ------------------------------------------------------------------
    def try_reserve(self, checkout_id: str, product_id: int, quantity: int) -> ReservationResult:
        if quantity < 1:
            raise ValidationError(f"Invalid quantity {quantity} for product {product_id}")
        if self.products.get_product(product_id) is None:
            raise ValidationError(f"Product {product_id} does not exist")
        return self._reserve(checkout_id, product_id, quantity)

    def _reserve_once(self, checkout_id: str, product_id: int, quantity: int) -> ReservationResult:
        try:
            if not self.products.decrement_if_available(product_id, quantity):
                self.products.rollback()
                logger.info(f"Not enough stock for product {product_id} (wanted {quantity})")
                return ReservationResult(product_id=product_id, quantity=quantity)

            expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.reservation_ttl)
            reservation = self.reservations.add(
                ReservationModel(
                    id=str(uuid.uuid4()),
                    checkout_id=checkout_id,
                    product_id=product_id,
                    quantity=quantity,
                    status=HELD,
                    expires_at=expires_at,
                )
            )
            reservation_id = reservation.id
            self.reservations.commit()
        except OperationalError as e:
            # transient contention, tenacity retries with backoff
            self.db.rollback()
            logger.warning(f"Reserve of product {product_id} hit store contention: {e}")
            raise

        logger.info(
            f"Reserved {quantity} x product {product_id} for checkout {checkout_id}",
            reservation_id=reservation_id,
        )
        return ReservationResult(
            product_id=product_id,
            quantity=quantity,
            reservation_id=reservation_id,
            expires_at=expires_at,
        )

    def release(self, reservation_ids: Iterable[str]) -> int:
        """Hand held stock back; holds already committed/released are skipped."""
        ids = [rid for rid in reservation_ids if rid]
        if not ids:
            return 0
        return self._release(ids)

    def _release_once(self, reservation_ids: List[str]) -> int:
        try:
            released = 0
            for reservation in self.reservations.get_many(reservation_ids):
                if self._return_hold(reservation, RELEASED):
                    released += 1
            self.reservations.commit()
        except OperationalError:
            self.db.rollback()
            raise
        logger.info(f"Released {released} of {len(reservation_ids)} reservations")
        return released

    def _return_hold(self, reservation: ReservationModel, new_status: str) -> bool:
        # CAS on the hold status; the stock comes back only for the winner
        rowcount = self.reservations.transition(reservation.id, HELD, {"status": new_status})
        if rowcount != 1:
            return False
        self.products.increment(reservation.product_id, reservation.quantity)
        return True

    def commit_reservations(self, reservation_ids: Iterable[str], order_id: int) -> None:
        """Turn holds into permanent decrements. Does not commit.

        A hold that expired in the meantime already gave its stock back,
        so it is taken again with the same conditional decrement.
        """
        for reservation_id in reservation_ids:
            rowcount = self.reservations.transition(
                reservation_id, HELD, {"status": COMMITTED, "order_id": order_id}
            )
            if rowcount == 1:
                continue

            reservation = self.reservations.get(reservation_id)
            if reservation is None or reservation.status == COMMITTED:
                raise RuntimeError(f"Reservation {reservation_id} cannot be committed")

            logger.warning(
                f"Reservation {reservation_id} was {reservation.status} before commit, re-acquiring stock"
            )
            if not self.products.decrement_if_available(reservation.product_id, reservation.quantity):
                raise InsufficientStock([f"product {reservation.product_id}"])
            rowcount = self.reservations.transition(
                reservation_id, reservation.status, {"status": COMMITTED, "order_id": order_id}
            )
            if rowcount != 1:
                # another worker moved the hold after we read it; the decrement above must roll back
                raise RuntimeError(f"Reservation {reservation_id} changed while being committed")

    def release_expired(self, now: datetime | None = None) -> int:
        """Safety net for holds whose checkout never finished (crashed worker)."""
        now = now or datetime.now(timezone.utc)
        expired = 0
        try:
            for reservation in self.reservations.find_expired(now):
                if self._return_hold(reservation, EXPIRED):
                    expired += 1
                    logger.warning(
                        f"Reservation {reservation.id} expired, returned {reservation.quantity} "
                        f"x product {reservation.product_id}",
                        checkout_id=reservation.checkout_id,
                    )
            self.reservations.commit()
        except Exception:
            self.db.rollback()
            raise
        return expired

    # ------------------------------------------------------------------
    # plain stock
    # ------------------------------------------------------------------
    def restore(self, product_id: int, quantity: int) -> None:
        """Unconditional restock; joins the caller's transaction."""
        if quantity < 1:
            raise ValidationError(f"Invalid quantity {quantity} for product {product_id}")
        if not self.products.increment(product_id, quantity):
            raise ValidationError(f"Product {product_id} does not exist")

    def get_stock(self, product_id: int) -> int | None:
        return self.products.get_stock(product_id)
