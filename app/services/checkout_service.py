# app/services/checkout_service.py
from dataclasses import dataclass
from typing import List
import uuid

import redis
from sqlalchemy.orm import Session

from app.data.models.checkout_recovery import CheckoutRecoveryModel
from app.data.models.order import OrderModel
from app.data.models.payment_attempt import PaymentAttemptModel
from app.domain.cart import CartLineSnapshot
from app.domain.errors import (
    CheckoutInProgress,
    EmptyCart,
    InsufficientStock,
    PaymentDeclined,
    PostPaymentCommitFailure,
    ValidationError,
)
from app.domain.payment import AuthorizationResult, PaymentInstrument
from app.domain.pricing import from_minor_units, order_total_minor
from app.repos.cart_repo import CartRepo
from app.repos.order_repo import OrderRepo
from app.services.inventory_service import InventoryService
from app.services.lock_service import LockService
from app.services.payment_service import PaymentAuthorizer, validate_instrument
from app.utils.settings import CHECKOUT_LOCK_TTL_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order: OrderModel
    payment_reference: str


class CheckoutService:
    """
    Turns a user's cart into an order.

    Saga with compensations:
    1. snapshot cart (read once)
    2. reserve stock per line in product id order (short transactions)
    3. price the captured lines
    4. authorize payment with no transaction or row lock open
    5. one transaction: order + lines, holds -> permanent, cart cleared

    Any failure before 5 releases every hold. A failure in 5 keeps the
    approved payment reference in a CheckoutRecovery row for retry_commit.
    """

    def __init__(
        self,
        db: Session,
        authorizer: PaymentAuthorizer | None,
        inventory: InventoryService | None = None,
        lock_service: LockService | None = None,
    ):
        self.db = db
        self.cart_repo = CartRepo(db)
        self.order_repo = OrderRepo(db)
        self.inventory = inventory or InventoryService(db)
        self.authorizer = authorizer
        self.lock_service = lock_service

    def checkout(
        self,
        user_id: int,
        shipping_address: str,
        instrument: PaymentInstrument,
    ) -> CheckoutResult:
        if self.authorizer is None:
            raise RuntimeError("CheckoutService needs a PaymentAuthorizer to run a checkout")
        if not shipping_address or not shipping_address.strip():
            raise ValidationError("Shipping address is required")
        validate_instrument(instrument)

        checkout_id = str(uuid.uuid4())
        log = logger.bind(checkout_id=checkout_id, user_id=user_id)

        if self.lock_service is not None:
            if not self.lock_service.acquire_checkout_lock(user_id, checkout_id, CHECKOUT_LOCK_TTL_SECONDS):
                raise CheckoutInProgress(user_id)
        try:
            return self._run(checkout_id, user_id, shipping_address.strip(), instrument, log)
        finally:
            if self.lock_service is not None:
                self._release_lock(user_id, checkout_id, log)

    def _release_lock(self, user_id: int, checkout_id: str, log) -> None:
        # the lock has a TTL, a failed release only delays the next checkout
        try:
            self.lock_service.release_checkout_lock(user_id, checkout_id)
        except redis.RedisError as e:
            log.warning(f"Could not release checkout lock: {e}")

    def _run(self, checkout_id, user_id, shipping_address, instrument, log) -> CheckoutResult:
        # 1. snapshot
        lines = self.cart_repo.snapshot(user_id)
        self.db.rollback()  # nothing written yet, just end the read
        if not lines:
            log.info("Checkout rejected, cart is empty")
            raise EmptyCart(user_id)
        log.info(f"Checkout started with {len(lines)} cart lines")

        # 2. reserve
        reservation_ids = self._reserve_all(checkout_id, lines, log)

        # 3-4. price + authorize, holds released on anything but approval
        try:
            total_minor = order_total_minor(lines)
            auth = self.authorizer.authorize(total_minor, instrument, idempotency_key=checkout_id)
        except Exception:
            log.exception("Payment step failed, releasing reservations")
            self.inventory.release(reservation_ids)
            raise

        self._record_attempt(checkout_id, user_id, instrument, total_minor, auth, log)

        if not auth.approved:
            self.inventory.release(reservation_ids)
            log.warning(f"Checkout aborted, payment declined: {auth.reason}")
            raise PaymentDeclined(auth.reason)

        # 5. commit
        total = from_minor_units(total_minor)
        try:
            order = self._commit(user_id, lines, total, shipping_address, auth.reference, reservation_ids)
        except Exception as e:
            self.db.rollback()
            recovery_id = self._park_for_reconciliation(
                checkout_id, user_id, lines, total, shipping_address, auth.reference, reservation_ids, e, log
            )
            raise PostPaymentCommitFailure(auth.reference, recovery_id, str(e)) from e

        log.info(f"Checkout completed, order {order.id} total {total}", payment_reference=auth.reference)
        return CheckoutResult(order=order, payment_reference=auth.reference)

    def _reserve_all(self, checkout_id: str, lines: List[CartLineSnapshot], log) -> List[str]:
        reservation_ids: List[str] = []
        short: List[str] = []
        try:
            # ascending product id, same order for every checkout
            for line in sorted(lines, key=lambda l: l.product_id):
                result = self.inventory.try_reserve(checkout_id, line.product_id, line.quantity)
                if result.reserved:
                    reservation_ids.append(result.reservation_id)
                else:
                    short.append(line.name)
        except Exception:
            self.inventory.release(reservation_ids)
            raise

        if short:
            self.inventory.release(reservation_ids)
            log.warning(f"Checkout aborted, insufficient stock for {short}")
            raise InsufficientStock(short)
        return reservation_ids

    def _commit(
        self,
        user_id: int,
        lines: List[CartLineSnapshot],
        total,
        shipping_address: str,
        payment_reference: str,
        reservation_ids: List[str],
        recovery: CheckoutRecoveryModel | None = None,
    ) -> OrderModel:
        order = self.order_repo.create_order(
            user_id=user_id,
            lines=lines,
            total=total,
            shipping_address=shipping_address,
            payment_reference=payment_reference,
        )
        self.inventory.commit_reservations(reservation_ids, order.id)
        self.cart_repo.clear_cart(user_id)
        if recovery is not None:
            # resolved in the same transaction, so a retry can never create a second order
            recovery.status = "resolved"
            recovery.order_id = order.id
            recovery.attempts += 1
        self.order_repo.commit()
        return order

    def _record_attempt(self, checkout_id, user_id, instrument, total_minor, auth: AuthorizationResult, log) -> None:
        # audit only; losing it must not fail the checkout
        try:
            self.order_repo.add_payment_attempt(
                PaymentAttemptModel(
                    checkout_id=checkout_id,
                    user_id=user_id,
                    payment_method=instrument.payment_method,
                    masked_card=instrument.masked,
                    amount=from_minor_units(total_minor),
                    outcome="approved" if auth.approved else "declined",
                    reference=auth.reference,
                    reason=auth.reason,
                )
            )
            self.order_repo.commit()
        except Exception as e:
            self.db.rollback()
            log.error(f"Could not record payment attempt: {e}", payment_reference=auth.reference)

    def _park_for_reconciliation(
        self, checkout_id, user_id, lines, total, shipping_address, payment_reference, reservation_ids, error, log
    ) -> int | None:
        log.error(
            f"Order commit failed after payment approval: {error}",
            payment_reference=payment_reference,
        )
        try:
            recovery = self.order_repo.add_recovery(
                CheckoutRecoveryModel(
                    checkout_id=checkout_id,
                    user_id=user_id,
                    payment_reference=payment_reference,
                    total_amount=total,
                    shipping_address=shipping_address,
                    lines=[line.to_dict() for line in lines],
                    reservation_ids=list(reservation_ids),
                    status="open",
                    error=str(error),
                    attempts=0,
                )
            )
            recovery_id = recovery.id
            self.order_repo.commit()
            return recovery_id
        except Exception as e:
            self.db.rollback()
            # last resort, the reference only survives in the log
            log.critical(
                f"Could not persist checkout recovery: {e}",
                payment_reference=payment_reference,
                total=str(total),
                lines=[line.to_dict() for line in lines],
            )
            return None

    def retry_commit(self, recovery_id: int) -> OrderModel:
        """Finish a parked checkout with its already-approved payment.

        The recovery row is locked first, so two reconcilers cannot both
        build an order for the same payment.
        """
        recovery = self.order_repo.get_recovery_for_update(recovery_id)
        if recovery is None:
            raise ValidationError(f"Checkout recovery {recovery_id} does not exist")
        if recovery.status != "open":
            return self.order_repo.get_order(recovery.order_id)

        lines = [CartLineSnapshot.from_dict(d) for d in recovery.lines]
        log = logger.bind(checkout_id=recovery.checkout_id, user_id=recovery.user_id)
        payment_reference = recovery.payment_reference
        try:
            order = self._commit(
                recovery.user_id,
                lines,
                recovery.total_amount,
                recovery.shipping_address,
                payment_reference,
                list(recovery.reservation_ids),
                recovery=recovery,
            )
        except Exception as e:
            self.db.rollback()
            recovery = self.order_repo.get_recovery_for_update(recovery_id)
            if recovery.status != "open":
                # lost the race to another reconciler, its order stands
                log.info(f"Checkout recovery {recovery_id} already resolved as order {recovery.order_id}")
                return self.order_repo.get_order(recovery.order_id)
            recovery.attempts += 1
            recovery.error = str(e)
            self.order_repo.commit()
            log.error(f"Retry of checkout recovery {recovery_id} failed: {e}", payment_reference=payment_reference)
            raise PostPaymentCommitFailure(payment_reference, recovery_id, str(e)) from e

        log.info(f"Checkout recovery {recovery_id} resolved as order {order.id}", payment_reference=payment_reference)
        return order

    def reconcile_open(self, max_attempts: int) -> int:
        resolved = 0
        for recovery_id in [r.id for r in self.order_repo.list_open_recoveries(max_attempts)]:
            try:
                self.retry_commit(recovery_id)
                resolved += 1
            except PostPaymentCommitFailure:
                continue
        return resolved
