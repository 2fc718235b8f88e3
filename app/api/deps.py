# app/api/deps.py
from functools import lru_cache

from fastapi import HTTPException

from app.domain.errors import CheckoutError, PostPaymentCommitFailure
from app.services.lock_service import LockService
from app.services.payment_service import PaymentAuthorizer, get_payment_authorizer
from app.utils.settings import CHECKOUT_LOCK_ENABLED


def get_authorizer() -> PaymentAuthorizer:
    return get_payment_authorizer()


@lru_cache(maxsize=1)
def _lock_service() -> LockService:
    return LockService()


def get_lock_service() -> LockService | None:
    return _lock_service() if CHECKOUT_LOCK_ENABLED else None


def http_error(e: CheckoutError) -> HTTPException:
    if isinstance(e, PostPaymentCommitFailure):
        return HTTPException(
            status_code=e.status_code,
            detail={
                "message": e.message,
                "payment_reference": e.payment_reference,
                "recovery_id": e.recovery_id,
            },
        )
    return HTTPException(status_code=e.status_code, detail=e.message)
