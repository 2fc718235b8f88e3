# app/api/routers/checkout.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_authorizer, get_lock_service, http_error
from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.payment import PaymentInstrument
from app.domain.schemas import CheckoutIn, CheckoutOut
from app.services.checkout_service import CheckoutService
from app.services.lock_service import LockService
from app.services.payment_service import PaymentAuthorizer

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    authorizer: PaymentAuthorizer = Depends(get_authorizer),
    lock_service: LockService | None = Depends(get_lock_service),
):
    """
    Turns the user's cart into a pending order and charges the card.
    400 on validation, empty cart, insufficient stock or decline;
    500 only when the charge went through but the order could not be saved.
    """
    svc = CheckoutService(db=db, authorizer=authorizer, lock_service=lock_service)
    instrument = PaymentInstrument(
        payment_method=payload.payment_method,
        card_number=payload.card_number,
        expiry_month=payload.expiry_month,
        expiry_year=payload.expiry_year,
        cvv=payload.cvv,
        cardholder_name=payload.cardholder_name,
    )
    try:
        result = svc.checkout(user_id, payload.shipping_address, instrument)
    except CheckoutError as e:
        raise http_error(e)

    return {
        "order_id": result.order.id,
        "payment_reference": result.payment_reference,
        "total_amount": result.order.total_amount,
        "status": result.order.status,
    }
