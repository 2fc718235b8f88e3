# app/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import http_error
from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import MessageOut, OrderListOut, OrderOut, StatusUpdateIn
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("", response_model=OrderListOut)
def list_orders(
    user_id: int = Query(...),
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """
    Order history of the user, newest first.
    """
    svc = get_service(db)
    try:
        return svc.list_orders(user_id, status=status, page=page, limit=limit)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_order(order_id, user_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{order_id}/cancel", response_model=MessageOut)
def cancel_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Cancels a pending/processing order and puts its stock back.
    """
    svc = get_service(db)
    try:
        svc.cancel(order_id, user_id)
    except CheckoutError as e:
        raise http_error(e)
    return {"message": f"Order {order_id} cancelled"}


@router.put("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: int,
    payload: StatusUpdateIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.advance_status(order_id, payload.status, user_id)
    except CheckoutError as e:
        raise http_error(e)
