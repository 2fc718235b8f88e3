#app/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import http_error
from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import CartOut, ItemIn, QuantityIn
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db=db)


@router.get("", response_model=CartOut)
def get_cart(user_id: int = Query(...), db: Session = Depends(get_db)):
    return get_service(db).get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_product(user_id=user_id, product_id=payload.product_id, quantity=payload.quantity)
    except CheckoutError as e:
        raise http_error(e)


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: QuantityIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.set_quantity(user_id, product_id, payload.quantity)
    except CheckoutError as e:
        raise http_error(e)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    return get_service(db).remove_product(user_id, product_id)


@router.delete("", response_model=CartOut)
def clear_cart(user_id: int = Query(...), db: Session = Depends(get_db)):
    return get_service(db).clear_cart(user_id)
