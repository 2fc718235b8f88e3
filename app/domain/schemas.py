# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime


class ItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product ID (> 0)")
    quantity: int = Field(..., gt=0, description="Quantity (> 0)")


class QuantityIn(BaseModel):
    quantity: int = Field(..., gt=0, description="New quantity (> 0)")


class CartItemOut(BaseModel):
    product_id: int
    name: str
    quantity: int
    price: Decimal


class CartOut(BaseModel):
    user_id: int
    items: List[CartItemOut]
    total: Decimal


class UserCreate(BaseModel):
    id: int = Field(..., gt=0, description="User ID (> 0)")
    name: str = Field(..., min_length=1, max_length=100, description="User name")


class UserRead(BaseModel):
    id: int
    name: str
    is_admin: bool = False

    model_config = ConfigDict(from_attributes=True)


class CheckoutIn(BaseModel):
    """Checkout request: shipping address and card fields.

    Card fields are validated by the payment service (Luhn, expiry, CVV);
    here only the shape of the payload is checked.
    """

    shipping_address: str = Field(..., min_length=1, max_length=500)
    payment_method: str = Field(..., description="credit_card or debit_card")
    card_number: str = Field(..., min_length=1, max_length=32)
    expiry_month: int = Field(..., ge=1, le=12)
    expiry_year: int = Field(..., ge=0)
    cvv: str = Field(..., min_length=1, max_length=8)
    cardholder_name: str = Field(..., min_length=1, max_length=100)


class CheckoutOut(BaseModel):
    order_id: int
    payment_reference: str
    total_amount: Decimal
    status: str


class OrderLineOut(BaseModel):
    product_id: int
    quantity: int
    price_at_time: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    status: str
    total_amount: Decimal
    shipping_address: str
    payment_reference: str | None = None
    created_at: datetime
    items: List[OrderLineOut]


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    limit: int


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    pagination: PaginationOut


class StatusUpdateIn(BaseModel):
    status: str = Field(..., description="pending, processing, shipped, delivered or cancelled")


class MessageOut(BaseModel):
    message: str
