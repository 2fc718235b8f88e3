# app/domain/errors.py
"""Errors raised by the checkout and order services.

Routers translate them into HTTP statuses; everything else is an
unexpected failure and surfaces as a 500.
"""
from typing import Iterable


class CheckoutError(Exception):
    """Base class for all expected checkout/order failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError):
    """Malformed input (payment instrument, quantities, address)."""


class EmptyCart(CheckoutError):
    def __init__(self, user_id: int):
        super().__init__("Cart is empty")
        self.user_id = user_id


class InsufficientStock(CheckoutError):
    def __init__(self, products: Iterable[str]):
        self.products = list(products)
        super().__init__(f"Insufficient stock for: {', '.join(self.products)}")


class PaymentDeclined(CheckoutError):
    def __init__(self, reason: str):
        super().__init__(f"Payment declined: {reason}")
        self.reason = reason


class InvalidTransition(CheckoutError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target


class OrderNotFound(CheckoutError):
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__("Order not found")
        self.order_id = order_id


class Forbidden(CheckoutError):
    status_code = 403


class CheckoutInProgress(CheckoutError):
    status_code = 409

    def __init__(self, user_id: int):
        super().__init__("Another checkout is already in progress for this user")
        self.user_id = user_id


class PostPaymentCommitFailure(CheckoutError):
    """Payment was approved but the order could not be committed.

    Never an ordinary client error: the approved reference is kept for
    reconciliation and the commit is retried with it, not re-authorized.
    """

    status_code = 500

    def __init__(self, payment_reference: str, recovery_id: int | None, cause: str):
        super().__init__(
            "Payment was approved but the order could not be completed; "
            "it has been queued for reconciliation"
        )
        self.payment_reference = payment_reference
        self.recovery_id = recovery_id
        self.cause = cause
