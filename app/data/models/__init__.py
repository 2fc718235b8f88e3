# import every model so SQLAlchemy registers it on Base.metadata

from app.data.models.user import UserModel
from app.data.models.product import ProductModel
from app.data.models.cart_item import CartItemModel
from app.data.models.order import OrderModel, OrderLineModel
from app.data.models.reservation import ReservationModel
from app.data.models.payment_attempt import PaymentAttemptModel
from app.data.models.checkout_recovery import CheckoutRecoveryModel

__all__ = [
    "UserModel",
    "ProductModel",
    "CartItemModel",
    "OrderModel",
    "OrderLineModel",
    "ReservationModel",
    "PaymentAttemptModel",
    "CheckoutRecoveryModel",
]
