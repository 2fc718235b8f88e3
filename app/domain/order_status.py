# app/domain/order_status.py
from app.domain.errors import InvalidTransition

PENDING = "pending"
PROCESSING = "processing"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ALL_STATUSES = (PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED)

_TRANSITIONS = {
    PENDING: {PROCESSING, CANCELLED},
    PROCESSING: {SHIPPED, CANCELLED},
    SHIPPED: {DELIVERED},
    DELIVERED: set(),
    CANCELLED: set(),
}


def allowed_targets(current: str, allow_cancel_shipped: bool = False) -> set[str]:
    targets = set(_TRANSITIONS.get(current, set()))
    if current == SHIPPED and allow_cancel_shipped:
        targets.add(CANCELLED)
    return targets


def check_transition(current: str, target: str, allow_cancel_shipped: bool = False) -> None:
    if target not in allowed_targets(current, allow_cancel_shipped):
        raise InvalidTransition(current, target)


def is_cancellable(current: str, allow_cancel_shipped: bool = False) -> bool:
    return CANCELLED in allowed_targets(current, allow_cancel_shipped)
