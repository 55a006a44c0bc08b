"""
Order lifecycle.

    pending -> confirmed -> shipped -> delivered
    pending | confirmed -> cancelled

cancelled accepts nothing; delivered only accepts delivered again. Moving
forward may skip steps; moving backward is rejected.
"""
from errors import InvalidTransitionError
from schemas import OrderStatus

_RANK = {
    OrderStatus.PENDING.value: 0,
    OrderStatus.CONFIRMED.value: 1,
    OrderStatus.SHIPPED.value: 2,
    OrderStatus.DELIVERED.value: 3,
}

CANCELLABLE = {OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value}
TERMINAL = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}


def check_transition(current: str, requested: str) -> bool:
    """Validate a status change.

    Returns True when the order must be written, False for an idempotent
    no-op, and raises InvalidTransitionError when the change is forbidden.
    """
    if current == OrderStatus.CANCELLED.value:
        raise InvalidTransitionError(current, requested, "Cannot modify a cancelled order")
    if current == OrderStatus.DELIVERED.value:
        if requested == OrderStatus.DELIVERED.value:
            return False
        raise InvalidTransitionError(current, requested, "Cannot modify a delivered order")
    if requested == current:
        return False
    if requested == OrderStatus.CANCELLED.value:
        if current in CANCELLABLE:
            return True
        raise InvalidTransitionError(current, requested, f"Cannot cancel an order that is already {current}")
    if _RANK[requested] < _RANK[current]:
        raise InvalidTransitionError(current, requested)
    return True


def can_transition(current: str, requested: str) -> bool:
    try:
        check_transition(current, requested)
    except InvalidTransitionError:
        return False
    return True
