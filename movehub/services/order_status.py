"""
Order aggregate rules.
An order's status is a pure function of its service lines' statuses.
"""
from typing import Iterable

from ..models.enums import OrderServiceStatus as S, OrderStatus
from ..models.models import Order

# Phases that count as "further along" than a rejected offer
_PAST_REJECTION = frozenset({S.offer_accepted, S.in_progress})


def derive_order_status(statuses: Iterable[S]) -> OrderStatus:
    """
    Apply the precedence list top to bottom; the first matching rule wins.

    >>> derive_order_status([S.completed, S.offer_sent])
    <OrderStatus.partially_done: 'partially_done'>
    """
    values = [S(s) for s in statuses]
    if not values:
        return OrderStatus.pending
    present = set(values)

    if present == {S.cancelled}:
        return OrderStatus.cancelled
    if present == {S.completed}:
        return OrderStatus.completed
    if S.completed in present and not present & {S.pending, S.offer_rejected}:
        return OrderStatus.partially_done
    if S.in_progress in present:
        return OrderStatus.in_progress
    if S.offer_rejected in present and not present & _PAST_REJECTION:
        return OrderStatus.offer_rejected
    if S.offer_accepted in present:
        return OrderStatus.offer_accepted
    if S.offer_sent in present:
        return OrderStatus.offer_sent
    if S.assigned in present:
        return OrderStatus.assigned
    return OrderStatus.pending


def refresh_order_status(order: Order) -> OrderStatus:
    """Recompute and cache the derived status on the order row."""
    order.status = derive_order_status(os.status for os in order.services)
    return order.status


def check_order_status(order: Order) -> bool:
    """
    True when the cached status matches a fresh derivation. Consistency
    helper for tests and ad-hoc checks; the request path keeps the cache
    current through refresh_order_status.
    """
    return order.status == derive_order_status(os.status for os in order.services)
