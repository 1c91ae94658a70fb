"""
Status transition table lookups.

Pure functions over ``ORDER_TRANSITIONS``; no side effects.

    pending -> matching -> matched -> driver_en_route -> arrived
            -> in_progress -> completed

``cancelled`` is reachable from every status before ``in_progress``.
"""

from __future__ import annotations

from .enums import ORDER_TRANSITIONS, OrderStatus
from .errors import IllegalTransition


def allowed_next(from_status: OrderStatus) -> frozenset[OrderStatus]:
    """Return the statuses directly reachable from *from_status*."""
    return ORDER_TRANSITIONS.get(from_status, frozenset())


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return to_status in allowed_next(from_status)


def ensure_transition(from_status: OrderStatus, to_status: OrderStatus) -> None:
    """Raise ``IllegalTransition`` unless *from_status* -> *to_status* is allowed."""
    if not can_transition(from_status, to_status):
        raise IllegalTransition(from_status, to_status)
