"""
Order lifecycle state machine

Orders have no stored status. The status is a pure function of the stage
timestamps, evaluated most-terminal-first:

    canceled > delivered > shipped > completed > production > confirmed
    > expired > quoted > requested

Quotation expiry is recorded either by the quoted->expired transition
(expired_at stamped at or after the current quoted_at) or by a
quote_valid_until deadline belonging to the current quote that has passed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from hbm_service.core.exceptions import InvalidStateTransitionError, ValidationError
from hbm_service.core.utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    REQUESTED = "requested"
    QUOTED = "quoted"
    EXPIRED = "expired"
    CONFIRMED = "confirmed"
    PRODUCTION = "production"
    COMPLETED = "completed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELED})

# Forward adjacency. Cancellation from any non-terminal status is allowed
# on top of this map.
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.REQUESTED: [OrderStatus.QUOTED],
    OrderStatus.QUOTED: [OrderStatus.CONFIRMED, OrderStatus.EXPIRED],
    OrderStatus.EXPIRED: [OrderStatus.QUOTED],
    OrderStatus.CONFIRMED: [OrderStatus.PRODUCTION],
    OrderStatus.PRODUCTION: [OrderStatus.COMPLETED],
    OrderStatus.COMPLETED: [OrderStatus.SHIPPED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELED: [],
}

# Timestamp stamped when an order enters each status
ORDER_STATUS_TIMESTAMP_FIELDS: Dict[OrderStatus, str] = {
    OrderStatus.QUOTED: "quoted_at",
    OrderStatus.EXPIRED: "expired_at",
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PRODUCTION: "production_started_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELED: "canceled_at",
}

ORDER_STATUS_DESCRIPTIONS: Dict[OrderStatus, str] = {
    OrderStatus.REQUESTED: "Order has been submitted and is awaiting quotation",
    OrderStatus.QUOTED: "Order has been quoted and is awaiting customer confirmation",
    OrderStatus.EXPIRED: "Order quotation has expired and needs to be updated",
    OrderStatus.CONFIRMED: "Order has been confirmed and is ready for production",
    OrderStatus.PRODUCTION: "Order is currently in production",
    OrderStatus.COMPLETED: "Order production has been completed",
    OrderStatus.SHIPPED: "Order has been shipped to the customer",
    OrderStatus.DELIVERED: "Order has been delivered to the customer",
    OrderStatus.CANCELED: "Order has been canceled",
}

# Pairs that must be chronological when both are set
_TIMELINE_CHECKS = (
    ("created_at", "quoted_at", "Quoted date cannot be before creation date"),
    ("quoted_at", "confirmed_at", "confirmed_at must be after quoted_at"),
    ("confirmed_at", "production_started_at", "Production start date cannot be before confirmed date"),
    ("production_started_at", "completed_at", "Completion date cannot be before production start date"),
    ("completed_at", "shipped_at", "Shipped date cannot be before completion date"),
    ("shipped_at", "delivered_at", "Delivered date cannot be before shipped date"),
)


@dataclass
class StatusComputationResult:
    status: Any
    computed_at: datetime
    factors: List[str] = field(default_factory=list)
    is_terminal: bool = False
    can_transition_to: List[Any] = field(default_factory=list)


def _ts(order, name: str) -> Optional[datetime]:
    return ensure_aware(getattr(order, name, None))


def _quote_expired(order, now: datetime) -> Optional[str]:
    quoted_at = _ts(order, "quoted_at")
    expired_at = _ts(order, "expired_at")
    if expired_at is not None and expired_at >= quoted_at:
        return "expired_at is set for the current quotation"

    valid_until = _ts(order, "quote_valid_until")
    if valid_until is not None and valid_until >= quoted_at and valid_until < now:
        return "quote_valid_until has passed"
    return None


def _derive(order, now: datetime) -> tuple:
    for status in (
        OrderStatus.CANCELED,
        OrderStatus.DELIVERED,
        OrderStatus.SHIPPED,
        OrderStatus.COMPLETED,
        OrderStatus.PRODUCTION,
        OrderStatus.CONFIRMED,
    ):
        name = ORDER_STATUS_TIMESTAMP_FIELDS[status]
        if _ts(order, name) is not None:
            return status, f"{name} is set"

    if _ts(order, "quoted_at") is not None:
        reason = _quote_expired(order, now)
        if reason:
            return OrderStatus.EXPIRED, reason
        return OrderStatus.QUOTED, "quoted_at is set"

    return OrderStatus.REQUESTED, "default status"


def calculate_status(order, now: Optional[datetime] = None) -> OrderStatus:
    """
    Derive the current status of an order from its timestamps.

    Args:
        order: Any object exposing the order timestamp attributes
        now: Evaluation instant for quote deadlines (defaults to current time)
    """
    status, _ = _derive(order, now or utcnow())
    return status


def is_terminal_order_status(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_ORDER_STATUSES


def get_next_order_statuses(status: OrderStatus) -> List[OrderStatus]:
    """Every status reachable in one step, including cancellation."""
    status = OrderStatus(status)
    if status in TERMINAL_ORDER_STATUSES:
        return []
    return list(ORDER_STATUS_TRANSITIONS[status]) + [OrderStatus.CANCELED]


def is_valid_order_status_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    from_status, to_status = OrderStatus(from_status), OrderStatus(to_status)
    return to_status in get_next_order_statuses(from_status)


def compute_order_status(order, now: Optional[datetime] = None) -> StatusComputationResult:
    now = now or utcnow()
    status, factor = _derive(order, now)
    return StatusComputationResult(
        status=status,
        computed_at=now,
        factors=[factor, ORDER_STATUS_DESCRIPTIONS[status]],
        is_terminal=status in TERMINAL_ORDER_STATUSES,
        can_transition_to=get_next_order_statuses(status),
    )


def validate_transition(
    order,
    from_status: OrderStatus,
    to_status: OrderStatus,
    now: Optional[datetime] = None,
) -> OrderStatus:
    """
    Validate a requested order transition.

    The caller's believed current status must match the derived status
    before the transition graph is consulted.

    Returns:
        The derived current status

    Raises:
        ValidationError: If either status is not an order status
        InvalidStateTransitionError: If the caller is stale or the transition is not allowed
    """
    try:
        from_status = OrderStatus(from_status)
        to_status = OrderStatus(to_status)
    except ValueError as e:
        raise ValidationError(f"Unknown order status: {e}")

    current = calculate_status(order, now)
    if current != from_status:
        raise InvalidStateTransitionError(
            f"Order status is {current.value}, not {from_status.value}",
            from_status=from_status,
            to_status=to_status,
            current_status=current,
        )

    valid_next = get_next_order_statuses(current)
    if to_status not in valid_next:
        raise InvalidStateTransitionError(
            f"Cannot transition from {current.value} to {to_status.value}. "
            f"Valid transitions: {[s.value for s in valid_next]}",
            from_status=from_status,
            to_status=to_status,
            current_status=current,
        )
    return current


def transition_update(to_status: OrderStatus, now: Optional[datetime] = None) -> Dict[str, datetime]:
    """The single-field write that moves an order into to_status."""
    to_status = OrderStatus(to_status)
    if to_status not in ORDER_STATUS_TIMESTAMP_FIELDS:
        raise ValidationError(f"Orders cannot be moved back to {to_status.value}")
    return {ORDER_STATUS_TIMESTAMP_FIELDS[to_status]: now or utcnow()}


def validate_order_timeline(order) -> List[str]:
    """Chronology problems among the stamped timestamps (empty if consistent)."""
    errors = []
    for earlier, later, message in _TIMELINE_CHECKS:
        first, second = _ts(order, earlier), _ts(order, later)
        if first is not None and second is not None and second < first:
            errors.append(message)

    quoted_at, expired_at = _ts(order, "quoted_at"), _ts(order, "expired_at")
    if expired_at is not None and quoted_at is None:
        errors.append("expired_at requires quoted_at")

    confirmed_at = _ts(order, "confirmed_at")
    if confirmed_at is not None and expired_at is not None and quoted_at is not None:
        if expired_at >= quoted_at:
            errors.append("Order cannot be confirmed on an expired quotation")
    return errors


def get_order_status_description(status: OrderStatus) -> str:
    try:
        return ORDER_STATUS_DESCRIPTIONS[OrderStatus(status)]
    except ValueError:
        return "Unknown status"


def filter_orders_by_status(orders: Iterable, status: OrderStatus, now: Optional[datetime] = None) -> list:
    status = OrderStatus(status)
    now = now or utcnow()
    return [order for order in orders if calculate_status(order, now) == status]


def group_orders_by_status(orders: Iterable, now: Optional[datetime] = None) -> Dict[str, list]:
    now = now or utcnow()
    grouped: Dict[str, list] = {}
    for order in orders:
        grouped.setdefault(calculate_status(order, now).value, []).append(order)
    return grouped


def log_transition(order_id, from_status: OrderStatus, to_status: OrderStatus, actor_id=None):
    logger.info(
        f"Order {order_id} transitioned {OrderStatus(from_status).value} -> "
        f"{OrderStatus(to_status).value} by {actor_id or 'system'}"
    )
