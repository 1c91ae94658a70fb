"""Domain enumerations and state-transition rules."""

import enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHING = "matching"
    MATCHED = "matched"
    DRIVER_EN_ROUTE = "driver_en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self not in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active

    @property
    def is_cancellable(self) -> bool:
        return OrderStatus.CANCELLED in ORDER_TRANSITIONS[self]


# State machine: maps current status -> set of valid next statuses.
# A ride in progress or finished cannot be cancelled.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.MATCHING, OrderStatus.CANCELLED}),
    OrderStatus.MATCHING: frozenset({OrderStatus.MATCHED, OrderStatus.CANCELLED}),
    OrderStatus.MATCHED: frozenset(
        {OrderStatus.DRIVER_EN_ROUTE, OrderStatus.CANCELLED}
    ),
    OrderStatus.DRIVER_EN_ROUTE: frozenset(
        {OrderStatus.ARRIVED, OrderStatus.CANCELLED}
    ),
    OrderStatus.ARRIVED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class WriteSource(str, enum.Enum):
    """Where an order update came from."""

    OPTIMISTIC = "optimistic"
    CONFIRMED = "confirmed"


class TimeoutPolicy(str, enum.Enum):
    TREAT_AS_FAILURE = "treat_as_failure"
    IGNORE = "ignore"
