"""Order lifecycle policy.

``decide`` answers whether a caller with a given role may move an order from
its current status to a target status. It is pure: no I/O, no logging, and it
never raises. Every call produces a definitive ``Verdict``.

Precedence:

1. ``admin`` is always allowed. This is a break-glass override, not an edge of
   the lifecycle graph, and is checked before the edge table.
2. Otherwise only the edges in ``_EDGE_RULES`` exist, each with its own role
   gate.
3. Anything else is denied with the generic "not permitted" reason. That
   covers same-status requests, every request out of a terminal status, and
   any edge not listed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from app.partsflow.core.clock import Clock, as_naive_utc, utc_now


class OrderStatus(str, Enum):
    NEED_TO_ORDER = "need to order"
    ORDERED = "ordered"
    RECEIVED = "received"
    COMPLETED = "completed"
    OUT_OF_STOCK = "out of stock"
    DISTRO = "distro"
    RETURN_REQUIRED = "return required"
    CANCELLED = "cancelled"


INITIAL_STATUS = OrderStatus.NEED_TO_ORDER


class Role(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Role | str | None) -> Role | None:
        if isinstance(value, Role):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


APPROVAL_DENIED_REASON = "Only managers can approve orders."
OUT_OF_STOCK_DENIED_REASON = "Only managers can mark orders as out of stock."
DEFAULT_CANCELLATION_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class OrderSnapshot:
    status: str
    created_at: datetime


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> Verdict:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> Verdict:
        return cls(allowed=False, reason=reason)


def status_value(status: OrderStatus | str) -> str:
    if isinstance(status, Enum):
        return str(status.value)
    return str(status)


def not_permitted_reason(current: OrderStatus | str, target: OrderStatus | str) -> str:
    return f'Transition from "{status_value(current)}" to "{status_value(target)}" is not permitted.'


def _describe_window(window: timedelta) -> str:
    seconds = int(window.total_seconds())
    if seconds % 60:
        return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"
    minutes = seconds // 60
    if minutes and minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def cancellation_expired_reason(window: timedelta = DEFAULT_CANCELLATION_WINDOW) -> str:
    return f"Cancellation window ({_describe_window(window)}) has expired."


@dataclass(frozen=True)
class _RuleInput:
    order: OrderSnapshot
    role: Role | None
    now: datetime
    cancellation_window: timedelta


EdgeRule = Callable[[_RuleInput], Verdict]


def _managers_only(reason: str) -> EdgeRule:
    def rule(ctx: _RuleInput) -> Verdict:
        if ctx.role is Role.MANAGER:
            return Verdict.allow()
        return Verdict.deny(reason)

    return rule


def _cancel_within_window(ctx: _RuleInput) -> Verdict:
    if ctx.role is Role.MANAGER:
        return Verdict.allow()
    if ctx.role is Role.EMPLOYEE:
        elapsed = as_naive_utc(ctx.now) - as_naive_utc(ctx.order.created_at)
        if elapsed <= ctx.cancellation_window:
            return Verdict.allow()
    return Verdict.deny(cancellation_expired_reason(ctx.cancellation_window))


def _any_staff(current: OrderStatus, target: OrderStatus) -> EdgeRule:
    # No manager gate, but the caller must still hold a known role.
    def rule(ctx: _RuleInput) -> Verdict:
        if ctx.role in (Role.EMPLOYEE, Role.MANAGER):
            return Verdict.allow()
        return Verdict.deny(not_permitted_reason(current, target))

    return rule


_EDGE_RULES: dict[tuple[str, str], EdgeRule] = {
    (OrderStatus.NEED_TO_ORDER.value, OrderStatus.ORDERED.value): _managers_only(APPROVAL_DENIED_REASON),
    (OrderStatus.NEED_TO_ORDER.value, OrderStatus.CANCELLED.value): _cancel_within_window,
    (OrderStatus.NEED_TO_ORDER.value, OrderStatus.OUT_OF_STOCK.value): _managers_only(OUT_OF_STOCK_DENIED_REASON),
    (OrderStatus.ORDERED.value, OrderStatus.RECEIVED.value): _any_staff(OrderStatus.ORDERED, OrderStatus.RECEIVED),
    (OrderStatus.RECEIVED.value, OrderStatus.COMPLETED.value): _any_staff(OrderStatus.RECEIVED, OrderStatus.COMPLETED),
}


def allowed_targets(current: OrderStatus | str) -> list[str]:
    """Targets reachable from ``current`` for some non-admin role."""
    current_value = status_value(current)
    return [target for source, target in _EDGE_RULES if source == current_value]


def decide(
    order: OrderSnapshot,
    target_status: OrderStatus | str,
    role: Role | str | None,
    *,
    now: datetime,
    cancellation_window: timedelta = DEFAULT_CANCELLATION_WINDOW,
) -> Verdict:
    caller_role = Role.parse(role)
    if caller_role is Role.ADMIN:
        return Verdict.allow()

    current = status_value(order.status)
    target = status_value(target_status)
    rule = _EDGE_RULES.get((current, target))
    if rule is None:
        return Verdict.deny(not_permitted_reason(current, target))
    return rule(
        _RuleInput(
            order=order,
            role=caller_role,
            now=now,
            cancellation_window=cancellation_window,
        )
    )


class TransitionAuthority:
    """``decide`` bound to a clock and a cancellation window."""

    def __init__(
        self,
        clock: Clock = utc_now,
        cancellation_window: timedelta = DEFAULT_CANCELLATION_WINDOW,
    ):
        self.clock = clock
        self.cancellation_window = cancellation_window

    def decide(self, order: OrderSnapshot, target_status: OrderStatus | str, role: Role | str | None) -> Verdict:
        return decide(
            order,
            target_status,
            role,
            now=self.clock(),
            cancellation_window=self.cancellation_window,
        )
