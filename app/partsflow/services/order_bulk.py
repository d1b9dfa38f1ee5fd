from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Protocol

from app.partsflow.core.config import settings
from app.partsflow.core.error_catalog import AppError, ErrorCatalog
from app.partsflow.core.logging import log_json
from app.partsflow.core.metrics import metrics
from app.partsflow.services.order_transitions import (
    OrderStatus,
    Role,
    TransitionAuthority,
    Verdict,
    status_value,
)

logger = logging.getLogger(__name__)

CANCEL_REASON_REQUIRED = "A cancellation reason is required."
USE_CANCEL_ACTION = "Use the cancel action to cancel orders."


class OrderStore(Protocol):
    def persist_update(self, order_id: int, fields: Mapping[str, Any]) -> Any: ...

    def persist_cancel(self, order_id: int, reason: str) -> Any: ...

    def persist_delete(self, order_id: int) -> bool: ...


@dataclass(frozen=True)
class OrderRecord:
    """An order as the caller currently sees it. ``fields`` is opaque payload."""

    id: int
    status: str
    created_at: datetime
    cancellation_reason: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class BatchResult:
    operation: str
    success_count: int = 0
    errors: list[str] = field(default_factory=list)
    orders: list[OrderRecord] = field(default_factory=list)
    selected_ids: list[int] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.errors)

    @property
    def reasons(self) -> list[str]:
        return list(dict.fromkeys(self.errors))

    @property
    def message(self) -> str | None:
        if not self.errors:
            return None
        header = f"{self.success_count} order(s) updated, {self.skipped_count} skipped."
        return "\n".join([header, *self.reasons])


@dataclass
class _Fold:
    successes: list[tuple[int, Callable[[OrderRecord], OrderRecord | None]]] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _ItemAttempt:
    order_id: int
    apply: Callable[[OrderRecord], OrderRecord | None] | None = None
    failure: str | None = None


def _unique_ids(selected_ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(int(order_id) for order_id in selected_ids))


def _not_found_reason(order_id: int) -> str:
    return f"Order {order_id} was not found."


def _error_message(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


class BulkOrderService:
    """Applies one operation to every selected order and reports a single outcome.

    Each permitted item is persisted on its own, one after another. A failure on
    one item is recorded and the loop moves on; nothing is rolled back.
    """

    def __init__(self, store: OrderStore, authority: TransitionAuthority | None = None):
        self.store = store
        self.authority = authority or TransitionAuthority()

    def run_bulk_transition(
        self,
        orders: list[OrderRecord],
        selected_ids: Iterable[int],
        target_status: OrderStatus | str,
        role: Role | str,
        *,
        status_filter: OrderStatus | str | None = None,
    ) -> BatchResult:
        target = status_value(target_status)
        if target == OrderStatus.CANCELLED.value:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": USE_CANCEL_ACTION})

        def attempt(order: OrderRecord) -> _ItemAttempt:
            self.store.persist_update(order.id, {"status": target})
            return _ItemAttempt(order.id, apply=lambda current: replace(current, status=target))

        return self._run(
            "status",
            orders,
            selected_ids,
            target=target,
            gate=lambda order: self.authority.decide(order, target, role),
            attempt=attempt,
            status_filter=status_filter,
        )

    def run_bulk_cancel(
        self,
        orders: list[OrderRecord],
        selected_ids: Iterable[int],
        reason: str,
        role: Role | str,
        *,
        status_filter: OrderStatus | str | None = None,
    ) -> BatchResult:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": CANCEL_REASON_REQUIRED})
        cancelled = OrderStatus.CANCELLED.value

        def attempt(order: OrderRecord) -> _ItemAttempt:
            self.store.persist_cancel(order.id, cleaned)
            return _ItemAttempt(
                order.id,
                apply=lambda current: replace(current, status=cancelled, cancellation_reason=cleaned),
            )

        return self._run(
            "cancel",
            orders,
            selected_ids,
            target=cancelled,
            gate=lambda order: self.authority.decide(order, cancelled, role),
            attempt=attempt,
            status_filter=status_filter,
        )

    def run_bulk_delete(
        self,
        orders: list[OrderRecord],
        selected_ids: Iterable[int],
        *,
        status_filter: OrderStatus | str | None = None,
    ) -> BatchResult:
        # The caller is responsible for restricting this path to admins.
        def attempt(order: OrderRecord) -> _ItemAttempt:
            if not self.store.persist_delete(order.id):
                return _ItemAttempt(order.id, failure=f"Order {order.id} could not be deleted.")
            return _ItemAttempt(order.id, apply=lambda current: None)

        return self._run(
            "delete",
            orders,
            selected_ids,
            gate=lambda order: Verdict.allow(),
            attempt=attempt,
            status_filter=status_filter,
        )

    def _run(
        self,
        operation: str,
        orders: list[OrderRecord],
        selected_ids: Iterable[int],
        *,
        target: str | None = None,
        gate: Callable[[OrderRecord], Verdict],
        attempt: Callable[[OrderRecord], _ItemAttempt],
        status_filter: OrderStatus | str | None,
    ) -> BatchResult:
        selection = _unique_ids(selected_ids)
        if len(selection) > settings.BULK_MAX_ITEMS:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "too many orders selected", "max_items": settings.BULK_MAX_ITEMS},
            )

        by_id = {order.id: order for order in orders}
        valid: list[OrderRecord] = []
        fold = _Fold()
        for order_id in selection:
            order = by_id.get(order_id)
            if order is None:
                fold.failures.append(_not_found_reason(order_id))
                continue
            verdict = gate(order)
            if verdict.allowed:
                valid.append(order)
            else:
                fold.failures.append(verdict.reason or "")
                if target is not None:
                    metrics.increment_transition_denied(target)

        for order in valid:
            outcome = self._attempt_one(operation, order, attempt)
            if outcome.failure is not None:
                fold.failures.append(outcome.failure)
            else:
                fold.successes.append((outcome.order_id, outcome.apply))

        result = BatchResult(
            operation=operation,
            success_count=len(fold.successes),
            errors=fold.failures,
            orders=self._visible_orders(orders, fold, status_filter),
            selected_ids=[],
        )
        metrics.record_bulk_items(
            operation=operation,
            succeeded=result.success_count,
            skipped=result.skipped_count,
        )
        log_json(
            logger,
            {
                "event": "order_bulk_completed",
                "operation": operation,
                "selected": len(selection),
                "success_count": result.success_count,
                "skipped_count": result.skipped_count,
                "reasons": result.reasons,
            },
        )
        return result

    def _attempt_one(
        self,
        operation: str,
        order: OrderRecord,
        attempt: Callable[[OrderRecord], _ItemAttempt],
    ) -> _ItemAttempt:
        try:
            return attempt(order)
        except Exception as exc:
            log_json(
                logger,
                {
                    "event": "order_bulk_item_failed",
                    "operation": operation,
                    "order_id": order.id,
                    "error_class": exc.__class__.__name__,
                    "error": _error_message(exc),
                },
                level=logging.WARNING,
            )
            return _ItemAttempt(order.id, failure=_error_message(exc))

    @staticmethod
    def _visible_orders(
        orders: list[OrderRecord],
        fold: _Fold,
        status_filter: OrderStatus | str | None,
    ) -> list[OrderRecord]:
        changes = dict(fold.successes)
        visible: list[OrderRecord] = []
        for order in orders:
            apply = changes.get(order.id)
            updated = apply(order) if apply is not None else order
            if updated is None:
                continue
            if status_filter is not None and updated.status != status_value(status_filter):
                continue
            visible.append(updated)
        return visible
