from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import select

from app.partsflow.core.clock import utc_now
from app.partsflow.core.error_catalog import AppError, ErrorCatalog
from app.partsflow.db.models import PartOrder
from app.partsflow.services.order_bulk import OrderRecord
from app.partsflow.services.order_transitions import INITIAL_STATUS, OrderStatus

# Columns the core reads; everything else rides along as opaque payload.
_CORE_COLUMNS = {"id", "status", "created_at", "cancellation_reason"}
_UPDATABLE_COLUMNS = {"status"}


@dataclass(frozen=True)
class OrderQueryFilters:
    store_id: str | None = None
    status: str | None = None


def to_record(order: PartOrder) -> OrderRecord:
    payload = {
        column.key: getattr(order, column.key)
        for column in PartOrder.__table__.columns
        if column.key not in _CORE_COLUMNS
    }
    return OrderRecord(
        id=order.id,
        status=order.status,
        created_at=order.created_at,
        cancellation_reason=order.cancellation_reason,
        fields=payload,
    )


class OrderRepository:
    """SQLAlchemy-backed order store. Each write commits its own unit of work."""

    def __init__(self, db):
        self.db = db

    def list_orders(self, filters: OrderQueryFilters) -> list[PartOrder]:
        query = select(PartOrder)
        if filters.store_id:
            query = query.where(PartOrder.store_id == filters.store_id)
        if filters.status:
            query = query.where(PartOrder.status == filters.status)
        query = query.order_by(PartOrder.created_at.desc(), PartOrder.id.desc())
        return self.db.execute(query).scalars().all()

    def get_order(self, order_id: int) -> PartOrder | None:
        return self.db.execute(select(PartOrder).where(PartOrder.id == order_id)).scalars().first()

    def create_order(self, values: Mapping[str, Any]) -> PartOrder:
        now = utc_now()
        order = PartOrder(
            **dict(values),
            status=INITIAL_STATUS.value,
            cancellation_reason=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def persist_update(self, order_id: int, fields: Mapping[str, Any]) -> PartOrder:
        unknown = set(fields).difference(_UPDATABLE_COLUMNS)
        if unknown:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "fields cannot be updated", "fields": sorted(unknown)},
            )
        return self._write(order_id, dict(fields))

    def persist_cancel(self, order_id: int, reason: str) -> PartOrder:
        return self._write(
            order_id,
            {"status": OrderStatus.CANCELLED.value, "cancellation_reason": reason},
        )

    def persist_delete(self, order_id: int) -> bool:
        order = self.get_order(order_id)
        if order is None:
            return False
        try:
            self.db.delete(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def _write(self, order_id: int, values: dict[str, Any]) -> PartOrder:
        order = self.get_order(order_id)
        if order is None:
            raise AppError(ErrorCatalog.ORDER_NOT_FOUND, details={"order_id": order_id})
        try:
            for key, value in values.items():
                setattr(order, key, value)
            order.updated_at = utc_now()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order
