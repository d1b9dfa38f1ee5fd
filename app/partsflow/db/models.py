from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.partsflow.core.clock import utc_now


class Base(DeclarativeBase):
    pass


class PartOrder(Base):
    __tablename__ = "part_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    order_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    part_eta: Mapped[date | None] = mapped_column(Date, nullable=True)
    home_connect: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wo_number: Mapped[str] = mapped_column(String(64), nullable=False)
    part_description: Mapped[str] = mapped_column(String(255), nullable=False)
    technician: Mapped[str] = mapped_column(String(120), nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    cx_name: Mapped[str] = mapped_column(String(150), nullable=False)
    cx_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    wo_link: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    part_link: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="need to order", nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    store_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    before_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    result: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)


Index("ix_part_orders_store_status", PartOrder.store_id, PartOrder.status)
