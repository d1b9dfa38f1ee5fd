from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from app.partsflow.services.order_transitions import OrderStatus


_ORDER_EXAMPLE = {
    "id": 42,
    "created_at": "2025-03-01T15:04:05",
    "updated_at": "2025-03-01T15:04:05",
    "check_in_date": "2025-03-01",
    "order_date": None,
    "part_eta": None,
    "home_connect": False,
    "wo_number": "WO-10442",
    "part_description": "Dishwasher drain pump",
    "technician": "R. Alvarez",
    "store_id": "store-014",
    "cx_name": "Dana Whitfield",
    "cx_phone": "555-0142",
    "notes": None,
    "wo_link": "",
    "part_link": "",
    "status": "need to order",
    "cancellation_reason": None,
}


class OrderResponse(BaseModel):
    id: int
    created_at: datetime
    updated_at: datetime | None = None
    check_in_date: date
    order_date: date | None = None
    part_eta: date | None = None
    home_connect: bool = False
    wo_number: str
    part_description: str
    technician: str
    store_id: str
    cx_name: str
    cx_phone: str
    notes: str | None = None
    wo_link: str = ""
    part_link: str = ""
    status: str
    cancellation_reason: str | None = None

    model_config = {"json_schema_extra": {"example": _ORDER_EXAMPLE}}


class OrderListResponse(BaseModel):
    rows: list[OrderResponse]
    total: int


class OrderCreateRequest(BaseModel):
    check_in_date: date
    order_date: date | None = None
    part_eta: date | None = None
    home_connect: bool = False
    wo_number: str = Field(min_length=1, max_length=64)
    part_description: str = Field(min_length=1, max_length=255)
    technician: str = Field(min_length=1, max_length=120)
    store_id: str | None = Field(default=None, max_length=64)
    cx_name: str = Field(min_length=1, max_length=150)
    cx_phone: str = Field(min_length=1, max_length=40)
    notes: str | None = None
    wo_link: str = Field(default="", max_length=500)
    part_link: str = Field(default="", max_length=500)


class OrderTransitionRequest(BaseModel):
    target_status: OrderStatus
    cancellation_reason: str | None = Field(default=None, max_length=1000)


class BulkSelection(BaseModel):
    order_ids: list[int] = Field(min_length=1)
    store_id: str | None = None
    status_filter: OrderStatus | None = None


class BulkStatusRequest(BulkSelection):
    target_status: OrderStatus


class BulkCancelRequest(BulkSelection):
    reason: str = Field(max_length=1000)


class BulkDeleteRequest(BulkSelection):
    pass


class BulkOperationResponse(BaseModel):
    operation: str
    success_count: int
    skipped_count: int
    errors: list[str]
    reasons: list[str]
    message: str | None = None
    orders: list[OrderResponse]
    selected_ids: list[int]
