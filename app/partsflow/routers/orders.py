from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Request

from app.partsflow.core.clock import Clock, get_clock
from app.partsflow.core.config import settings
from app.partsflow.core.context import RequestContext
from app.partsflow.core.deps import require_request_context, require_role
from app.partsflow.core.error_catalog import AppError, ErrorCatalog
from app.partsflow.core.logging import log_json
from app.partsflow.core.metrics import metrics
from app.partsflow.db.session import get_db
from app.partsflow.repos.orders import OrderQueryFilters, OrderRepository, to_record
from app.partsflow.schemas.orders import (
    BulkCancelRequest,
    BulkDeleteRequest,
    BulkOperationResponse,
    BulkStatusRequest,
    OrderCreateRequest,
    OrderListResponse,
    OrderResponse,
    OrderTransitionRequest,
)
from app.partsflow.services.audit import AuditEventPayload, AuditService
from app.partsflow.services.order_bulk import (
    CANCEL_REASON_REQUIRED,
    BatchResult,
    BulkOrderService,
    OrderRecord,
)
from app.partsflow.services.order_transitions import OrderStatus, Role, TransitionAuthority


router = APIRouter()
logger = logging.getLogger("partsflow.orders")


def get_transition_authority(clock: Clock = Depends(get_clock)) -> TransitionAuthority:
    return TransitionAuthority(
        clock=clock,
        cancellation_window=timedelta(minutes=settings.CANCELLATION_WINDOW_MINUTES),
    )


def _resolve_store_id(context: RequestContext, store_id: str | None) -> str | None:
    if context.is_admin or not context.store_id:
        return store_id
    if store_id and store_id != context.store_id:
        raise AppError(ErrorCatalog.STORE_SCOPE_MISMATCH)
    return context.store_id


def _record_response(record: OrderRecord) -> OrderResponse:
    return OrderResponse(
        id=record.id,
        status=record.status,
        created_at=record.created_at,
        cancellation_reason=record.cancellation_reason,
        **dict(record.fields),
    )


def _load_order(repo: OrderRepository, context: RequestContext, order_id: int):
    order = repo.get_order(order_id)
    if order is None:
        raise AppError(ErrorCatalog.ORDER_NOT_FOUND, details={"order_id": order_id})
    _resolve_store_id(context, order.store_id)
    return order


def _audit(db, request: Request, context: RequestContext, *, action: str, entity_id: str | None, before, after, metadata) -> None:
    AuditService(db).record_event(
        AuditEventPayload(
            user_id=context.user_id,
            store_id=context.store_id,
            trace_id=getattr(request.state, "trace_id", "") or None,
            actor_role=context.role,
            action=action,
            entity_type="part_order",
            entity_id=entity_id,
            before=before,
            after=after,
            metadata=metadata,
            result="success",
        )
    )


@router.get("/partsflow/orders", response_model=OrderListResponse)
def list_orders(
    store_id: str | None = Query(default=None),
    status: OrderStatus | None = Query(default=None),
    context: RequestContext = Depends(require_request_context),
    db=Depends(get_db),
):
    filters = OrderQueryFilters(
        store_id=_resolve_store_id(context, store_id),
        status=status.value if status else None,
    )
    rows = OrderRepository(db).list_orders(filters)
    return OrderListResponse(rows=[_record_response(to_record(row)) for row in rows], total=len(rows))


@router.get("/partsflow/orders/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    context: RequestContext = Depends(require_request_context),
    db=Depends(get_db),
):
    order = _load_order(OrderRepository(db), context, order_id)
    return _record_response(to_record(order))


@router.post("/partsflow/orders", response_model=OrderResponse, status_code=201)
def create_order(
    request: Request,
    payload: OrderCreateRequest,
    context: RequestContext = Depends(require_request_context),
    db=Depends(get_db),
):
    store_id = _resolve_store_id(context, payload.store_id)
    if not store_id:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "store_id is required"})
    values = payload.model_dump(exclude={"store_id"})
    order = OrderRepository(db).create_order({**values, "store_id": store_id})
    response = _record_response(to_record(order))
    _audit(
        db,
        request,
        context,
        action="part_order.create",
        entity_id=str(order.id),
        before=None,
        after=response.model_dump(mode="json"),
        metadata=None,
    )
    return response


@router.post("/partsflow/orders/{order_id}/transition", response_model=OrderResponse)
def transition_order(
    request: Request,
    order_id: int,
    payload: OrderTransitionRequest,
    context: RequestContext = Depends(require_request_context),
    authority: TransitionAuthority = Depends(get_transition_authority),
    db=Depends(get_db),
):
    repo = OrderRepository(db)
    order = _load_order(repo, context, order_id)
    record = to_record(order)
    target = payload.target_status.value
    if record.status == target:
        return _record_response(record)

    verdict = authority.decide(record, target, context.role)
    if not verdict.allowed:
        metrics.increment_transition_denied(target)
        log_json(
            logger,
            {
                "event": "order_transition_denied",
                "trace_id": context.trace_id,
                "order_id": order_id,
                "from": record.status,
                "to": target,
                "role": context.role,
                "reason": verdict.reason,
            },
            level=logging.WARNING,
        )
        raise AppError(
            ErrorCatalog.TRANSITION_DENIED,
            details={"reason": verdict.reason, "from": record.status, "to": target},
        )

    before = _record_response(record).model_dump(mode="json")
    if payload.target_status is OrderStatus.CANCELLED:
        reason = (payload.cancellation_reason or "").strip()
        if not reason:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": CANCEL_REASON_REQUIRED})
        order = repo.persist_cancel(order_id, reason)
    else:
        order = repo.persist_update(order_id, {"status": target})
    response = _record_response(to_record(order))
    _audit(
        db,
        request,
        context,
        action="part_order.transition",
        entity_id=str(order_id),
        before=before,
        after=response.model_dump(mode="json"),
        metadata={"from": record.status, "to": target},
    )
    return response


def _visible_records(repo: OrderRepository, context: RequestContext, payload) -> list[OrderRecord]:
    filters = OrderQueryFilters(
        store_id=_resolve_store_id(context, payload.store_id),
        status=payload.status_filter.value if payload.status_filter else None,
    )
    return [to_record(row) for row in repo.list_orders(filters)]


def _bulk_response(
    db,
    request: Request,
    context: RequestContext,
    result: BatchResult,
    *,
    selected_ids: list[int],
    metadata: dict | None = None,
) -> BulkOperationResponse:
    response = BulkOperationResponse(
        operation=result.operation,
        success_count=result.success_count,
        skipped_count=result.skipped_count,
        errors=result.errors,
        reasons=result.reasons,
        message=result.message,
        orders=[_record_response(record) for record in result.orders],
        selected_ids=result.selected_ids,
    )
    _audit(
        db,
        request,
        context,
        action=f"part_order.bulk.{result.operation}",
        entity_id=None,
        before=None,
        after={
            "success_count": result.success_count,
            "skipped_count": result.skipped_count,
            "reasons": result.reasons,
        },
        metadata={"order_ids": selected_ids, **(metadata or {})},
    )
    return response


@router.post("/partsflow/orders/bulk/status", response_model=BulkOperationResponse)
def bulk_update_status(
    request: Request,
    payload: BulkStatusRequest,
    context: RequestContext = Depends(require_request_context),
    authority: TransitionAuthority = Depends(get_transition_authority),
    db=Depends(get_db),
):
    repo = OrderRepository(db)
    orders = _visible_records(repo, context, payload)
    result = BulkOrderService(repo, authority).run_bulk_transition(
        orders,
        payload.order_ids,
        payload.target_status,
        context.role,
        status_filter=payload.status_filter,
    )
    return _bulk_response(
        db,
        request,
        context,
        result,
        selected_ids=payload.order_ids,
        metadata={"target_status": payload.target_status.value},
    )


@router.post("/partsflow/orders/bulk/cancel", response_model=BulkOperationResponse)
def bulk_cancel(
    request: Request,
    payload: BulkCancelRequest,
    context: RequestContext = Depends(require_request_context),
    authority: TransitionAuthority = Depends(get_transition_authority),
    db=Depends(get_db),
):
    repo = OrderRepository(db)
    orders = _visible_records(repo, context, payload)
    result = BulkOrderService(repo, authority).run_bulk_cancel(
        orders,
        payload.order_ids,
        payload.reason,
        context.role,
        status_filter=payload.status_filter,
    )
    return _bulk_response(db, request, context, result, selected_ids=payload.order_ids)


@router.post("/partsflow/orders/bulk/delete", response_model=BulkOperationResponse)
def bulk_delete(
    request: Request,
    payload: BulkDeleteRequest,
    context: RequestContext = Depends(require_role(Role.ADMIN)),
    db=Depends(get_db),
):
    repo = OrderRepository(db)
    orders = _visible_records(repo, context, payload)
    result = BulkOrderService(repo).run_bulk_delete(
        orders,
        payload.order_ids,
        status_filter=payload.status_filter,
    )
    return _bulk_response(db, request, context, result, selected_ids=payload.order_ids)
