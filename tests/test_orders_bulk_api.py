from datetime import datetime, timedelta

from app.partsflow.core.error_catalog import ErrorCatalog
from app.partsflow.db.models import PartOrder
from app.partsflow.repos.audit import AuditRepository
from tests.order_helpers import STORE_A, STORE_B, auth_headers, seed_order


def test_bulk_status_reports_partial_success(client, db_session, frozen_clock):
    approve = seed_order(db_session, created_at=frozen_clock.now, wo_number="WO-1")
    already_ordered = seed_order(db_session, created_at=frozen_clock.now, wo_number="WO-2", status="ordered")

    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("manager"),
        json={"order_ids": [approve.id, already_ordered.id], "target_status": "ordered"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success_count"] == 1
    assert body["skipped_count"] == 1
    assert body["errors"] == ['Transition from "ordered" to "ordered" is not permitted.']
    assert body["message"] == (
        "1 order(s) updated, 1 skipped.\n"
        'Transition from "ordered" to "ordered" is not permitted.'
    )
    assert body["selected_ids"] == []
    assert {row["id"]: row["status"] for row in body["orders"]} == {
        approve.id: "ordered",
        already_ordered.id: "ordered",
    }

    db_session.expire_all()
    assert db_session.get(PartOrder, approve.id).status == "ordered"


def test_bulk_status_with_filter_returns_remaining_view(client, db_session, frozen_clock):
    pending = [seed_order(db_session, created_at=frozen_clock.now, wo_number=f"WO-{i}") for i in range(3)]

    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("manager"),
        json={
            "order_ids": [pending[0].id, pending[1].id],
            "target_status": "out of stock",
            "status_filter": "need to order",
        },
    )
    body = response.json()
    assert body["success_count"] == 2
    assert body["message"] is None
    assert [row["id"] for row in body["orders"]] == [pending[2].id]


def test_bulk_status_duplicate_denials_collapse(client, db_session, frozen_clock):
    orders = [seed_order(db_session, created_at=frozen_clock.now, wo_number=f"WO-{i}") for i in range(5)]

    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("employee"),
        json={"order_ids": [order.id for order in orders], "target_status": "ordered"},
    )
    body = response.json()
    assert body["success_count"] == 0
    assert body["skipped_count"] == 5
    assert body["reasons"] == ["Only managers can approve orders."]
    assert body["message"] == "0 order(s) updated, 5 skipped.\nOnly managers can approve orders."


def test_bulk_status_rejects_cancel_target(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("manager"),
        json={"order_ids": [order.id], "target_status": "cancelled"},
    )
    assert response.status_code == 422
    assert response.json()["details"]["message"] == "Use the cancel action to cancel orders."


def test_bulk_status_skips_orders_outside_store_scope(client, db_session, frozen_clock):
    foreign = seed_order(db_session, created_at=frozen_clock.now, store_id=STORE_B)

    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("manager"),
        json={"order_ids": [foreign.id], "target_status": "ordered"},
    )
    body = response.json()
    assert body["success_count"] == 0
    assert body["errors"] == [f"Order {foreign.id} was not found."]

    db_session.expire_all()
    assert db_session.get(PartOrder, foreign.id).status == "need to order"


def test_bulk_cancel_respects_window_per_order(client, db_session, frozen_clock):
    fresh = seed_order(db_session, created_at=frozen_clock.now - timedelta(minutes=20), wo_number="WO-F")
    stale = seed_order(db_session, created_at=frozen_clock.now - timedelta(minutes=75), wo_number="WO-S")

    response = client.post(
        "/partsflow/orders/bulk/cancel",
        headers=auth_headers("employee"),
        json={"order_ids": [fresh.id, stale.id], "reason": "Part discontinued"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success_count"] == 1
    assert body["errors"] == ["Cancellation window (1 hour) has expired."]
    rows = {row["id"]: row for row in body["orders"]}
    assert rows[fresh.id]["status"] == "cancelled"
    assert rows[fresh.id]["cancellation_reason"] == "Part discontinued"
    assert rows[stale.id]["status"] == "need to order"

    db_session.expire_all()
    assert db_session.get(PartOrder, fresh.id).cancellation_reason == "Part discontinued"
    assert db_session.get(PartOrder, stale.id).cancellation_reason is None

    events = AuditRepository(db_session).list_by_action("part_order.bulk.cancel", store_id=STORE_A)
    assert len(events) == 1
    assert events[0].after_payload["success_count"] == 1
    assert events[0].event_metadata["order_ids"] == [fresh.id, stale.id]
    assert AuditRepository(db_session).list_by_action("part_order.bulk.cancel", store_id=STORE_B) == []


def test_bulk_cancel_requires_reason(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    response = client.post(
        "/partsflow/orders/bulk/cancel",
        headers=auth_headers("manager"),
        json={"order_ids": [order.id], "reason": "  "},
    )
    assert response.status_code == 422
    assert response.json()["details"]["message"] == "A cancellation reason is required."


def test_bulk_delete_is_admin_only(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    response = client.post(
        "/partsflow/orders/bulk/delete",
        headers=auth_headers("manager"),
        json={"order_ids": [order.id]},
    )
    assert response.status_code == 403
    assert response.json()["code"] == ErrorCatalog.PERMISSION_DENIED.code


def test_bulk_delete_removes_orders(client, db_session, frozen_clock):
    keep = seed_order(db_session, created_at=frozen_clock.now, wo_number="WO-KEEP")
    drop = seed_order(db_session, created_at=frozen_clock.now, wo_number="WO-DROP", status="completed")

    drop_id = drop.id
    response = client.post(
        "/partsflow/orders/bulk/delete",
        headers=auth_headers("admin", store_id=None),
        json={"order_ids": [drop_id, 424242]},
    )
    body = response.json()
    assert body["success_count"] == 1
    assert body["errors"] == ["Order 424242 was not found."]
    assert [row["id"] for row in body["orders"]] == [keep.id]

    db_session.expire_all()
    assert db_session.get(PartOrder, drop_id) is None


def test_bulk_requires_selection(client):
    response = client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("manager"),
        json={"order_ids": [], "target_status": "ordered"},
    )
    assert response.status_code == 422


def test_bulk_denials_are_counted_in_metrics(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)
    client.post(
        "/partsflow/orders/bulk/status",
        headers=auth_headers("employee"),
        json={"order_ids": [order.id], "target_status": "ordered"},
    )

    response = client.get("/partsflow/ops/metrics")
    assert response.status_code == 200
    assert "order_transition_denied_total" in response.text
    assert "order_bulk_items_total" in response.text
