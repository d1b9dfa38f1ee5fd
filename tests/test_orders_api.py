from datetime import datetime, timedelta

from app.partsflow.core.error_catalog import ErrorCatalog
from app.partsflow.db.models import AuditEvent, PartOrder
from app.partsflow.repos.audit import AuditRepository
from tests.order_helpers import STORE_A, STORE_B, auth_headers, order_payload, seed_order


def test_create_order_starts_in_need_to_order(client, db_session):
    response = client.post(
        "/partsflow/orders",
        headers=auth_headers("employee"),
        json=order_payload(status="completed"),
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "need to order"
    assert body["store_id"] == STORE_A
    assert body["cancellation_reason"] is None
    assert body["home_connect"] is True

    event = db_session.query(AuditEvent).filter(AuditEvent.action == "part_order.create").first()
    assert event is not None
    assert event.entity_id == str(body["id"])


def test_create_order_requires_store(client):
    response = client.post(
        "/partsflow/orders",
        headers=auth_headers("admin", store_id=None),
        json=order_payload(),
    )
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.VALIDATION_ERROR.code


def test_requests_without_token_are_rejected(client):
    response = client.get("/partsflow/orders")
    assert response.status_code == 401
    assert response.json()["code"] == ErrorCatalog.INVALID_TOKEN.code


def test_unknown_role_is_rejected(client):
    response = client.get("/partsflow/orders", headers=auth_headers("owner"))
    assert response.status_code == 403
    assert response.json()["code"] == ErrorCatalog.PERMISSION_DENIED.code


def test_list_orders_is_scoped_and_filtered(client, db_session):
    now = datetime(2025, 3, 1, 12, 0, 0)
    seed_order(db_session, created_at=now - timedelta(hours=2), wo_number="WO-A1")
    seed_order(db_session, created_at=now - timedelta(hours=1), wo_number="WO-A2", status="ordered")
    seed_order(db_session, created_at=now, wo_number="WO-B1", store_id=STORE_B)

    scoped = client.get("/partsflow/orders", headers=auth_headers("employee"))
    assert scoped.status_code == 200
    assert [row["wo_number"] for row in scoped.json()["rows"]] == ["WO-A2", "WO-A1"]

    filtered = client.get("/partsflow/orders", params={"status": "ordered"}, headers=auth_headers("employee"))
    assert [row["wo_number"] for row in filtered.json()["rows"]] == ["WO-A2"]

    everything = client.get("/partsflow/orders", headers=auth_headers("admin", store_id=None))
    assert everything.json()["total"] == 3

    cross_store = client.get("/partsflow/orders", params={"store_id": STORE_B}, headers=auth_headers("manager"))
    assert cross_store.status_code == 403
    assert cross_store.json()["code"] == ErrorCatalog.STORE_SCOPE_MISMATCH.code


def test_get_missing_order_returns_not_found(client):
    response = client.get("/partsflow/orders/9999", headers=auth_headers("manager"))
    assert response.status_code == 404
    assert response.json()["code"] == ErrorCatalog.ORDER_NOT_FOUND.code


def test_employee_cancels_within_window_then_expiry_on_fresh_order(client, db_session, frozen_clock):
    created = datetime(2025, 3, 1, 9, 0, 0)
    early = seed_order(db_session, created_at=created, wo_number="WO-EARLY")
    late = seed_order(db_session, created_at=created, wo_number="WO-LATE")

    frozen_clock.now = created + timedelta(minutes=30)
    allowed = client.post(
        f"/partsflow/orders/{early.id}/transition",
        headers=auth_headers("employee"),
        json={"target_status": "cancelled", "cancellation_reason": "Customer bought a new unit"},
    )
    assert allowed.status_code == 200
    assert allowed.json()["status"] == "cancelled"
    assert allowed.json()["cancellation_reason"] == "Customer bought a new unit"

    frozen_clock.now = created + timedelta(minutes=90)
    denied = client.post(
        f"/partsflow/orders/{late.id}/transition",
        headers=auth_headers("employee"),
        json={"target_status": "cancelled", "cancellation_reason": "Customer bought a new unit"},
    )
    assert denied.status_code == 409
    body = denied.json()
    assert body["code"] == ErrorCatalog.TRANSITION_DENIED.code
    assert body["details"]["reason"] == "Cancellation window (1 hour) has expired."

    db_session.expire_all()
    row = db_session.get(PartOrder, late.id)
    assert row.status == "need to order"
    assert row.cancellation_reason is None


def test_out_of_stock_is_manager_only(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    denied = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("employee"),
        json={"target_status": "out of stock"},
    )
    assert denied.status_code == 409
    assert denied.json()["details"]["reason"] == "Only managers can mark orders as out of stock."

    allowed = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("manager"),
        json={"target_status": "out of stock"},
    )
    assert allowed.status_code == 200
    assert allowed.json()["status"] == "out of stock"


def test_single_cancel_requires_reason(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    response = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("manager"),
        json={"target_status": "cancelled", "cancellation_reason": "   "},
    )
    assert response.status_code == 422
    assert response.json()["details"]["message"] == "A cancellation reason is required."


def test_same_status_is_a_no_op(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now, status="ordered")

    response = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("employee"),
        json={"target_status": "ordered"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "ordered"
    assert db_session.query(AuditEvent).filter(AuditEvent.action == "part_order.transition").count() == 0


def test_admin_reopens_terminal_order(client, db_session, frozen_clock):
    order = seed_order(
        db_session,
        created_at=frozen_clock.now - timedelta(days=10),
        status="cancelled",
        cancellation_reason="Entered twice",
    )

    response = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("admin"),
        json={"target_status": "need to order"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "need to order"
    assert response.json()["cancellation_reason"] == "Entered twice"

    history = AuditRepository(db_session).list_for_entity("part_order", str(order.id))
    assert [event.action for event in history] == ["part_order.transition"]
    assert history[0].event_metadata == {"from": "cancelled", "to": "need to order"}
    assert history[0].actor_role == "admin"


def test_unknown_target_status_is_a_validation_error(client, db_session, frozen_clock):
    order = seed_order(db_session, created_at=frozen_clock.now)

    response = client.post(
        f"/partsflow/orders/{order.id}/transition",
        headers=auth_headers("admin"),
        json={"target_status": "teleported"},
    )
    assert response.status_code == 422
    assert response.json()["code"] == ErrorCatalog.VALIDATION_ERROR.code
