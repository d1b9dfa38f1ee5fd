from __future__ import annotations

from sqlalchemy import select

from app.partsflow.db.models import AuditEvent


class AuditRepository:
    def __init__(self, db):
        self.db = db

    def create(self, event: AuditEvent) -> AuditEvent:
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        query = (
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())
        )
        return self.db.execute(query).scalars().all()

    def list_by_action(self, action: str, *, store_id: str | None = None) -> list[AuditEvent]:
        query = select(AuditEvent).where(AuditEvent.action == action)
        if store_id:
            query = query.where(AuditEvent.store_id == store_id)
        return self.db.execute(query.order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())).scalars().all()
