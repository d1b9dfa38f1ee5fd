"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2025-03-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "part_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("check_in_date", sa.Date(), nullable=False),
        sa.Column("order_date", sa.Date(), nullable=True),
        sa.Column("part_eta", sa.Date(), nullable=True),
        sa.Column("home_connect", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("wo_number", sa.String(length=64), nullable=False),
        sa.Column("part_description", sa.String(length=255), nullable=False),
        sa.Column("technician", sa.String(length=120), nullable=False),
        sa.Column("store_id", sa.String(length=64), nullable=False),
        sa.Column("cx_name", sa.String(length=150), nullable=False),
        sa.Column("cx_phone", sa.String(length=40), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("wo_link", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("part_link", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="need to order"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_part_orders_store_id", "part_orders", ["store_id"], unique=False)
    op.create_index("ix_part_orders_store_status", "part_orders", ["store_id", "status"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("store_id", sa.String(length=64), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("before_payload", sa.JSON(), nullable=True),
        sa.Column("after_payload", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_user_id", "audit_events", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_events_user_id", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_part_orders_store_status", table_name="part_orders")
    op.drop_index("ix_part_orders_store_id", table_name="part_orders")
    op.drop_table("part_orders")
