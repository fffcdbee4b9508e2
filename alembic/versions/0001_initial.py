"""professionals, appointment slots and appointments

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "professionals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(120), nullable=True),
        sa.Column("user_code", sa.String(120), nullable=True, unique=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "appointment_slots",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("professional_id", sa.Uuid(), sa.ForeignKey("professionals.id"), nullable=False),
        sa.Column("appointment_datetime", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        sa.Column("reserved_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_appointment_slots_professional_datetime",
        "appointment_slots",
        ["professional_id", "appointment_datetime"],
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slot_id", sa.Uuid(), sa.ForeignKey("appointment_slots.id"), nullable=False),
        sa.Column("professional_id", sa.Uuid(), sa.ForeignKey("professionals.id"), nullable=False),
        sa.Column("appointment_datetime", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="RESERVED"),
        sa.Column("client_name", sa.String(120), nullable=False),
        sa.Column("client_email", sa.String(255), nullable=False),
        sa.Column("client_phone", sa.String(20), nullable=False),
        sa.Column("client_notes", sa.Text(), nullable=True),
        sa.Column("booked_by_user_id", sa.String(64), nullable=False),
        sa.Column("booked_by_email", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_appointments_booked_by_user_id", "appointments", ["booked_by_user_id"])
    op.create_index(
        "uq_appointments_reserved_slot",
        "appointments",
        ["slot_id"],
        unique=True,
        postgresql_where=sa.text("status = 'RESERVED'"),
        sqlite_where=sa.text("status = 'RESERVED'"),
    )


def downgrade() -> None:
    op.drop_index("uq_appointments_reserved_slot", table_name="appointments")
    op.drop_index("ix_appointments_booked_by_user_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_appointment_slots_professional_datetime", table_name="appointment_slots")
    op.drop_table("appointment_slots")
    op.drop_table("professionals")
