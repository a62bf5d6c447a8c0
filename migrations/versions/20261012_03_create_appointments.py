"""create appointments

Revision ID: 20261012_03
Revises: 20261012_02
Create Date: 2026-10-12 09:40:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261012_03"
down_revision: Union[str, None] = "20261012_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        sa.Column("bay_id", sa.Integer(), nullable=False),
        sa.Column("technician_id", sa.Integer(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled"),
        sa.Column("quoted_total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("call_id", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("created_by", sa.String(length=20), nullable=False, server_default="dashboard"),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["vehicle_id"], ["vehicles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bays.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["technician_id"], ["technicians.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("customer_id", "idempotency_key", name="uq_appointments_customer_idempotency_key"),
    )
    op.create_index("ix_appointments_id", "appointments", ["id"], unique=False)
    op.create_index("ix_appointments_customer_id", "appointments", ["customer_id"], unique=False)
    op.create_index("ix_appointments_bay_id", "appointments", ["bay_id"], unique=False)
    op.create_index("ix_appointments_technician_id", "appointments", ["technician_id"], unique=False)
    op.create_index("ix_appointments_scheduled_date", "appointments", ["scheduled_date"], unique=False)
    op.create_index("ix_appointments_call_id", "appointments", ["call_id"], unique=False)

    op.create_table(
        "appointment_services",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), nullable=False),
        sa.Column("service_name", sa.String(length=120), nullable=False),
        sa.Column("quoted_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["service_id"], ["services.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_appointment_services_id", "appointment_services", ["id"], unique=False)
    op.create_index("ix_appointment_services_appointment_id", "appointment_services", ["appointment_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_appointment_services_appointment_id", table_name="appointment_services")
    op.drop_index("ix_appointment_services_id", table_name="appointment_services")
    op.drop_table("appointment_services")
    op.drop_index("ix_appointments_call_id", table_name="appointments")
    op.drop_index("ix_appointments_scheduled_date", table_name="appointments")
    op.drop_index("ix_appointments_technician_id", table_name="appointments")
    op.drop_index("ix_appointments_bay_id", table_name="appointments")
    op.drop_index("ix_appointments_customer_id", table_name="appointments")
    op.drop_index("ix_appointments_id", table_name="appointments")
    op.drop_table("appointments")
