"""create bays, technicians and services

Revision ID: 20261012_01
Revises:
Create Date: 2026-10-12 09:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261012_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "service_bays",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("bay_type", sa.String(length=40), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_service_bays_id", "service_bays", ["id"], unique=False)
    op.create_index("ix_service_bays_bay_type", "service_bays", ["bay_type"], unique=False)

    op.create_table(
        "technicians",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=80), nullable=False),
        sa.Column("last_name", sa.String(length=80), nullable=True),
        sa.Column("skill_level", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_technicians_id", "technicians", ["id"], unique=False)

    op.create_table(
        "technician_bay_assignments",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("technician_id", sa.Integer(), nullable=False),
        sa.Column("bay_id", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["technician_id"], ["technicians.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bays.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("technician_id", "bay_id", name="uq_technician_bay_assignment"),
    )
    op.create_index("ix_technician_bay_assignments_id", "technician_bay_assignments", ["id"], unique=False)
    op.create_index(
        "ix_technician_bay_assignments_technician_id", "technician_bay_assignments", ["technician_id"], unique=False
    )
    op.create_index("ix_technician_bay_assignments_bay_id", "technician_bay_assignments", ["bay_id"], unique=False)

    op.create_table(
        "technician_schedules",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("technician_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["technician_id"], ["technicians.id"], ondelete="CASCADE"),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_technician_schedules_day_of_week"),
    )
    op.create_index("ix_technician_schedules_id", "technician_schedules", ["id"], unique=False)
    op.create_index("ix_technician_schedules_technician_id", "technician_schedules", ["technician_id"], unique=False)

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("required_bay_type", sa.String(length=40), nullable=False),
        sa.Column("required_skill_level", sa.String(length=20), nullable=False, server_default="junior"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_services_id", "services", ["id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_services_id", table_name="services")
    op.drop_table("services")
    op.drop_index("ix_technician_schedules_technician_id", table_name="technician_schedules")
    op.drop_index("ix_technician_schedules_id", table_name="technician_schedules")
    op.drop_table("technician_schedules")
    op.drop_index("ix_technician_bay_assignments_bay_id", table_name="technician_bay_assignments")
    op.drop_index("ix_technician_bay_assignments_technician_id", table_name="technician_bay_assignments")
    op.drop_index("ix_technician_bay_assignments_id", table_name="technician_bay_assignments")
    op.drop_table("technician_bay_assignments")
    op.drop_index("ix_technicians_id", table_name="technicians")
    op.drop_table("technicians")
    op.drop_index("ix_service_bays_bay_type", table_name="service_bays")
    op.drop_index("ix_service_bays_id", table_name="service_bays")
    op.drop_table("service_bays")
