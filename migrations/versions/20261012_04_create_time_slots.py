"""create time slots

Revision ID: 20261012_04
Revises: 20261012_03
Create Date: 2026-10-12 09:55:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261012_04"
down_revision: Union[str, None] = "20261012_03"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "time_slots",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("bay_id", sa.Integer(), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["bay_id"], ["service_bays.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("bay_id", "slot_date", "start_time", name="uq_time_slots_bay_date_start"),
        # Booked slots always carry their owner and free slots never do.
        sa.CheckConstraint(
            "(is_available AND appointment_id IS NULL) OR (NOT is_available AND appointment_id IS NOT NULL)",
            name="ck_time_slots_owner_matches_availability",
        ),
    )
    op.create_index("ix_time_slots_id", "time_slots", ["id"], unique=False)
    op.create_index("ix_time_slots_bay_id", "time_slots", ["bay_id"], unique=False)
    op.create_index("ix_time_slots_appointment_id", "time_slots", ["appointment_id"], unique=False)
    op.create_index(
        "ix_time_slots_date_bay_available",
        "time_slots",
        ["slot_date", "bay_id", "is_available"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_time_slots_date_bay_available", table_name="time_slots")
    op.drop_index("ix_time_slots_appointment_id", table_name="time_slots")
    op.drop_index("ix_time_slots_bay_id", table_name="time_slots")
    op.drop_index("ix_time_slots_id", table_name="time_slots")
    op.drop_table("time_slots")
