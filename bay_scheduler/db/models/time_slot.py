from datetime import date, datetime, time

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Time, UniqueConstraint, func, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bay_scheduler.db.base import Base


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("bay_id", "slot_date", "start_time", name="uq_time_slots_bay_date_start"),
        Index("ix_time_slots_date_bay_available", "slot_date", "bay_id", "is_available"),
        CheckConstraint(
            "(is_available AND appointment_id IS NULL) OR (NOT is_available AND appointment_id IS NOT NULL)",
            name="ck_time_slots_owner_matches_availability",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    bay_id: Mapped[int] = mapped_column(ForeignKey("service_bays.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    appointment_id: Mapped[int | None] = mapped_column(
        ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    bay = relationship("ServiceBay", back_populates="time_slots")
    appointment = relationship("Appointment", back_populates="time_slots")
