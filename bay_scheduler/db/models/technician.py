from datetime import datetime, time

from sqlalchemy import Boolean, DateTime, ForeignKey, SmallInteger, String, Time, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bay_scheduler.db.base import Base


class Technician(Base):
    __tablename__ = "technicians"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(80), nullable=True)
    skill_level: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    bay_assignments = relationship(
        "TechnicianBayAssignment", back_populates="technician", cascade="all, delete-orphan"
    )
    schedules = relationship("TechnicianSchedule", back_populates="technician", cascade="all, delete-orphan")


class TechnicianBayAssignment(Base):
    __tablename__ = "technician_bay_assignments"
    __table_args__ = (
        UniqueConstraint("technician_id", "bay_id", name="uq_technician_bay_assignment"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    technician_id: Mapped[int] = mapped_column(
        ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bay_id: Mapped[int] = mapped_column(ForeignKey("service_bays.id", ondelete="CASCADE"), nullable=False, index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    technician = relationship("Technician", back_populates="bay_assignments")
    bay = relationship("ServiceBay", back_populates="technician_assignments")


class TechnicianSchedule(Base):
    """Recurring weekly shift. ``day_of_week`` follows ``date.weekday()`` (Monday == 0)."""

    __tablename__ = "technician_schedules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    technician_id: Mapped[int] = mapped_column(
        ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    technician = relationship("Technician", back_populates="schedules")
