from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bay_scheduler.db.base import Base


class ServiceBay(Base):
    __tablename__ = "service_bays"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    bay_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    time_slots = relationship("TimeSlot", back_populates="bay", cascade="all, delete-orphan")
    technician_assignments = relationship("TechnicianBayAssignment", back_populates="bay")
