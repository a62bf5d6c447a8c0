from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Time, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bay_scheduler.db.base import Base


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    CHECKING_OUT = "checking_out"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    BOOKING_FAILED = "booking_failed"
    INVOICED = "invoiced"
    PAID = "paid"


ACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.SCHEDULED.value,
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.CHECKED_IN.value,
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.CHECKING_OUT.value,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
        AppointmentStatus.INVOICED.value,
        AppointmentStatus.PAID.value,
    }
)

# Statuses that never hold a technician or a bay.
RELEASED_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
        AppointmentStatus.BOOKING_FAILED.value,
    }
)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint("customer_id", "idempotency_key", name="uq_appointments_customer_idempotency_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    vehicle_id: Mapped[int | None] = mapped_column(ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    bay_id: Mapped[int] = mapped_column(ForeignKey("service_bays.id", ondelete="RESTRICT"), nullable=False, index=True)
    technician_id: Mapped[int | None] = mapped_column(
        ForeignKey("technicians.id", ondelete="SET NULL"), nullable=True, index=True
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scheduled_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    quoted_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    call_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[str] = mapped_column(String(20), nullable=False, default="dashboard")
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=func.now())
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmation_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customer = relationship("Customer", back_populates="appointments")
    vehicle = relationship("Vehicle")
    bay = relationship("ServiceBay")
    technician = relationship("Technician")
    services = relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentService.id",
    )
    time_slots = relationship("TimeSlot", back_populates="appointment", passive_deletes=True)

    @property
    def scheduled_start(self) -> datetime:
        return datetime.combine(self.scheduled_date, self.scheduled_time)

    @property
    def scheduled_end(self) -> datetime:
        return self.scheduled_start + timedelta(minutes=self.duration_minutes)

    @property
    def service_names(self) -> list[str]:
        return [line.service_name for line in self.services]

    def cancel(self) -> None:
        self.status = AppointmentStatus.CANCELLED.value
        self.cancelled_at = datetime.now(UTC)

    def mark_booking_failed(self) -> None:
        self.status = AppointmentStatus.BOOKING_FAILED.value
        self.deleted_at = datetime.now(UTC)
        # Failed rows never hold an idempotency key.
        self.idempotency_key = None


class AppointmentService(Base):
    __tablename__ = "appointment_services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    appointment_id: Mapped[int] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id", ondelete="RESTRICT"), nullable=False)
    service_name: Mapped[str] = mapped_column(String(120), nullable=False)
    quoted_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    appointment = relationship("Appointment", back_populates="services")
