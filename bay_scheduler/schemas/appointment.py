from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from bay_scheduler.db.models import AppointmentStatus


def require_shop_local_time(value: time | None) -> time | None:
    """Scheduled times are naive shop-local wall-clock times."""
    if value is not None and value.tzinfo is not None:
        raise ValueError("time must not carry a timezone offset")
    return value


class VehicleRequest(BaseModel):
    year: int = Field(gt=1900, le=2100)
    make: str = Field(min_length=1, max_length=60)
    model: str = Field(min_length=1, max_length=60)
    mileage: int | None = Field(default=None, ge=0)


class AppointmentCreateRequest(BaseModel):
    customer_id: int | None = None
    phone: str | None = Field(default=None, max_length=32)
    first_name: str | None = Field(default=None, max_length=80)
    last_name: str | None = Field(default=None, max_length=80)
    email: EmailStr | None = None
    vehicle_id: int | None = None
    vehicle: VehicleRequest | None = None
    service_ids: list[int] = Field(min_length=1, max_length=20)
    scheduled_date: date
    scheduled_time: time
    call_id: str | None = Field(default=None, max_length=128)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("scheduled_time")
    @classmethod
    def validate_scheduled_time(cls, value: time) -> time:
        return require_shop_local_time(value)

    @model_validator(mode="after")
    def validate_customer_reference(self) -> "AppointmentCreateRequest":
        if self.customer_id is None and not self.phone:
            raise ValueError("customer_id or phone is required")
        return self


class AppointmentRescheduleRequest(BaseModel):
    scheduled_date: date
    scheduled_time: time

    @field_validator("scheduled_time")
    @classmethod
    def validate_scheduled_time(cls, value: time) -> time:
        return require_shop_local_time(value)


class AppointmentAddServicesRequest(BaseModel):
    service_ids: list[int] = Field(min_length=1, max_length=20)


class AppointmentStatusUpdateRequest(BaseModel):
    status: AppointmentStatus


class AppointmentServiceLineResponse(BaseModel):
    service_id: int
    service_name: str
    quoted_price: Decimal
    duration_minutes: int

    model_config = {"from_attributes": True}


class AppointmentResponse(BaseModel):
    id: int
    customer_id: int
    vehicle_id: int | None
    bay_id: int
    technician_id: int | None
    scheduled_date: date
    scheduled_time: time
    duration_minutes: int
    status: str
    display_status: str | None = None
    quoted_total: Decimal
    call_id: str | None
    created_by: str
    services: list[AppointmentServiceLineResponse]
    created_at: datetime
    cancelled_at: datetime | None
    confirmation_sent_at: datetime | None

    model_config = {"from_attributes": True}
