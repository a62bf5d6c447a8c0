import logging
import re
from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from bay_scheduler.db.models import Customer, Vehicle

logger = logging.getLogger(__name__)

CUSTOMER_NOT_FOUND_DETAIL = "Customer not found"
VEHICLE_NOT_FOUND_DETAIL = "Vehicle not found for this customer"
CUSTOMER_REFERENCE_REQUIRED_DETAIL = "Either customer_id or a phone number is required"
INVALID_PHONE_DETAIL = "Phone number must contain at least 10 digits"
MISSING_INFO_DETAIL = "A few details are needed before booking"

_NON_DIGITS = re.compile(r"\D")


@dataclass
class VehicleInput:
    year: int | None = None
    make: str | None = None
    model: str | None = None
    mileage: int | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.year and self.year > 1900 and self.make and self.model)


@dataclass
class CustomerInput:
    customer_id: int | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    vehicle_id: int | None = None
    vehicle: VehicleInput | None = None


def normalize_phone(phone: str) -> str:
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) < 10:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=INVALID_PHONE_DETAIL)
    return f"+{digits}"


def _missing_info(message: str, missing: list[str]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": message, "reason": "missing_info", "missing_info": missing},
    )


def _primary_vehicle(customer: Customer) -> Vehicle | None:
    if not customer.vehicles:
        return None
    for vehicle in customer.vehicles:
        if vehicle.is_primary:
            return vehicle
    return customer.vehicles[0]


def _add_vehicle(db: Session, customer: Customer, data: VehicleInput) -> Vehicle:
    vehicle = Vehicle(
        customer=customer,
        year=data.year,
        make=data.make.strip(),
        model=data.model.strip(),
        mileage=data.mileage,
        is_primary=not customer.vehicles,
    )
    db.add(vehicle)
    return vehicle


def resolve_customer(db: Session, data: CustomerInput) -> tuple[Customer, Vehicle]:
    """Look up or create the customer and pick the vehicle for a booking.

    New customers need a first name and a vehicle; existing customers need a
    vehicle on file or in the request. All missing pieces are reported at once.
    Nothing is committed here.
    """
    customer: Customer | None = None
    if data.customer_id is not None:
        customer = db.get(Customer, data.customer_id)
        if customer is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=CUSTOMER_NOT_FOUND_DETAIL)
    elif data.phone:
        normalized = normalize_phone(data.phone)
        customer = db.scalar(select(Customer).where(Customer.phone_normalized == normalized))
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=CUSTOMER_REFERENCE_REQUIRED_DETAIL
        )

    vehicle_supplied = data.vehicle is not None and data.vehicle.is_complete

    if customer is None:
        missing = []
        if not (data.first_name and data.first_name.strip()):
            missing.append("name")
        if not vehicle_supplied:
            missing.append("vehicle")
        if missing:
            raise _missing_info(MISSING_INFO_DETAIL, missing)

        customer = Customer(
            phone=data.phone.strip(),
            phone_normalized=normalize_phone(data.phone),
            first_name=data.first_name.strip(),
            last_name=(data.last_name or "").strip() or None,
            email=data.email,
        )
        db.add(customer)
        vehicle = _add_vehicle(db, customer, data.vehicle)
        db.flush()
        logger.info("customer_created customer_id=%s", customer.id)
        return customer, vehicle

    if not customer.first_name and data.first_name:
        customer.first_name = data.first_name.strip()
        customer.last_name = customer.last_name or (data.last_name or "").strip() or None
    if not customer.email and data.email:
        customer.email = data.email

    if data.vehicle_id is not None:
        vehicle = next((item for item in customer.vehicles if item.id == data.vehicle_id), None)
        if vehicle is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=VEHICLE_NOT_FOUND_DETAIL)
    elif vehicle_supplied:
        vehicle = _add_vehicle(db, customer, data.vehicle)
    else:
        vehicle = _primary_vehicle(customer)
        if vehicle is None:
            raise _missing_info(MISSING_INFO_DETAIL, ["vehicle"])

    db.flush()
    return customer, vehicle
