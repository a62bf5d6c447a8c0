from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from bay_scheduler.api.deps import NotifierDep, idempotency_key_header
from bay_scheduler.api.pagination import LimitParam, OffsetParam
from bay_scheduler.core.clock import business_now
from bay_scheduler.db.models import Appointment, AppointmentStatus
from bay_scheduler.db.session import get_db
from bay_scheduler.schemas.appointment import (
    AppointmentAddServicesRequest,
    AppointmentCreateRequest,
    AppointmentRescheduleRequest,
    AppointmentResponse,
    AppointmentStatusUpdateRequest,
)
from bay_scheduler.services.booking_service import (
    add_services,
    book_appointment,
    cancel_appointment,
    get_appointment,
    list_appointments,
    reschedule_appointment,
    update_status,
)
from bay_scheduler.services.customer_service import CustomerInput, VehicleInput
from bay_scheduler.services.status_service import display_status

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_response(appointment: Appointment) -> AppointmentResponse:
    response = AppointmentResponse.model_validate(appointment)
    response.display_status = display_status(appointment, business_now())
    return response


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreateRequest,
    notifier: NotifierDep,
    idempotency_key: str | None = Depends(idempotency_key_header),
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    vehicle = None
    if payload.vehicle is not None:
        vehicle = VehicleInput(**payload.vehicle.model_dump())
    appointment = book_appointment(
        db=db,
        notifier=notifier,
        customer=CustomerInput(
            customer_id=payload.customer_id,
            phone=payload.phone,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            vehicle_id=payload.vehicle_id,
            vehicle=vehicle,
        ),
        service_ids=payload.service_ids,
        scheduled_date=payload.scheduled_date,
        scheduled_time=payload.scheduled_time,
        call_id=payload.call_id,
        notes=payload.notes,
        idempotency_key=idempotency_key,
    )
    return _to_response(appointment)


@router.get("", response_model=list[AppointmentResponse], status_code=status.HTTP_200_OK)
def list_all_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[AppointmentResponse]:
    appointments = list_appointments(
        db=db,
        date_from=date_from,
        date_to=date_to,
        status_filter=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return [_to_response(appointment) for appointment in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse, status_code=status.HTTP_200_OK)
def get_appointment_by_id(appointment_id: int, db: Session = Depends(get_db)) -> AppointmentResponse:
    return _to_response(get_appointment(db=db, appointment_id=appointment_id))


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse, status_code=status.HTTP_200_OK)
def cancel_existing_appointment(
    appointment_id: int,
    notifier: NotifierDep,
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = cancel_appointment(db=db, notifier=notifier, appointment_id=appointment_id)
    return _to_response(appointment)


@router.patch("/{appointment_id}/reschedule", response_model=AppointmentResponse, status_code=status.HTTP_200_OK)
def reschedule_existing_appointment(
    appointment_id: int,
    payload: AppointmentRescheduleRequest,
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = reschedule_appointment(
        db=db,
        appointment_id=appointment_id,
        new_date=payload.scheduled_date,
        new_time=payload.scheduled_time,
    )
    return _to_response(appointment)


@router.post("/{appointment_id}/services", response_model=AppointmentResponse, status_code=status.HTTP_200_OK)
def add_services_to_appointment(
    appointment_id: int,
    payload: AppointmentAddServicesRequest,
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = add_services(db=db, appointment_id=appointment_id, service_ids=payload.service_ids)
    return _to_response(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse, status_code=status.HTTP_200_OK)
def change_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdateRequest,
    notifier: NotifierDep,
    db: Session = Depends(get_db),
) -> AppointmentResponse:
    appointment = update_status(
        db=db,
        notifier=notifier,
        appointment_id=appointment_id,
        target=payload.status.value,
    )
    return _to_response(appointment)
