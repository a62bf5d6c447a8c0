"""Book, cancel, reschedule and extend appointments on top of the slot reservation protocol."""

import logging
from datetime import UTC, date, datetime, time

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bay_scheduler.core.clock import business_now
from bay_scheduler.core.config import settings
from bay_scheduler.core.metrics import RESCHEDULE_COMPENSATIONS
from bay_scheduler.db.models import (
    Appointment,
    AppointmentService,
    AppointmentStatus,
    Customer,
    Service,
)
from bay_scheduler.services.availability_service import find_bay_with_free_window
from bay_scheduler.services.business_hours import minutes_of_day, validate_business_window
from bay_scheduler.services.customer_service import CustomerInput, normalize_phone, resolve_customer
from bay_scheduler.services.notification_service import Notifier, notify_safely
from bay_scheduler.services.requirements import (
    ServiceRequirements,
    bay_type_rank,
    load_services,
    resolve_requirements,
)
from bay_scheduler.services.reservation_service import release_slots, reserve_slots
from bay_scheduler.services.status_service import apply_transition, ensure_transition
from bay_scheduler.services.technician_service import assign_technician

logger = logging.getLogger(__name__)

APPOINTMENT_NOT_FOUND_DETAIL = "Appointment not found"
WINDOW_UNAVAILABLE_DETAIL = "That time is not available. Search availability again."
SLOT_TAKEN_DETAIL = "That time was just booked by someone else. Search availability again."
RESCHEDULE_CONFLICT_DETAIL = "The new time could not be reserved; the original appointment was kept"
NOT_RESCHEDULABLE_DETAIL = "Only scheduled or confirmed appointments can be rescheduled"
NOT_EXTENDABLE_DETAIL = "Services can only be added to appointments that have not finished"
EXTENSION_PAST_CLOSE_DETAIL = "The added work would run past closing time"
EXTENSION_UNAVAILABLE_DETAIL = "The bay is booked right after this appointment, so the added work does not fit"
BAY_INCOMPATIBLE_DETAIL = "The added services need a different kind of bay; book them as a separate visit"
CONCURRENT_REQUEST_DETAIL = "Another request for this customer is in progress. Retry the request."

_RESCHEDULABLE = frozenset({AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value})
_EXTENDABLE = frozenset(
    {
        AppointmentStatus.SCHEDULED.value,
        AppointmentStatus.CONFIRMED.value,
        AppointmentStatus.CHECKED_IN.value,
        AppointmentStatus.IN_PROGRESS.value,
    }
)


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.scalar(
        select(Appointment).where(Appointment.id == appointment_id, Appointment.deleted_at.is_(None))
    )
    if not appointment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=APPOINTMENT_NOT_FOUND_DETAIL)
    return appointment


def list_appointments(
    db: Session,
    date_from: date | None = None,
    date_to: date | None = None,
    status_filter: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Appointment]:
    query = select(Appointment).where(Appointment.deleted_at.is_(None))
    if date_from:
        query = query.where(Appointment.scheduled_date >= date_from)
    if date_to:
        query = query.where(Appointment.scheduled_date <= date_to)
    if status_filter:
        query = query.where(Appointment.status == status_filter)
    query = query.order_by(Appointment.scheduled_date, Appointment.scheduled_time, Appointment.id)
    return list(db.scalars(query.limit(limit).offset(offset)))


def _find_replay(db: Session, customer: CustomerInput, idempotency_key: str) -> Appointment | None:
    customer_id = customer.customer_id
    if customer_id is None and customer.phone:
        customer_id = db.scalar(
            select(Customer.id).where(Customer.phone_normalized == normalize_phone(customer.phone))
        )
    if customer_id is None:
        return None
    return db.scalar(
        select(Appointment).where(
            Appointment.customer_id == customer_id,
            Appointment.idempotency_key == idempotency_key,
            Appointment.deleted_at.is_(None),
        )
    )


def _send_confirmation(db: Session, notifier: Notifier, appointment: Appointment) -> None:
    if notify_safely("confirmation", notifier.send_confirmation, appointment):
        appointment.confirmation_sent_at = datetime.now(UTC)
        db.commit()


def book_appointment(
    db: Session,
    notifier: Notifier,
    customer: CustomerInput,
    service_ids: list[int],
    scheduled_date: date,
    scheduled_time: time,
    call_id: str | None = None,
    notes: str | None = None,
    created_by: str = "dashboard",
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Create an appointment and atomically claim its slots.

    The appointment row is written first; if the reservation is then lost to
    a concurrent booking the row is kept as ``booking_failed`` and
    soft-deleted, and the caller gets a 409.
    """
    current = now or business_now()

    if idempotency_key:
        replay = _find_replay(db, customer, idempotency_key)
        if replay:
            logger.info("booking_replayed appointment_id=%s", replay.id)
            return replay

    requirements = resolve_requirements(db, service_ids)
    duration = requirements.total_duration_minutes
    validate_business_window(scheduled_date, scheduled_time, duration, current)

    bay = find_bay_with_free_window(db, requirements.bay_type, scheduled_date, scheduled_time, duration)
    if bay is None:
        raise _conflict(WINDOW_UNAVAILABLE_DETAIL)

    technician_id = assign_technician(
        db,
        bay_id=bay.id,
        on_date=scheduled_date,
        start_time=scheduled_time,
        duration_minutes=duration,
        required_skill=requirements.skill_level,
    )

    owner, vehicle = resolve_customer(db, customer)
    appointment = Appointment(
        customer=owner,
        vehicle=vehicle,
        bay_id=bay.id,
        technician_id=technician_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        duration_minutes=duration,
        status=AppointmentStatus.SCHEDULED.value,
        quoted_total=requirements.total_price,
        call_id=call_id,
        notes=notes,
        created_by=created_by,
        idempotency_key=idempotency_key,
    )
    appointment.services = [
        AppointmentService(
            service_id=service.id,
            service_name=service.name,
            quoted_price=service.price,
            duration_minutes=service.duration_minutes,
        )
        for service in requirements.services
    ]
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if idempotency_key:
            replay = _find_replay(db, customer, idempotency_key)
            if replay:
                return replay
        raise _conflict(CONCURRENT_REQUEST_DETAIL) from None

    result = reserve_slots(
        db,
        bay_id=bay.id,
        slot_date=scheduled_date,
        start_time=scheduled_time,
        duration_minutes=duration,
        appointment_id=appointment.id,
    )
    if not result.success:
        appointment.mark_booking_failed()
        db.commit()
        logger.warning(
            "booking_failed appointment_id=%s bay_id=%s date=%s start=%s reason=%s",
            appointment.id,
            bay.id,
            scheduled_date,
            scheduled_time,
            result.reason,
        )
        raise _conflict(SLOT_TAKEN_DETAIL)

    db.refresh(appointment)
    logger.info(
        "booking_created appointment_id=%s customer_id=%s bay_id=%s technician_id=%s date=%s start=%s duration=%s",
        appointment.id,
        appointment.customer_id,
        appointment.bay_id,
        appointment.technician_id,
        scheduled_date,
        scheduled_time,
        duration,
    )
    _send_confirmation(db, notifier, appointment)
    return appointment


def cancel_appointment(db: Session, notifier: Notifier, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED.value:
        return appointment
    ensure_transition(appointment, AppointmentStatus.CANCELLED.value)

    appointment.cancel()
    released = release_slots(db, appointment.id)
    db.refresh(appointment)
    logger.info("booking_cancelled appointment_id=%s slots_released=%s", appointment.id, released)
    notify_safely("cancellation", notifier.send_cancellation, appointment)
    return appointment


def _current_requirements(db: Session, appointment: Appointment) -> ServiceRequirements:
    service_ids = [line.service_id for line in appointment.services]
    services = list(db.scalars(select(Service).where(Service.id.in_(service_ids))))
    return ServiceRequirements.from_services(services)


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: date,
    new_time: time,
    now: datetime | None = None,
) -> Appointment:
    """Move an appointment to a new window: release, reserve, and restore the old block on failure.

    The appointment row is only updated once the new slots are owned.
    """
    current = now or business_now()
    appointment = get_appointment(db, appointment_id)
    if appointment.status not in _RESCHEDULABLE:
        raise _conflict(NOT_RESCHEDULABLE_DETAIL)

    duration = appointment.duration_minutes
    validate_business_window(new_date, new_time, duration, current)
    if appointment.scheduled_date == new_date and appointment.scheduled_time == new_time:
        return appointment

    requirements = _current_requirements(db, appointment)
    bay = find_bay_with_free_window(
        db,
        requirements.bay_type,
        new_date,
        new_time,
        duration,
        owner_appointment_id=appointment.id,
    )
    if bay is None:
        raise _conflict(WINDOW_UNAVAILABLE_DETAIL)

    old_bay_id = appointment.bay_id
    old_date = appointment.scheduled_date
    old_time = appointment.scheduled_time

    release_slots(db, appointment.id)
    result = reserve_slots(
        db,
        bay_id=bay.id,
        slot_date=new_date,
        start_time=new_time,
        duration_minutes=duration,
        appointment_id=appointment.id,
    )
    if not result.success:
        restored = reserve_slots(
            db,
            bay_id=old_bay_id,
            slot_date=old_date,
            start_time=old_time,
            duration_minutes=duration,
            appointment_id=appointment.id,
        )
        if restored.success:
            RESCHEDULE_COMPENSATIONS.labels(outcome="restored").inc()
            logger.warning(
                "reschedule_reverted appointment_id=%s target_date=%s target_start=%s reason=%s",
                appointment.id,
                new_date,
                new_time,
                result.reason,
            )
        else:
            RESCHEDULE_COMPENSATIONS.labels(outcome="failed").inc()
            logger.error(
                "reschedule_compensation_failed appointment_id=%s bay_id=%s date=%s start=%s reason=%s",
                appointment.id,
                old_bay_id,
                old_date,
                old_time,
                restored.reason,
            )
        raise _conflict(RESCHEDULE_CONFLICT_DETAIL)

    technician_id = assign_technician(
        db,
        bay_id=bay.id,
        on_date=new_date,
        start_time=new_time,
        duration_minutes=duration,
        required_skill=requirements.skill_level,
        exclude_appointment_id=appointment.id,
    )
    appointment.bay_id = bay.id
    appointment.scheduled_date = new_date
    appointment.scheduled_time = new_time
    appointment.technician_id = technician_id
    appointment.reminder_sent_at = None
    db.commit()
    db.refresh(appointment)
    logger.info(
        "booking_rescheduled appointment_id=%s from=%s %s to=%s %s bay_id=%s",
        appointment.id,
        old_date,
        old_time,
        new_date,
        new_time,
        bay.id,
    )
    return appointment


def add_services(db: Session, appointment_id: int, service_ids: list[int]) -> Appointment:
    """Extend a visit with more services by claiming the slots right after its current block.

    Either the trailing slots are reserved and the services recorded, or
    nothing changes.
    """
    appointment = get_appointment(db, appointment_id)
    if appointment.status not in _EXTENDABLE:
        raise _conflict(NOT_EXTENDABLE_DETAIL)

    existing_ids = {line.service_id for line in appointment.services}
    added = [service for service in load_services(db, service_ids) if service.id not in existing_ids]
    if not added:
        return appointment

    combined = ServiceRequirements.from_services(list(_current_requirements(db, appointment).services) + added)
    if bay_type_rank(combined.bay_type) > bay_type_rank(appointment.bay.bay_type):
        raise _conflict(BAY_INCOMPATIBLE_DETAIL)

    new_duration = appointment.duration_minutes + sum(service.duration_minutes for service in added)
    if minutes_of_day(appointment.scheduled_time) + new_duration > minutes_of_day(settings.business_close_time):
        raise _conflict(EXTENSION_PAST_CLOSE_DETAIL)

    result = reserve_slots(
        db,
        bay_id=appointment.bay_id,
        slot_date=appointment.scheduled_date,
        start_time=appointment.scheduled_time,
        duration_minutes=new_duration,
        appointment_id=appointment.id,
    )
    if not result.success:
        logger.warning(
            "services_not_added appointment_id=%s new_duration=%s reason=%s",
            appointment.id,
            new_duration,
            result.reason,
        )
        raise _conflict(EXTENSION_UNAVAILABLE_DETAIL)

    for service in added:
        appointment.services.append(
            AppointmentService(
                service_id=service.id,
                service_name=service.name,
                quoted_price=service.price,
                duration_minutes=service.duration_minutes,
            )
        )
    appointment.duration_minutes = new_duration
    appointment.quoted_total = appointment.quoted_total + sum(service.price for service in added)
    db.commit()
    db.refresh(appointment)
    logger.info(
        "services_added appointment_id=%s services=%s duration=%s",
        appointment.id,
        [service.id for service in added],
        new_duration,
    )
    return appointment


def update_status(db: Session, notifier: Notifier, appointment_id: int, target: str) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if target == AppointmentStatus.CANCELLED.value:
        return cancel_appointment(db, notifier, appointment_id)

    if target == AppointmentStatus.NO_SHOW.value:
        ensure_transition(appointment, target)
        appointment.status = target
        released = release_slots(db, appointment.id)
        db.refresh(appointment)
        logger.info("booking_no_show appointment_id=%s slots_released=%s", appointment.id, released)
        return appointment

    appointment = apply_transition(db, appointment, target)
    if target == AppointmentStatus.CONFIRMED.value:
        _send_confirmation(db, notifier, appointment)
    return appointment
