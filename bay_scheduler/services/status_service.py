"""Time-relative display status and explicit status transitions."""

import logging
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from bay_scheduler.core.clock import to_business_local
from bay_scheduler.core.config import settings
from bay_scheduler.db.models import ACTIVE_STATUSES, Appointment, AppointmentStatus

logger = logging.getLogger(__name__)

ILLEGAL_TRANSITION_DETAIL = "Appointment cannot move from {current} to {target}"

_PRE_SERVICE = (
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.CHECKED_IN.value,
)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    AppointmentStatus.SCHEDULED.value: frozenset(
        {AppointmentStatus.CONFIRMED.value, AppointmentStatus.CHECKED_IN.value}
    ),
    AppointmentStatus.CONFIRMED.value: frozenset({AppointmentStatus.CHECKED_IN.value}),
    AppointmentStatus.CHECKED_IN.value: frozenset({AppointmentStatus.IN_PROGRESS.value}),
    AppointmentStatus.IN_PROGRESS.value: frozenset(
        {AppointmentStatus.CHECKING_OUT.value, AppointmentStatus.COMPLETED.value}
    ),
    AppointmentStatus.CHECKING_OUT.value: frozenset({AppointmentStatus.COMPLETED.value}),
    AppointmentStatus.COMPLETED.value: frozenset({AppointmentStatus.INVOICED.value}),
    AppointmentStatus.INVOICED.value: frozenset({AppointmentStatus.PAID.value}),
}
for _state in _PRE_SERVICE:
    ALLOWED_TRANSITIONS[_state] = ALLOWED_TRANSITIONS[_state] | {
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
    }


def display_status(appointment: Appointment, now: datetime) -> str:
    """Status as it should be shown right now; never writes to the appointment.

    Only today's non-terminal appointments are re-derived from the clock.
    """
    current = to_business_local(now)
    stored = appointment.status
    if stored not in ACTIVE_STATUSES or appointment.scheduled_date != current.date():
        return stored

    start = appointment.scheduled_start
    end = appointment.scheduled_end
    checkout_end = end + timedelta(minutes=settings.checkout_buffer_minutes)
    if current < start:
        return stored
    if current < end:
        return AppointmentStatus.IN_PROGRESS.value
    if current < checkout_end:
        return AppointmentStatus.CHECKING_OUT.value
    return AppointmentStatus.COMPLETED.value


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(appointment: Appointment, target: str) -> None:
    if not can_transition(appointment.status, target):
        logger.warning(
            "status_transition_rejected appointment_id=%s current=%s target=%s",
            appointment.id,
            appointment.status,
            target,
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ILLEGAL_TRANSITION_DETAIL.format(current=appointment.status, target=target),
        )


def apply_transition(db: Session, appointment: Appointment, target: str) -> Appointment:
    """Persist a plain forward transition. Cancellation and no-show go through the booking workflow."""
    ensure_transition(appointment, target)
    previous = appointment.status
    appointment.status = target
    db.commit()
    db.refresh(appointment)
    logger.info("status_changed appointment_id=%s from=%s to=%s", appointment.id, previous, target)
    return appointment
