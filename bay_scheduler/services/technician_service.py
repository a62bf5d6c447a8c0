import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bay_scheduler.core.metrics import TECHNICIAN_ASSIGNMENTS
from bay_scheduler.db.models import (
    RELEASED_STATUSES,
    Appointment,
    Technician,
    TechnicianBayAssignment,
    TechnicianSchedule,
)
from bay_scheduler.services.requirements import skill_rank

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Candidate:
    technician: Technician
    is_primary: bool


def _overlaps(existing_start: datetime, existing_end: datetime, new_start: datetime, new_end: datetime) -> bool:
    return existing_start < new_end and existing_end > new_start


def _busy_technician_ids(
    db: Session,
    technician_ids: list[int],
    on_date: date,
    window_start: datetime,
    window_end: datetime,
    exclude_appointment_id: int | None,
) -> set[int]:
    query = select(Appointment).where(
        Appointment.technician_id.in_(technician_ids),
        Appointment.scheduled_date == on_date,
        Appointment.status.not_in(RELEASED_STATUSES),
        Appointment.deleted_at.is_(None),
    )
    if exclude_appointment_id is not None:
        query = query.where(Appointment.id != exclude_appointment_id)

    busy = set()
    for appointment in db.scalars(query):
        if _overlaps(appointment.scheduled_start, appointment.scheduled_end, window_start, window_end):
            busy.add(appointment.technician_id)
    return busy


def _pick(
    db: Session,
    bay_id: int,
    on_date: date,
    start_time: time,
    duration_minutes: int,
    required_skill: str,
    exclude_appointment_id: int | None,
) -> int | None:
    window_start = datetime.combine(on_date, start_time)
    window_end = window_start + timedelta(minutes=duration_minutes)

    assignments = db.execute(
        select(TechnicianBayAssignment, Technician)
        .join(Technician, TechnicianBayAssignment.technician_id == Technician.id)
        .where(TechnicianBayAssignment.bay_id == bay_id)
    ).all()
    if not assignments:
        logger.info("technician_match_empty stage=bay bay_id=%s", bay_id)
        return None

    required_rank = skill_rank(required_skill)
    qualified = {
        technician.id: _Candidate(technician=technician, is_primary=assignment.is_primary)
        for assignment, technician in assignments
        if technician.is_active and skill_rank(technician.skill_level) >= required_rank
    }
    if not qualified:
        logger.info("technician_match_empty stage=skill bay_id=%s required=%s", bay_id, required_skill)
        return None

    shifts = db.scalars(
        select(TechnicianSchedule).where(
            TechnicianSchedule.technician_id.in_(list(qualified)),
            TechnicianSchedule.day_of_week == on_date.weekday(),
            TechnicianSchedule.is_active.is_(True),
        )
    ).all()
    end_time = window_end.time() if window_end.date() == on_date else time.max
    working = {
        shift.technician_id
        for shift in shifts
        if shift.start_time <= start_time and shift.end_time >= end_time
    }
    if not working:
        logger.info(
            "technician_match_empty stage=schedule bay_id=%s weekday=%s start=%s end=%s",
            bay_id,
            on_date.weekday(),
            start_time,
            end_time,
        )
        return None

    busy = _busy_technician_ids(db, list(working), on_date, window_start, window_end, exclude_appointment_id)
    free = [qualified[technician_id] for technician_id in working if technician_id not in busy]
    if not free:
        logger.info("technician_match_empty stage=conflicts bay_id=%s date=%s start=%s", bay_id, on_date, start_time)
        return None

    free.sort(key=lambda item: (not item.is_primary, skill_rank(item.technician.skill_level), item.technician.id))
    chosen = free[0]
    logger.info(
        "technician_matched technician_id=%s skill=%s primary=%s bay_id=%s",
        chosen.technician.id,
        chosen.technician.skill_level,
        chosen.is_primary,
        bay_id,
    )
    return chosen.technician.id


def assign_technician(
    db: Session,
    bay_id: int,
    on_date: date,
    start_time: time,
    duration_minutes: int,
    required_skill: str,
    exclude_appointment_id: int | None = None,
) -> int | None:
    """Pick the best free, qualified technician for a bay window, or ``None``.

    Matching is best effort: an empty result or a storage error never blocks
    a booking.
    """
    try:
        technician_id = _pick(
            db,
            bay_id=bay_id,
            on_date=on_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            required_skill=required_skill,
            exclude_appointment_id=exclude_appointment_id,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("technician_match_failed bay_id=%s date=%s start=%s", bay_id, on_date, start_time)
        TECHNICIAN_ASSIGNMENTS.labels(outcome="error").inc()
        return None

    TECHNICIAN_ASSIGNMENTS.labels(outcome="assigned" if technician_id else "none").inc()
    return technician_id
