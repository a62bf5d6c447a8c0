"""Atomic claim/release of bay time slots.

A reservation either marks every required slot as owned by one appointment
or changes nothing. All cross-request coordination happens in the database:
``reserve_slots`` issues a single guarded UPDATE inside one transaction and
only commits when the number of claimed rows equals the number of slots
the duration needs.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time

from sqlalchemy import or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from bay_scheduler.core.config import settings
from bay_scheduler.core.metrics import SLOT_RESERVATIONS
from bay_scheduler.db.models import TimeSlot
from bay_scheduler.services.business_hours import add_minutes
from bay_scheduler.services.requirements import slots_needed

logger = logging.getLogger(__name__)

PG_LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"

REASON_UNAVAILABLE = "slots_unavailable"
REASON_LOCKED = "slots_locked"
REASON_OUT_OF_DAY = "window_crosses_midnight"


@dataclass(frozen=True)
class ReservationResult:
    success: bool
    slot_times: tuple[time, ...] = field(default_factory=tuple)
    reason: str | None = None


def _is_postgresql_session(db: Session) -> bool:
    bind = db.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def _is_pg_lock_not_available(exc: OperationalError) -> bool:
    original_error = getattr(exc, "orig", None)
    if original_error is None:
        return False

    sqlstate = getattr(original_error, "sqlstate", None)
    if sqlstate is None:
        sqlstate = getattr(original_error, "pgcode", None)

    return sqlstate == PG_LOCK_NOT_AVAILABLE_SQLSTATE


def required_slot_times(start_time: time, duration_minutes: int) -> list[time]:
    granularity = settings.slot_granularity_minutes
    return [
        add_minutes(start_time, index * granularity)
        for index in range(slots_needed(duration_minutes, granularity))
    ]


def reserve_slots(
    db: Session,
    bay_id: int,
    slot_date: date,
    start_time: time,
    duration_minutes: int,
    appointment_id: int,
) -> ReservationResult:
    """Claim every slot covering ``[start_time, start_time + duration)`` for one appointment.

    Slots already owned by ``appointment_id`` count as claimable, which makes a
    retried call after an ambiguous timeout safe.
    """
    try:
        times = required_slot_times(start_time, duration_minutes)
    except ValueError:
        SLOT_RESERVATIONS.labels(outcome="rejected").inc()
        return ReservationResult(success=False, reason=REASON_OUT_OF_DAY)

    claimable = or_(TimeSlot.is_available.is_(True), TimeSlot.appointment_id == appointment_id)
    try:
        if _is_postgresql_session(db):
            db.execute(
                select(TimeSlot.id)
                .where(
                    TimeSlot.bay_id == bay_id,
                    TimeSlot.slot_date == slot_date,
                    TimeSlot.start_time.in_(times),
                )
                .order_by(TimeSlot.start_time)
                .with_for_update(nowait=True)
            ).all()

        claimed = db.execute(
            update(TimeSlot)
            .where(
                TimeSlot.bay_id == bay_id,
                TimeSlot.slot_date == slot_date,
                TimeSlot.start_time.in_(times),
                claimable,
            )
            .values(is_available=False, appointment_id=appointment_id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != len(times):
            db.rollback()
            SLOT_RESERVATIONS.labels(outcome="conflict").inc()
            logger.warning(
                "reservation_conflict appointment_id=%s bay_id=%s date=%s start=%s needed=%s claimable=%s",
                appointment_id,
                bay_id,
                slot_date,
                start_time,
                len(times),
                claimed.rowcount,
            )
            return ReservationResult(success=False, slot_times=tuple(times), reason=REASON_UNAVAILABLE)

        db.commit()
    except OperationalError as exc:
        db.rollback()
        if _is_pg_lock_not_available(exc):
            SLOT_RESERVATIONS.labels(outcome="locked").inc()
            logger.warning(
                "reservation_locked appointment_id=%s bay_id=%s date=%s start=%s",
                appointment_id,
                bay_id,
                slot_date,
                start_time,
            )
            return ReservationResult(success=False, slot_times=tuple(times), reason=REASON_LOCKED)
        raise

    SLOT_RESERVATIONS.labels(outcome="success").inc()
    logger.info(
        "reservation_committed appointment_id=%s bay_id=%s date=%s start=%s slots=%s",
        appointment_id,
        bay_id,
        slot_date,
        start_time,
        len(times),
    )
    return ReservationResult(success=True, slot_times=tuple(times))


def release_slots(db: Session, appointment_id: int) -> int:
    """Return every slot owned by the appointment to the available pool."""
    released = db.execute(
        update(TimeSlot)
        .where(TimeSlot.appointment_id == appointment_id)
        .values(is_available=True, appointment_id=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("reservation_released appointment_id=%s slots=%s", appointment_id, released.rowcount)
    return released.rowcount


def owned_slots(db: Session, appointment_id: int) -> list[TimeSlot]:
    return list(
        db.scalars(
            select(TimeSlot)
            .where(TimeSlot.appointment_id == appointment_id)
            .order_by(TimeSlot.slot_date, TimeSlot.start_time)
        )
    )
