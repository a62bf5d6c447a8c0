import logging
from dataclasses import dataclass
from datetime import date, time, timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from bay_scheduler.core.config import settings
from bay_scheduler.db.models import ServiceBay, TimeSlot
from bay_scheduler.services.business_hours import add_minutes, business_days, minutes_of_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegenerationSummary:
    bays: int
    days_processed: int
    slots_created: int
    range_from: date
    range_to: date
    slots_pruned: int
    cleanup_cutoff: date


def slot_times() -> list[tuple[time, time]]:
    """Start/end pairs for one business day, from opening up to the last slot that ends by closing."""
    granularity = settings.slot_granularity_minutes
    close_minutes = minutes_of_day(settings.business_close_time)
    times = []
    start = settings.business_open_time
    while minutes_of_day(start) + granularity <= close_minutes:
        end = add_minutes(start, granularity)
        times.append((start, end))
        start = end
    return times


def _insert_ignoring_duplicates(db: Session, rows: list[dict]) -> int:
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        statement = postgresql.insert(TimeSlot).values(rows).on_conflict_do_nothing(
            index_elements=["bay_id", "slot_date", "start_time"]
        )
    elif dialect == "sqlite":
        statement = sqlite.insert(TimeSlot).values(rows).on_conflict_do_nothing(
            index_elements=["bay_id", "slot_date", "start_time"]
        )
    else:
        raise NotImplementedError(f"slot generation is not supported on {dialect}")
    result = db.execute(statement)
    return max(result.rowcount or 0, 0)


def generate_slots(
    db: Session,
    date_from: date,
    date_to: date,
    bays: list[ServiceBay] | None = None,
) -> tuple[int, int]:
    """Materialize slot rows for every business day in range; existing rows are left untouched.

    Returns ``(slots_created, days_processed)``.
    """
    if bays is None:
        bays = list(db.scalars(select(ServiceBay).where(ServiceBay.is_active.is_(True)).order_by(ServiceBay.id)))
    if not bays:
        return 0, 0

    times = slot_times()
    created = 0
    days = business_days(date_from, date_to)
    for slot_date in days:
        for bay in bays:
            rows = [
                {
                    "bay_id": bay.id,
                    "slot_date": slot_date,
                    "start_time": start,
                    "end_time": end,
                    "is_available": True,
                }
                for start, end in times
            ]
            created += _insert_ignoring_duplicates(db, rows)
    db.commit()
    logger.info(
        "slots_generated from=%s to=%s bays=%s days=%s created=%s",
        date_from,
        date_to,
        len(bays),
        len(days),
        created,
    )
    return created, len(days)


def prune_slots(db: Session, before_date: date) -> int:
    """Delete unbooked inventory older than ``before_date``; booked history is kept."""
    result = db.execute(
        delete(TimeSlot)
        .where(
            TimeSlot.slot_date < before_date,
            TimeSlot.is_available.is_(True),
            TimeSlot.appointment_id.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    pruned = result.rowcount or 0
    logger.info("slots_pruned before=%s count=%s", before_date, pruned)
    return pruned


def regenerate_slots(db: Session, today: date) -> RegenerationSummary:
    """Keep the rolling inventory window filled and trim stale, never-booked slots."""
    bays = list(db.scalars(select(ServiceBay).where(ServiceBay.is_active.is_(True)).order_by(ServiceBay.id)))
    range_to = today + timedelta(days=settings.slot_forward_days)
    created, days_processed = generate_slots(db, today, range_to, bays=bays)
    cutoff = today - timedelta(days=settings.slot_retention_days)
    pruned = prune_slots(db, cutoff)
    return RegenerationSummary(
        bays=len(bays),
        days_processed=days_processed,
        slots_created=created,
        range_from=today,
        range_to=range_to,
        slots_pruned=pruned,
        cleanup_cutoff=cutoff,
    )
