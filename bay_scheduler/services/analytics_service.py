import logging
from datetime import date

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from bay_scheduler.core.cache import TTLCache, analytics_cache
from bay_scheduler.core.config import settings
from bay_scheduler.db.models import ServiceBay, TimeSlot

logger = logging.getLogger(__name__)


def _utilization_rows(db: Session, date_from: date, date_to: date) -> list[dict]:
    booked = func.sum(case((TimeSlot.is_available.is_(False), 1), else_=0))
    rows = db.execute(
        select(
            TimeSlot.slot_date,
            ServiceBay.bay_type,
            func.count(TimeSlot.id),
            booked,
        )
        .join(ServiceBay, TimeSlot.bay_id == ServiceBay.id)
        .where(TimeSlot.slot_date >= date_from, TimeSlot.slot_date <= date_to)
        .group_by(TimeSlot.slot_date, ServiceBay.bay_type)
        .order_by(TimeSlot.slot_date, ServiceBay.bay_type)
    ).all()

    days: dict[str, dict] = {}
    for slot_date, bay_type, total, booked_count in rows:
        day = days.setdefault(
            slot_date.isoformat(),
            {"day": slot_date.isoformat(), "total_slots": 0, "booked_slots": 0, "by_bay_type": {}},
        )
        booked_count = int(booked_count or 0)
        day["total_slots"] += total
        day["booked_slots"] += booked_count
        day["by_bay_type"][bay_type] = {"total_slots": total, "booked_slots": booked_count}

    for day in days.values():
        total = day["total_slots"]
        day["utilization"] = round(day["booked_slots"] / total, 4) if total else 0.0
    return list(days.values())


def bay_utilization(
    db: Session,
    date_from: date,
    date_to: date,
    cache: TTLCache | None = None,
) -> tuple[list[dict], bool]:
    """Per-day booked/total slot counts, served from the analytics cache when fresh.

    Returns ``(days, cached)``.
    """
    store = cache or analytics_cache
    key = f"bay-utilization:{date_from.isoformat()}:{date_to.isoformat()}"
    cached = store.get(key)
    if cached is not None:
        return cached, True

    days = _utilization_rows(db, date_from, date_to)
    store.set(key, days, settings.analytics_cache_ttl_seconds)
    logger.info("analytics_computed key=%s days=%s", key, len(days))
    return days, False
