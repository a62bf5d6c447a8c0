import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from bay_scheduler.core.config import settings
from bay_scheduler.db.models import ServiceBay, TimeSlot
from bay_scheduler.services.business_hours import is_business_day, minutes_of_day
from bay_scheduler.services.requirements import ServiceRequirements
from bay_scheduler.services.reservation_service import required_slot_times

logger = logging.getLogger(__name__)

_CLOCK_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?")


@dataclass(frozen=True)
class TimeOfDayWindow:
    start: time
    end: time

    @classmethod
    def business_day(cls) -> "TimeOfDayWindow":
        return cls(start=settings.business_open_time, end=settings.business_close_time)


@dataclass(frozen=True)
class CandidateWindow:
    slot_date: date
    start_time: time
    end_time: time
    bay_id: int
    bay_name: str

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.slot_date, self.start_time)


def _parse_clock(text: str) -> time | None:
    match = _CLOCK_RE.search(text)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem == "pm" and hour < 12:
        hour += 12
    if meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def _shift_hours(value: time, hours: int) -> time:
    total = min(max(minutes_of_day(value) + hours * 60, 0), 23 * 60 + 59)
    return time(total // 60, total % 60)


def parse_time_preference(preference: str | None) -> TimeOfDayWindow:
    """Turn a caller's free-form time-of-day preference into a start-time window."""
    full_day = TimeOfDayWindow.business_day()
    if not preference:
        return full_day

    text = preference.strip().lower()
    start, end = full_day.start, full_day.end
    if text in ("anytime", "any", ""):
        return full_day
    if text in ("morning", "am"):
        end = time(12, 0)
    elif text in ("afternoon", "pm"):
        start = time(12, 0)
    elif text == "early morning":
        end = time(9, 0)
    elif text == "late afternoon":
        start = time(14, 0)
    else:
        clock = _parse_clock(text)
        if clock is not None:
            if any(marker in text for marker in ("after", "from", "no earlier")):
                start = clock
            elif any(marker in text for marker in ("before", "by", "no later")):
                end = clock
            else:
                start = _shift_hours(clock, -1)
                end = _shift_hours(time(clock.hour, 0), 2)

    start = max(start, full_day.start)
    end = min(end, full_day.end)
    if start >= end:
        return full_day
    return TimeOfDayWindow(start=start, end=end)


def consecutive_run_starts(start_times: list[time], run_length: int) -> list[int]:
    """Indexes in a sorted start-time list where ``run_length`` gap-free slots begin."""
    granularity = settings.slot_granularity_minutes
    starts = []
    for index in range(len(start_times) - run_length + 1):
        for offset in range(1, run_length):
            expected = minutes_of_day(start_times[index + offset - 1]) + granularity
            if minutes_of_day(start_times[index + offset]) != expected:
                break
        else:
            starts.append(index)
    return starts


def candidate_bays(db: Session, bay_type: str) -> list[ServiceBay]:
    return list(
        db.scalars(
            select(ServiceBay)
            .where(ServiceBay.is_active.is_(True), ServiceBay.bay_type == bay_type)
            .order_by(ServiceBay.id)
        )
    )


def find_windows(
    db: Session,
    requirements: ServiceRequirements,
    date_from: date,
    date_to: date,
    now: datetime,
    time_window: TimeOfDayWindow | None = None,
    limit: int | None = None,
    bays: list[ServiceBay] | None = None,
) -> list[CandidateWindow]:
    """Advisory list of windows where the whole visit fits in one bay.

    ``now`` is shop-local wall-clock time. Nothing is locked; the caller must
    still win ``reserve_slots`` before a window is theirs.
    """
    window = time_window or TimeOfDayWindow.business_day()
    if bays is None:
        bays = candidate_bays(db, requirements.bay_type)
    today = now.date()
    date_from = max(date_from, today)
    if not bays or date_from > date_to:
        return []

    bay_names = {bay.id: bay.name for bay in bays}
    rows = db.execute(
        select(TimeSlot.bay_id, TimeSlot.slot_date, TimeSlot.start_time, TimeSlot.end_time)
        .where(
            TimeSlot.bay_id.in_(list(bay_names)),
            TimeSlot.is_available.is_(True),
            TimeSlot.slot_date >= date_from,
            TimeSlot.slot_date <= date_to,
        )
        .order_by(TimeSlot.slot_date, TimeSlot.start_time, TimeSlot.bay_id)
    ).all()

    grouped: dict[tuple[date, int], list[tuple[time, time]]] = defaultdict(list)
    for bay_id, slot_date, start_time, end_time in rows:
        if is_business_day(slot_date) and window.start <= start_time < window.end:
            grouped[(slot_date, bay_id)].append((start_time, end_time))

    needed = requirements.slots_needed
    duration = requirements.total_duration_minutes
    close_minutes = minutes_of_day(settings.business_close_time)
    earliest_today = now + timedelta(minutes=settings.booking_lead_time_minutes)

    windows: list[CandidateWindow] = []
    for (slot_date, bay_id), slots in grouped.items():
        slots.sort()
        start_times = [start for start, _ in slots]
        for index in consecutive_run_starts(start_times, needed):
            start_time = start_times[index]
            if slot_date == today and datetime.combine(slot_date, start_time) <= earliest_today:
                continue
            if minutes_of_day(start_time) + duration > close_minutes:
                continue
            windows.append(
                CandidateWindow(
                    slot_date=slot_date,
                    start_time=start_time,
                    end_time=slots[index + needed - 1][1],
                    bay_id=bay_id,
                    bay_name=bay_names[bay_id],
                )
            )

    windows.sort(key=lambda item: (item.slot_date, item.start_time, item.bay_id))
    unique: list[CandidateWindow] = []
    seen: set[tuple[date, time]] = set()
    for candidate in windows:
        key = (candidate.slot_date, candidate.start_time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
        if limit is not None and len(unique) >= limit:
            break

    logger.info(
        "availability_searched bay_type=%s duration=%s slots_needed=%s from=%s to=%s windows=%s",
        requirements.bay_type,
        duration,
        needed,
        date_from,
        date_to,
        len(unique),
    )
    return unique


def find_bay_with_free_window(
    db: Session,
    bay_type: str,
    slot_date: date,
    start_time: time,
    duration_minutes: int,
    owner_appointment_id: int | None = None,
) -> ServiceBay | None:
    """First compatible bay whose every slot for the requested visit is free right now.

    Slots owned by ``owner_appointment_id`` count as free, so a reschedule can
    overlap the block it is about to release.
    """
    try:
        times = required_slot_times(start_time, duration_minutes)
    except ValueError:
        return None

    for bay in candidate_bays(db, bay_type):
        slots = db.execute(
            select(TimeSlot.is_available, TimeSlot.appointment_id).where(
                TimeSlot.bay_id == bay.id,
                TimeSlot.slot_date == slot_date,
                TimeSlot.start_time.in_(times),
            )
        ).all()
        if len(slots) != len(times):
            continue
        if all(is_available or (owner_appointment_id and owner == owner_appointment_id) for is_available, owner in slots):
            return bay
    return None


def search_end_date(date_from: date, days: int | None = None) -> date:
    return date_from + timedelta(days=days or settings.default_search_days)
