from datetime import date, datetime, time, timedelta

from fastapi import HTTPException, status

from bay_scheduler.core.config import settings

CLOSED_DAY_DETAIL = "The service department is closed on that day"
BEFORE_OPENING_DETAIL = "Appointments cannot start before opening time"
AFTER_CLOSING_DETAIL = "Appointments cannot start at or after closing time"
PAST_START_DETAIL = "Appointments must start in the future"
TOO_FAR_OUT_DETAIL = "The schedule is not open that far out yet"

_WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def is_business_day(value: date) -> bool:
    return value.weekday() in settings.business_weekdays


def business_days(date_from: date, date_to: date) -> list[date]:
    days = []
    current = date_from
    while current <= date_to:
        if is_business_day(current):
            days.append(current)
        current += timedelta(days=1)
    return days


def add_minutes(value: time, minutes: int) -> time:
    shifted = datetime.combine(date.min, value) + timedelta(minutes=minutes)
    if shifted.date() != date.min:
        raise ValueError(f"{value.isoformat()} + {minutes} minutes crosses midnight")
    return shifted.time()


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def format_time_12h(value: time) -> str:
    period = "PM" if value.hour >= 12 else "AM"
    hour12 = value.hour % 12 or 12
    if value.minute == 0:
        return f"{hour12} {period}"
    return f"{hour12}:{value.minute:02d} {period}"


def latest_start_for(duration_minutes: int) -> time | None:
    latest = minutes_of_day(settings.business_close_time) - duration_minutes
    if latest < minutes_of_day(settings.business_open_time):
        return None
    return time(latest // 60, latest % 60)


def _open_days_phrase() -> str:
    days = sorted(settings.business_weekdays)
    names = [_WEEKDAY_NAMES[day] for day in days]
    if len(days) > 2 and days == list(range(days[0], days[-1] + 1)):
        return f"{names[0]} through {names[-1]}"
    return ", ".join(names)


def _business_rule_violation(message: str, **extra) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": message, **extra},
    )


def validate_business_window(
    scheduled_date: date,
    scheduled_time: time,
    duration_minutes: int,
    now: datetime,
) -> None:
    """Reject a requested visit that falls outside the configured business window.

    ``now`` is shop-local wall-clock time.
    """
    if not is_business_day(scheduled_date):
        raise _business_rule_violation(
            f"{CLOSED_DAY_DETAIL}. We're open {_open_days_phrase()}, "
            f"{format_time_12h(settings.business_open_time)} to {format_time_12h(settings.business_close_time)}.",
            reason="closed_day",
        )

    if scheduled_time < settings.business_open_time:
        raise _business_rule_violation(BEFORE_OPENING_DETAIL, reason="before_opening")

    if scheduled_time >= settings.business_close_time:
        raise _business_rule_violation(AFTER_CLOSING_DETAIL, reason="after_closing")

    end_minutes = minutes_of_day(scheduled_time) + duration_minutes
    if end_minutes > minutes_of_day(settings.business_close_time):
        latest = latest_start_for(duration_minutes)
        message = (
            f"That visit takes about {duration_minutes} minutes, which would run past our "
            f"{format_time_12h(settings.business_close_time)} close."
        )
        if latest is not None:
            message += f" The latest start is {format_time_12h(latest)}."
        raise _business_rule_violation(
            message,
            reason="exceeds_closing",
            latest_start=latest.strftime("%H:%M") if latest else None,
        )

    offset = minutes_of_day(scheduled_time) - minutes_of_day(settings.business_open_time)
    if offset % settings.slot_granularity_minutes or scheduled_time.second or scheduled_time.microsecond:
        raise _business_rule_violation(
            f"Appointments start on {settings.slot_granularity_minutes}-minute boundaries",
            reason="misaligned_start",
        )

    if datetime.combine(scheduled_date, scheduled_time) <= now:
        raise _business_rule_violation(PAST_START_DETAIL, reason="in_past")

    if scheduled_date > now.date() + timedelta(days=settings.booking_max_advance_days):
        raise _business_rule_violation(TOO_FAR_OUT_DETAIL, reason="too_far_out")
