from datetime import date, datetime, time

import pytest
from fastapi import HTTPException

from bay_scheduler.services.availability_service import TimeOfDayWindow, parse_time_preference
from bay_scheduler.services.business_hours import format_time_12h, validate_business_window

WEDNESDAY = date(2030, 3, 6)
SATURDAY = date(2030, 3, 9)
NOW = datetime(2030, 3, 4, 8, 0)


@pytest.mark.parametrize(
    ("preference", "start", "end"),
    [
        (None, time(7, 0), time(16, 0)),
        ("anytime", time(7, 0), time(16, 0)),
        ("morning", time(7, 0), time(12, 0)),
        ("Afternoon", time(12, 0), time(16, 0)),
        ("early morning", time(7, 0), time(9, 0)),
        ("late afternoon", time(14, 0), time(16, 0)),
        ("after 2pm", time(14, 0), time(16, 0)),
        ("before 10", time(7, 0), time(10, 0)),
        ("around 2pm", time(13, 0), time(16, 0)),
        ("whenever works", time(7, 0), time(16, 0)),
    ],
)
def test_parse_time_preference(preference, start, end):
    assert parse_time_preference(preference) == TimeOfDayWindow(start=start, end=end)


def test_preference_outside_business_hours_falls_back_to_full_day():
    assert parse_time_preference("after 6pm") == TimeOfDayWindow.business_day()


def test_format_time_12h():
    assert format_time_12h(time(7, 0)) == "7 AM"
    assert format_time_12h(time(12, 0)) == "12 PM"
    assert format_time_12h(time(14, 30)) == "2:30 PM"
    assert format_time_12h(time(0, 15)) == "12:15 AM"


def _reason(scheduled_date: date, scheduled_time: time, duration: int = 30) -> str:
    with pytest.raises(HTTPException) as exc_info:
        validate_business_window(scheduled_date, scheduled_time, duration, NOW)
    assert exc_info.value.status_code == 422
    return exc_info.value.detail["reason"]


def test_business_window_accepts_a_regular_weekday_visit():
    validate_business_window(WEDNESDAY, time(9, 0), 65, NOW)
    validate_business_window(WEDNESDAY, time(15, 30), 30, NOW)


def test_business_window_rejections():
    assert _reason(SATURDAY, time(9, 0)) == "closed_day"
    assert _reason(WEDNESDAY, time(6, 30)) == "before_opening"
    assert _reason(WEDNESDAY, time(16, 0)) == "after_closing"
    assert _reason(WEDNESDAY, time(9, 15)) == "misaligned_start"
    assert _reason(WEDNESDAY, time(9, 0, 30)) == "misaligned_start"
    assert _reason(WEDNESDAY, time(9, 0, 0, 500)) == "misaligned_start"
    assert _reason(date(2030, 3, 4), time(7, 30)) == "in_past"
    assert _reason(date(2030, 6, 4), time(9, 0)) == "too_far_out"


def test_visit_running_past_close_reports_latest_start():
    with pytest.raises(HTTPException) as exc_info:
        validate_business_window(WEDNESDAY, time(15, 0), 90, NOW)

    detail = exc_info.value.detail
    assert detail["reason"] == "exceeds_closing"
    assert detail["latest_start"] == "14:30"
    assert "2:30 PM" in detail["message"]


def test_closed_day_message_lists_opening_hours():
    with pytest.raises(HTTPException) as exc_info:
        validate_business_window(SATURDAY, time(9, 0), 30, NOW)
    assert "Monday through Friday, 7 AM to 4 PM" in exc_info.value.detail["message"]
