"""Voice-agent conversations on top of the scheduling core.

Every failure is turned into a ``success: false`` reply with a sentence the
agent can read aloud.
"""

import logging
from datetime import date, datetime, time

from fastapi import HTTPException
from sqlalchemy.orm import Session

from bay_scheduler.core.config import settings
from bay_scheduler.schemas.voice import (
    VoiceAvailabilityRequest,
    VoiceAvailabilityResponse,
    VoiceBookingRequest,
    VoiceBookingResponse,
    VoiceModifyRequest,
    VoiceModifyResponse,
    VoiceSlot,
)
from bay_scheduler.services.availability_service import find_windows, parse_time_preference, search_end_date
from bay_scheduler.services.booking_service import (
    add_services,
    book_appointment,
    cancel_appointment,
    reschedule_appointment,
)
from bay_scheduler.services.business_hours import format_time_12h, is_business_day
from bay_scheduler.services.customer_service import CustomerInput, VehicleInput
from bay_scheduler.services.notification_service import Notifier
from bay_scheduler.services.requirements import resolve_requirements

logger = logging.getLogger(__name__)

INVALID_REQUEST_MESSAGE = "Sorry, I didn't catch all the details I need. Could you repeat that?"
CLOSED_DAY_MESSAGE = "We're closed that day. Our service department is open weekdays."


def ordinal_suffix(day: int) -> str:
    if 3 < day < 21:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


def format_date_spoken(value: date) -> str:
    return f"{value.strftime('%A')}, {value.strftime('%B')} {value.day}{ordinal_suffix(value.day)}"


def format_when_spoken(value_date: date, value_time: time) -> str:
    return f"{format_date_spoken(value_date)} at {format_time_12h(value_time)}"


def failure_message(exc: HTTPException) -> str:
    detail = exc.detail
    if isinstance(detail, dict):
        return str(detail.get("message", ""))
    return str(detail)


def _missing_info_message(missing: list[str]) -> str:
    wanted = []
    if "name" in missing:
        wanted.append("your first name")
    if "vehicle" in missing:
        wanted.append("the year, make and model of your vehicle")
    return f"To finish booking I just need {' and '.join(wanted)}."


def check_availability(db: Session, request: VoiceAvailabilityRequest, now: datetime) -> VoiceAvailabilityResponse:
    try:
        requirements = resolve_requirements(db, request.service_ids)
    except HTTPException as exc:
        return VoiceAvailabilityResponse(success=False, available=False, message=failure_message(exc))

    today = now.date()
    date_from = max(request.preferred_date or today, today)
    date_to = search_end_date(date_from, request.days_to_check)
    requested_closed = request.preferred_date is not None and not is_business_day(request.preferred_date)
    cap = settings.voice_result_cap

    windows = find_windows(
        db,
        requirements,
        date_from,
        date_to,
        now,
        time_window=parse_time_preference(request.preferred_time),
        limit=cap + 1,
    )
    more_available = len(windows) > cap
    windows = windows[:cap]

    if not windows:
        if requested_closed:
            message = f"{CLOSED_DAY_MESSAGE} Would you like a weekday instead?"
        elif request.preferred_time:
            message = (
                f"I don't have any {request.preferred_time} openings around that date. "
                "Would you like to try a different time of day or another date?"
            )
        else:
            message = "I don't have any openings around that date. Would you like to try a different date?"
        return VoiceAvailabilityResponse(
            success=True,
            available=False,
            message=message,
            services=requirements.service_names,
            total_duration_minutes=requirements.total_duration_minutes,
            requested_date_closed=requested_closed,
        )

    slots = [
        VoiceSlot(
            date=window.slot_date.isoformat(),
            time=window.start_time.strftime("%H:%M"),
            bay_id=window.bay_id,
            formatted=format_when_spoken(window.slot_date, window.start_time),
            spoken_date=f"{window.slot_date.strftime('%A')} the {window.slot_date.day}{ordinal_suffix(window.slot_date.day)}",
            time_formatted=format_time_12h(window.start_time),
        )
        for window in windows
    ]
    options = " or ".join(slot.formatted for slot in slots)
    if requested_closed:
        message = f"{CLOSED_DAY_MESSAGE} The closest I have is {options}. Would either of those work?"
    else:
        message = f"I have {options}. Which works better for you?"
    if more_available:
        message += " I have more options if neither works."

    return VoiceAvailabilityResponse(
        success=True,
        available=True,
        message=message,
        slots=slots,
        services=requirements.service_names,
        total_duration_minutes=requirements.total_duration_minutes,
        requested_date_closed=requested_closed,
    )


def _customer_input(request: VoiceBookingRequest) -> CustomerInput:
    vehicle = None
    if request.vehicle_year or request.vehicle_make or request.vehicle_model:
        vehicle = VehicleInput(
            year=request.vehicle_year,
            make=request.vehicle_make,
            model=request.vehicle_model,
            mileage=request.vehicle_mileage,
        )
    return CustomerInput(
        phone=request.customer_phone,
        first_name=request.customer_first_name,
        last_name=request.customer_last_name,
        email=request.customer_email,
        vehicle_id=request.vehicle_id,
        vehicle=vehicle,
    )


def book(db: Session, notifier: Notifier, request: VoiceBookingRequest, now: datetime) -> VoiceBookingResponse:
    try:
        appointment = book_appointment(
            db,
            notifier,
            customer=_customer_input(request),
            service_ids=request.service_ids,
            scheduled_date=request.appointment_date,
            scheduled_time=request.appointment_time,
            call_id=request.call_id,
            notes=request.notes,
            created_by="voice_agent",
            now=now,
        )
    except HTTPException as exc:
        db.rollback()
        detail = exc.detail if isinstance(exc.detail, dict) else {}
        missing = detail.get("missing_info")
        logger.info("voice_booking_rejected call_id=%s status=%s", request.call_id, exc.status_code)
        if missing:
            return VoiceBookingResponse(success=False, message=_missing_info_message(missing), missing_info=missing)
        return VoiceBookingResponse(success=False, message=failure_message(exc))

    when = format_when_spoken(appointment.scheduled_date, appointment.scheduled_time)
    services = ", ".join(appointment.service_names)
    return VoiceBookingResponse(
        success=True,
        message=f"You're all set for {services} on {when}. We'll send you a confirmation text.",
        appointment_id=appointment.id,
        formatted_time=when,
    )


def modify(db: Session, notifier: Notifier, request: VoiceModifyRequest, now: datetime) -> VoiceModifyResponse:
    try:
        if request.action == "cancel":
            appointment = cancel_appointment(db, notifier, request.appointment_id)
            message = "Your appointment has been cancelled. Is there anything else I can help with?"
        elif request.action == "reschedule":
            appointment = reschedule_appointment(
                db, request.appointment_id, request.new_date, request.new_time, now=now
            )
            when = format_when_spoken(appointment.scheduled_date, appointment.scheduled_time)
            message = f"Done. Your appointment is now {when}."
        else:
            appointment = add_services(db, request.appointment_id, request.service_ids)
            message = (
                f"I've added that to your visit. Your appointment now includes "
                f"{', '.join(appointment.service_names)}."
            )
    except HTTPException as exc:
        db.rollback()
        logger.info(
            "voice_modify_rejected call_id=%s appointment_id=%s action=%s status=%s",
            request.call_id,
            request.appointment_id,
            request.action,
            exc.status_code,
        )
        return VoiceModifyResponse(
            success=False,
            message=failure_message(exc),
            appointment_id=request.appointment_id,
            action=request.action,
        )

    return VoiceModifyResponse(
        success=True,
        message=message,
        appointment_id=appointment.id,
        action=request.action,
        status=appointment.status,
    )
