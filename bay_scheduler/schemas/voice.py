"""Typed requests for the voice-agent webhooks.

Voice platforms send loosely shaped JSON: parameters may sit at the top
level or under ``args``, absent values arrive as ``"null"`` or as template
placeholders that were never substituted, and lists arrive as scalars.
Everything is normalized here before any scheduling code sees it.
"""

import re
from datetime import date, time
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from bay_scheduler.schemas.appointment import require_shop_local_time

_BLANK_VALUES = {"", "null", "none", "undefined", "nil"}
_CLOCK_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?(?::(\d{2}))?\s*([ap]\.?m\.?)?$", re.IGNORECASE)


def is_template_placeholder(value: Any) -> bool:
    return isinstance(value, str) and ("{{" in value or "}}" in value)


def clean_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.lower() in _BLANK_VALUES or is_template_placeholder(text):
            return None
        return text
    return value


def unwrap_voice_payload(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}

    args = raw.get("args")
    body = args if isinstance(args, dict) else raw
    params = {key: clean_value(value) for key, value in body.items() if key != "args"}

    # Some platforms put call_id at the top level or inside a call object, never in args.
    call = raw.get("call")
    call_id = clean_value(raw.get("call_id"))
    if call_id is None and isinstance(call, dict):
        call_id = clean_value(call.get("call_id"))
    if call_id is None:
        call_id = params.get("call_id")
    params["call_id"] = str(call_id) if call_id is not None else None
    return params


def parse_spoken_time(value: Any) -> Any:
    """Accept ``14:30``, ``14:30:00``, ``2:30 PM`` or ``3pm``; anything else goes to pydantic as is."""
    if not isinstance(value, str):
        return value
    match = _CLOCK_RE.match(value.strip())
    if not match:
        return value
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(4) or "").lower().replace(".", "")
    if meridiem:
        if not 1 <= hour <= 12:
            return value
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        return value
    return time(hour, minute)


def _as_id_list(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if clean_value(part) is not None]
    if isinstance(value, (list, tuple)):
        return [clean_value(item) for item in value if clean_value(item) is not None]
    return [value]


class VoiceRequest(BaseModel):
    call_id: str | None = Field(default=None, max_length=128)

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> dict[str, Any]:
        return unwrap_voice_payload(data)


class VoiceAvailabilityRequest(VoiceRequest):
    service_ids: list[int] = Field(min_length=1, max_length=20)
    preferred_date: date | None = None
    preferred_time: str | None = Field(default=None, max_length=80)
    days_to_check: int = Field(default=7, ge=1, le=60)

    @field_validator("service_ids", mode="before")
    @classmethod
    def coerce_service_ids(cls, value: Any) -> Any:
        return _as_id_list(value)

    @field_validator("days_to_check", mode="before")
    @classmethod
    def default_days(cls, value: Any) -> Any:
        return 7 if value is None else value


class VoiceBookingRequest(VoiceRequest):
    customer_phone: str | None = Field(default=None, max_length=32)
    customer_first_name: str | None = Field(default=None, max_length=80)
    customer_last_name: str | None = Field(default=None, max_length=80)
    customer_email: str | None = Field(default=None, max_length=255)
    vehicle_id: int | None = None
    vehicle_year: int | None = None
    vehicle_make: str | None = Field(default=None, max_length=60)
    vehicle_model: str | None = Field(default=None, max_length=60)
    vehicle_mileage: int | None = Field(default=None, ge=0)
    service_ids: list[int] = Field(min_length=1, max_length=20)
    appointment_date: date
    appointment_time: time
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("service_ids", mode="before")
    @classmethod
    def coerce_service_ids(cls, value: Any) -> Any:
        return _as_id_list(value)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def coerce_time(cls, value: Any) -> Any:
        return parse_spoken_time(value)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, value: time) -> time:
        return require_shop_local_time(value)

    @model_validator(mode="after")
    def validate_customer_reference(self) -> "VoiceBookingRequest":
        if not self.customer_phone:
            raise ValueError("customer_phone is required")
        return self


class VoiceModifyRequest(VoiceRequest):
    appointment_id: int
    action: Literal["cancel", "reschedule", "add_services"]
    new_date: date | None = None
    new_time: time | None = None
    service_ids: list[int] | None = None
    reason: str | None = Field(default=None, max_length=500)

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_").replace(" ", "_")
        return value

    @field_validator("service_ids", mode="before")
    @classmethod
    def coerce_service_ids(cls, value: Any) -> Any:
        return _as_id_list(value)

    @field_validator("new_time", mode="before")
    @classmethod
    def coerce_time(cls, value: Any) -> Any:
        return parse_spoken_time(value)

    @field_validator("new_time")
    @classmethod
    def validate_time(cls, value: time | None) -> time | None:
        return require_shop_local_time(value)

    @model_validator(mode="after")
    def validate_action_arguments(self) -> "VoiceModifyRequest":
        if self.action == "reschedule" and (self.new_date is None or self.new_time is None):
            raise ValueError("reschedule needs new_date and new_time")
        if self.action == "add_services" and not self.service_ids:
            raise ValueError("add_services needs service_ids")
        return self


class VoiceSlot(BaseModel):
    date: str
    time: str
    bay_id: int
    formatted: str
    spoken_date: str
    time_formatted: str


class VoiceAvailabilityResponse(BaseModel):
    success: bool
    available: bool
    message: str
    slots: list[VoiceSlot] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    total_duration_minutes: int | None = None
    requested_date_closed: bool = False


class VoiceBookingResponse(BaseModel):
    success: bool
    message: str
    appointment_id: int | None = None
    formatted_time: str | None = None
    missing_info: list[str] | None = None


class VoiceModifyResponse(BaseModel):
    success: bool
    message: str
    appointment_id: int | None = None
    action: str | None = None
    status: str | None = None
