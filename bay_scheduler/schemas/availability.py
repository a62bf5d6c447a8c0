from datetime import date, time

from pydantic import BaseModel


class WindowResponse(BaseModel):
    slot_date: date
    start_time: time
    end_time: time
    bay_id: int
    bay_name: str

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    available: bool
    service_ids: list[int]
    services: list[str]
    total_duration_minutes: int
    bay_type: str
    skill_level: str
    slots_needed: int
    date_from: date
    date_to: date
    windows: list[WindowResponse]


class NextAvailableResponse(BaseModel):
    service_id: int
    service_name: str
    available: bool
    window: WindowResponse | None
