from datetime import date

from pydantic import BaseModel


class BayTypeUtilization(BaseModel):
    total_slots: int
    booked_slots: int


class DayUtilization(BaseModel):
    day: date
    total_slots: int
    booked_slots: int
    utilization: float
    by_bay_type: dict[str, BayTypeUtilization]


class BayUtilizationResponse(BaseModel):
    date_from: date
    date_to: date
    cached: bool
    days: list[DayUtilization]
