"""Derive what a visit needs from the services requested for it."""

import math
from dataclasses import dataclass
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from bay_scheduler.core.config import settings
from bay_scheduler.db.models import Service

UNKNOWN_SERVICES_DETAIL = "One or more services do not exist"
NO_SERVICES_DETAIL = "At least one service is required"


def bay_type_rank(bay_type: str) -> int:
    try:
        return settings.bay_type_order.index(bay_type) + 1
    except ValueError:
        return 0


def skill_rank(skill_level: str) -> int:
    try:
        return settings.skill_level_order.index(skill_level) + 1
    except ValueError:
        return 1


def most_specialized_bay_type(bay_types: list[str]) -> str:
    best = bay_types[0]
    for bay_type in bay_types[1:]:
        if bay_type_rank(bay_type) > bay_type_rank(best):
            best = bay_type
    return best


def highest_skill_level(skill_levels: list[str]) -> str:
    best = settings.skill_level_order[0]
    for level in skill_levels:
        if skill_rank(level) > skill_rank(best):
            best = level
    return best


def slots_needed(duration_minutes: int, granularity_minutes: int | None = None) -> int:
    granularity = granularity_minutes or settings.slot_granularity_minutes
    return math.ceil(duration_minutes / granularity)


@dataclass(frozen=True)
class ServiceRequirements:
    services: tuple[Service, ...]
    total_duration_minutes: int
    bay_type: str
    skill_level: str

    @property
    def slots_needed(self) -> int:
        return slots_needed(self.total_duration_minutes)

    @property
    def total_price(self) -> Decimal:
        return sum((service.price for service in self.services), Decimal("0"))

    @property
    def service_names(self) -> list[str]:
        return [service.name for service in self.services]

    @classmethod
    def from_services(cls, services: list[Service]) -> "ServiceRequirements":
        if not services:
            raise ValueError("requirements need at least one service")
        return cls(
            services=tuple(services),
            total_duration_minutes=sum(service.duration_minutes for service in services),
            bay_type=most_specialized_bay_type([service.required_bay_type for service in services]),
            skill_level=highest_skill_level([service.required_skill_level for service in services]),
        )


def load_services(db: Session, service_ids: list[int]) -> list[Service]:
    unique_ids = list(dict.fromkeys(service_ids))
    if not unique_ids:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=NO_SERVICES_DETAIL)

    services = db.scalars(select(Service).where(Service.id.in_(unique_ids), Service.is_active.is_(True))).all()
    by_id = {service.id: service for service in services}
    if len(by_id) != len(unique_ids):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=UNKNOWN_SERVICES_DETAIL)
    return [by_id[service_id] for service_id in unique_ids]


def resolve_requirements(db: Session, service_ids: list[int]) -> ServiceRequirements:
    return ServiceRequirements.from_services(load_services(db, service_ids))
