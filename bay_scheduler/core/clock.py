from datetime import UTC, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from bay_scheduler.core.config import settings


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def business_tz() -> ZoneInfo:
    return _zone(settings.business_timezone)


def to_business_local(value: datetime) -> datetime:
    """Return a naive wall-clock datetime in the shop's timezone.

    Naive inputs are assumed to already be shop-local.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(business_tz()).replace(tzinfo=None)


def business_now() -> datetime:
    return to_business_local(datetime.now(UTC))
