from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from bay_scheduler.core.clock import business_now
from bay_scheduler.db.session import get_db
from bay_scheduler.schemas.analytics import BayUtilizationResponse
from bay_scheduler.services.analytics_service import bay_utilization

router = APIRouter(prefix="/analytics", tags=["analytics"])

MAX_RANGE_DAYS = 92


@router.get("/bay-utilization", response_model=BayUtilizationResponse, status_code=status.HTTP_200_OK)
def get_bay_utilization(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> BayUtilizationResponse:
    start = date_from or business_now().date()
    end = date_to or start + timedelta(days=6)
    if end < start:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date_to must not be before date_from")
    if (end - start).days > MAX_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Date range is limited to {MAX_RANGE_DAYS} days",
        )

    days, cached = bay_utilization(db=db, date_from=start, date_to=end)
    return BayUtilizationResponse(date_from=start, date_to=end, cached=cached, days=days)
