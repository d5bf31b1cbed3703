from datetime import date

from fastapi import APIRouter, Depends, Query

from nyaybooker.api.deps import get_availability_service
from nyaybooker.api.schemas.calendar import CalendarMonthResponse
from nyaybooker.services.availability_service import AvailabilityService, format_local_date

router = APIRouter(prefix="/lawyers", tags=["calendar"])


@router.get("/{lawyer_id}/calendar", response_model=CalendarMonthResponse)
async def month_calendar(
    lawyer_id: str,
    year: int | None = Query(None, ge=1970, le=9999),
    month: int | None = Query(None, ge=1, le=12),
    selected: date | None = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
) -> CalendarMonthResponse:
    """Month grid with per-day bookability. Defaults to the current month."""
    today = date.today()
    year = year or today.year
    month = month or today.month
    days, reconciler = await service.get_month(
        lawyer_id, year, month, today=today, selected=selected
    )
    return CalendarMonthResponse(
        lawyer_id=lawyer_id,
        year=year,
        month=month,
        today=format_local_date(today),
        days=days,
        skipped_periods=reconciler.skipped_periods,
    )
