from datetime import date

from fastapi import APIRouter, Depends, Query

from nyaybooker.api.deps import get_availability_service
from nyaybooker.models.availability import DayAvailability
from nyaybooker.services.availability_service import AvailabilityService

router = APIRouter(prefix="/lawyers", tags=["slots"])


@router.get("/{lawyer_id}/slots", response_model=DayAvailability)
async def day_slots(
    lawyer_id: str,
    date_param: date = Query(..., alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> DayAvailability:
    """Slots for one day. Past and blocked days come back empty without asking upstream."""
    return await service.get_day_availability(lawyer_id, date_param)
