from nyaybooker.models.availability import BlockedPeriod, CalendarDay
from nyaybooker.models.base import CamelModel


class CalendarMonthResponse(CamelModel):
    lawyer_id: str
    year: int
    month: int
    today: str  # YYYY-MM-DD
    # Sunday-first; leading nulls pad to the first weekday of the month
    days: list[CalendarDay | None]
    skipped_periods: list[BlockedPeriod] = []
