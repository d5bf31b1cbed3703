import calendar
import logging
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from typing import Any

from nyaybooker.core.errors import ApiError
from nyaybooker.models.availability import (
    BlockedPeriod,
    CalendarDay,
    DayAvailability,
    DaySchedule,
    LawyerSchedule,
    ReconciliationResult,
)

logger = logging.getLogger(__name__)

DAY_NAMES = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

_UNSET = object()


def format_local_date(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_local_date(value: str) -> date:
    """YYYY-MM-DD -> calendar date. No timezone is involved."""
    return date.fromisoformat(value)


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def _truncate_to_date(value: str | None) -> date | None:
    # The date part of the UTC stamp is authoritative; time and offset are dropped
    if not value or len(value) < 10:
        return None
    try:
        return parse_local_date(value[:10])
    except ValueError:
        return None


def _walk_period(period: BlockedPeriod) -> list[str] | None:
    """Every day of the period, inclusive. None if the period is unusable."""
    start = _truncate_to_date(period.start_date)
    end = _truncate_to_date(period.end_date)
    if start is None or end is None or start > end:
        return None
    days: list[str] = []
    current = start
    while current <= end:
        days.append(format_local_date(current))
        current += timedelta(days=1)
    return days


def build_blocked_date_set(periods: Iterable[BlockedPeriod]) -> set[str]:
    blocked: set[str] = set()
    for period in periods:
        blocked.update(_walk_period(period) or ())
    return blocked


def _is_enabled(entry: DaySchedule | Mapping[str, Any] | None) -> bool:
    if entry is None:
        return False
    if isinstance(entry, Mapping):
        return entry.get("enabled") is not False
    return entry.enabled is not False


def build_enabled_weekday_set(
    availability: Mapping[str, DaySchedule | Mapping[str, Any]] | None,
) -> set[int] | None:
    """None means no weekday restriction. A configured day without `enabled` counts as open."""
    if not availability:
        return None
    return {
        index
        for index, name in enumerate(DAY_NAMES)
        if name in availability and _is_enabled(availability[name])
    }


def _collect_blocked(periods: Iterable[BlockedPeriod]) -> tuple[set[str], list[BlockedPeriod]]:
    blocked: set[str] = set()
    skipped: list[BlockedPeriod] = []
    for period in periods:
        days = _walk_period(period)
        if days is None:
            skipped.append(period)
            continue
        blocked.update(days)
    if skipped:
        logger.warning("Skipped %d unusable blocked period(s): %s", len(skipped), skipped)
    return blocked, skipped


def reconcile(
    periods: Iterable[BlockedPeriod],
    availability: Mapping[str, DaySchedule | Mapping[str, Any]] | None,
) -> ReconciliationResult:
    blocked, skipped = _collect_blocked(periods)
    return ReconciliationResult(
        blocked_dates=blocked,
        enabled_weekdays=build_enabled_weekday_set(availability),
        skipped_periods=skipped,
    )


class AvailabilityReconciler:
    """Blocked-date and weekday sets folded once, so each grid cell is a set lookup.

    Recomputed only when a new input object arrives. A period that cannot be
    parsed never blocks a day; it is skipped and kept in ``skipped_periods``.
    """

    def __init__(
        self,
        periods: Iterable[BlockedPeriod] = (),
        availability: Mapping[str, Any] | None = None,
    ) -> None:
        self._periods_ref: Any = _UNSET
        self._availability_ref: Any = _UNSET
        self.blocked_dates: set[str] = set()
        self.skipped_periods: list[BlockedPeriod] = []
        self.enabled_weekdays: set[int] | None = None
        self.update(periods, availability)

    def update(
        self,
        periods: Iterable[BlockedPeriod],
        availability: Mapping[str, Any] | None,
    ) -> None:
        if periods is not self._periods_ref:
            self.blocked_dates, self.skipped_periods = _collect_blocked(periods)
            self._periods_ref = periods
        if availability is not self._availability_ref:
            self.enabled_weekdays = build_enabled_weekday_set(availability)
            self._availability_ref = availability

    @property
    def result(self) -> ReconciliationResult:
        return ReconciliationResult(
            blocked_dates=set(self.blocked_dates),
            enabled_weekdays=None if self.enabled_weekdays is None else set(self.enabled_weekdays),
            skipped_periods=list(self.skipped_periods),
        )

    def is_date_blocked(self, date_string: str, dow: int) -> bool:
        if date_string in self.blocked_dates:
            return True
        return self.enabled_weekdays is not None and dow not in self.enabled_weekdays

    def is_selectable(self, date_string: str, dow: int, today: date | str) -> bool:
        today_string = today if isinstance(today, str) else format_local_date(today)
        # Lexicographic compare is safe: fixed-width, zero-padded
        if date_string < today_string:
            return False
        return not self.is_date_blocked(date_string, dow)

    def build_month_grid(
        self,
        year: int,
        month: int,
        *,
        today: date | None = None,
        selected: date | str | None = None,
    ) -> list[CalendarDay | None]:
        """Month cells, Sunday-first. Leading None entries pad up to the first weekday."""
        today_string = format_local_date(today or date.today())
        if isinstance(selected, date):
            selected = format_local_date(selected)
        first_weekday, days_in_month = calendar.monthrange(year, month)
        cells: list[CalendarDay | None] = [None] * ((first_weekday + 1) % 7)
        for day in range(1, days_in_month + 1):
            d = date(year, month, day)
            date_string = format_local_date(d)
            dow = day_of_week(d)
            cells.append(
                CalendarDay(
                    date_string=date_string,
                    day_of_week=dow,
                    is_past=date_string < today_string,
                    is_blocked=self.is_date_blocked(date_string, dow),
                    is_selected=date_string == selected,
                    is_today=date_string == today_string,
                )
            )
        return cells


class AvailabilityService:
    """Lawyer calendar backed by the REST API. Fetch failures fail open (nothing blocked)."""

    def __init__(self, api) -> None:
        self.api = api
        self._reconcilers: dict[str, AvailabilityReconciler] = {}
        self._schedules: dict[str, LawyerSchedule] = {}

    async def get_schedule(self, lawyer_id: str) -> LawyerSchedule:
        try:
            return await self.api.get_lawyer_schedule(lawyer_id)
        except ApiError as e:
            logger.warning("Failed to load schedule for lawyer %s: %s", lawyer_id, e.detail)
            return LawyerSchedule(id=lawyer_id)

    async def _load(self, lawyer_id: str) -> tuple[LawyerSchedule, AvailabilityReconciler]:
        schedule = await self.get_schedule(lawyer_id)
        cached = self._schedules.get(lawyer_id)
        if cached is not None and cached == schedule:
            # Every fetch parses new objects; hand back the cached ones so the
            # reconciler sees the same inputs and skips the recompute
            schedule = cached
        else:
            self._schedules[lawyer_id] = schedule
        reconciler = self._reconcilers.get(lawyer_id)
        if reconciler is None:
            reconciler = AvailabilityReconciler(schedule.blocked_periods, schedule.availability)
            self._reconcilers[lawyer_id] = reconciler
        else:
            reconciler.update(schedule.blocked_periods, schedule.availability)
        return schedule, reconciler

    async def get_reconciler(self, lawyer_id: str) -> AvailabilityReconciler:
        _, reconciler = await self._load(lawyer_id)
        return reconciler

    async def get_month(
        self,
        lawyer_id: str,
        year: int,
        month: int,
        *,
        today: date | None = None,
        selected: date | str | None = None,
    ) -> tuple[list[CalendarDay | None], AvailabilityReconciler]:
        reconciler = await self.get_reconciler(lawyer_id)
        return reconciler.build_month_grid(year, month, today=today, selected=selected), reconciler

    async def get_day_availability(
        self, lawyer_id: str, day: date, *, today: date | None = None
    ) -> DayAvailability:
        """Slots for one day. Past or blocked days, and lawyers not taking bookings, answer locally."""
        date_string = format_local_date(day)
        schedule, reconciler = await self._load(lawyer_id)
        if not schedule.is_available:
            return DayAvailability(date=date_string, slots=[], message="Lawyer is not accepting bookings")
        if not reconciler.is_selectable(date_string, day_of_week(day), today or date.today()):
            return DayAvailability(date=date_string, slots=[], message="Date is not available for booking")
        try:
            return await self.api.get_availability(lawyer_id, date_string)
        except ApiError as e:
            logger.warning(
                "Failed to load slots for lawyer %s on %s: %s", lawyer_id, date_string, e.detail
            )
            return DayAvailability(date=date_string, slots=[])
