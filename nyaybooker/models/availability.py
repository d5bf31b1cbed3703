from typing import Any

from pydantic import Field, computed_field, field_validator

from nyaybooker.models.base import CamelModel


class BlockedPeriod(CamelModel):
    # Kept as raw strings: a malformed range must be skipped, not fail the whole payload
    start_date: str | None = None
    end_date: str | None = None
    reason: str | None = None


class DaySchedule(CamelModel):
    enabled: bool | None = None  # None means enabled
    start: str | None = None  # HH:MM
    end: str | None = None  # HH:MM


# Lowercase day name ("sunday".."saturday") -> schedule
WeeklyAvailability = dict[str, DaySchedule]


class CalendarDay(CamelModel):
    date_string: str  # YYYY-MM-DD, local
    day_of_week: int  # 0=Sunday
    is_past: bool
    is_blocked: bool
    is_selected: bool
    is_today: bool

    @computed_field(alias="isSelectable")
    @property
    def is_selectable(self) -> bool:
        return not self.is_blocked and not self.is_past


class ReconciliationResult(CamelModel):
    blocked_dates: set[str] = Field(default_factory=set)
    enabled_weekdays: set[int] | None = None  # None = no weekday restriction
    skipped_periods: list[BlockedPeriod] = Field(default_factory=list)


class TimeSlot(CamelModel):
    time: str
    end_time: str | None = None
    available: bool = True


class DayAvailability(CamelModel):
    date: str
    slots: list[TimeSlot] = Field(default_factory=list)
    message: str | None = None


class LawyerSchedule(CamelModel):
    """The part of a lawyer profile the booking calendar needs."""

    id: str
    availability: WeeklyAvailability = Field(default_factory=dict)
    blocked_periods: list[BlockedPeriod] = Field(default_factory=list)
    is_available: bool = True

    @field_validator("availability", mode="before")
    @classmethod
    def _null_availability(cls, value: Any) -> Any:
        return value or {}

    @field_validator("blocked_periods", mode="before")
    @classmethod
    def _null_blocked_periods(cls, value: Any) -> Any:
        return value or []
