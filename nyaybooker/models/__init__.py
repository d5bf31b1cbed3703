from nyaybooker.models.availability import (
    BlockedPeriod,
    CalendarDay,
    DayAvailability,
    DaySchedule,
    LawyerSchedule,
    ReconciliationResult,
    TimeSlot,
    WeeklyAvailability,
)
from nyaybooker.models.chat import Conversation, Message, SendMessageRequest
from nyaybooker.models.stored_session import StoredSession
from nyaybooker.models.user import UserIdentity

__all__ = [
    "BlockedPeriod",
    "CalendarDay",
    "DayAvailability",
    "DaySchedule",
    "LawyerSchedule",
    "ReconciliationResult",
    "TimeSlot",
    "WeeklyAvailability",
    "Conversation",
    "Message",
    "SendMessageRequest",
    "StoredSession",
    "UserIdentity",
]
