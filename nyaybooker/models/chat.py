from datetime import datetime
from typing import Any

from pydantic import model_validator

from nyaybooker.models.base import CamelModel


class Message(CamelModel):
    id: str
    case_id: str | None = None  # REST pages omit it; the synchronizer fills it in
    sender_id: str | None = None
    content: str = ""
    type: str = "TEXT"
    created_at: datetime | None = None
    read: bool = False
    # Local-only: optimistic entry awaiting the server copy
    pending: bool = False
    client_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_push_shape(cls, data: Any) -> Any:
        """Accept the socket payload shape: sender.id instead of senderId, isRead instead of read."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        sender = data.get("sender")
        if "senderId" not in data and "sender_id" not in data and isinstance(sender, dict):
            data["senderId"] = sender.get("id")
        if "read" not in data and "isRead" in data:
            data["read"] = bool(data["isRead"])
        return data


class Conversation(CamelModel):
    case_id: str
    title: str | None = None
    other_party: str | None = None
    last_message: str | None = None
    last_message_at: datetime | None = None
    unread_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        """The conversations endpoint nests otherParty and lastMessage as objects."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        other = data.get("otherParty")
        if isinstance(other, dict):
            data["otherParty"] = other.get("name")
        last = data.get("lastMessage")
        if isinstance(last, dict):
            data["lastMessage"] = last.get("content")
            data.setdefault("lastMessageAt", last.get("createdAt"))
        return data


class SendMessageRequest(CamelModel):
    content: str
    type: str = "TEXT"

