import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from nyaybooker.core.config import settings
from nyaybooker.core.errors import ApiError
from nyaybooker.models.chat import Conversation, Message
from nyaybooker.models.user import UserIdentity
from nyaybooker.services.api_client import ApiClient
from nyaybooker.services.socket_service import ConnectionManager

logger = logging.getLogger(__name__)


class ChatSynchronizer:
    """Case conversations fed by REST loads and socket pushes. One case room is joined at a time.

    Messages are keyed by id, so a page fetch racing a push never duplicates an
    entry. A sent message shows up at once as a pending entry with a
    ``client_id`` until the server copy replaces it.
    """

    def __init__(
        self,
        api: ApiClient,
        connection: ConnectionManager | None = None,
        user: UserIdentity | None = None,
        typing_seconds: float | None = None,
    ) -> None:
        self.api = api
        self.connection = connection
        self.user = user
        self.typing_seconds = (
            settings.typing_indicator_seconds if typing_seconds is None else typing_seconds
        )

        self.conversations: list[Conversation] = []
        self.active_case_id: str | None = None
        self.messages: list[Message] = []
        self.typing_user: str | None = None
        self.loading_conversations = False
        self.loading_messages = False

        self._typing_timer: asyncio.TimerHandle | None = None
        self._load_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        if connection is not None:
            self._unsubscribers = [
                connection.subscribe("message_received", self.on_message_received),
                connection.subscribe("user_typing", self.on_user_typing),
                connection.subscribe("messages_read", self.on_messages_read),
                connection.subscribe("connect", self._on_connect),
            ]

    @property
    def connected(self) -> bool:
        return self.connection is not None and self.connection.connected

    @property
    def show_reconnecting_banner(self) -> bool:
        return self.connection is None or self.connection.show_reconnecting_banner

    @property
    def pending_messages(self) -> list[Message]:
        return [m for m in self.messages if m.pending]

    # --- REST loads ---

    async def load_conversations(self) -> list[Conversation]:
        self.loading_conversations = True
        try:
            self.conversations = await self.api.get_conversations()
        except ApiError as e:
            logger.error("Failed to load conversations: %s", e.detail)
        finally:
            self.loading_conversations = False
        return self.conversations

    async def _load_messages(self, case_id: str) -> None:
        self.loading_messages = True
        try:
            page = await self.api.get_messages(case_id)
            if self.active_case_id == case_id:
                self.messages = self._merge(page, self.messages)
        except ApiError as e:
            logger.error("Failed to load messages for case %s: %s", case_id, e.detail)
        finally:
            if self.active_case_id == case_id:
                self.loading_messages = False

    @staticmethod
    def _merge(page: list[Message], current: list[Message]) -> list[Message]:
        """Page first, then anything pushed or sent while it was in flight."""
        merged = list(page)
        seen = {m.id for m in page}
        for m in current:
            if m.pending or m.id not in seen:
                merged.append(m)
                seen.add(m.id)
        return merged

    # --- room membership ---

    async def select_conversation(self, case_id: str) -> None:
        previous = self.active_case_id
        if previous is not None and self.connection is not None:
            await self.connection.leave_case(previous)

        self.active_case_id = case_id
        self.messages = []
        self._clear_typing()

        if self.connected:
            await self.connection.join_case(case_id)
        await self.mark_read()
        if self.active_case_id != case_id:
            # Another selection ran while we were marking read
            return

        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        task = asyncio.ensure_future(self._load_messages(case_id))
        self._load_task = task
        try:
            await task
        except asyncio.CancelledError:
            # Superseded by a newer selection: not a failure
            if task.cancelled() and self._load_task is not task:
                return
            raise

    async def mark_read(self) -> None:
        """Mark the active case read: socket intent when connected, REST otherwise."""
        case_id = self.active_case_id
        if case_id is None:
            return
        if self.connected and await self.connection.mark_read(case_id):
            return
        try:
            await self.api.mark_messages_read(case_id)
        except ApiError as e:
            logger.warning("Failed to mark case %s read: %s", case_id, e.detail)

    async def _on_connect(self) -> None:
        # Rooms do not survive a reconnect on the server side
        if self.active_case_id is not None and self.connection is not None:
            await self.connection.join_case(self.active_case_id)
            await self.mark_read()

    # --- sending ---

    async def send(self, content: str) -> Message | None:
        """Socket when connected, REST otherwise. Failures are logged, never retried."""
        content = content.strip()
        case_id = self.active_case_id
        if not content or case_id is None:
            return None

        client_id = f"temp-{uuid4()}"
        pending = Message(
            id=client_id,
            client_id=client_id,
            case_id=case_id,
            sender_id=self.user.id if self.user else None,
            content=content,
            created_at=datetime.now(UTC),
            pending=True,
        )
        self.messages.append(pending)

        if self.connection is not None and await self.connection.send_message(case_id, content):
            return pending

        try:
            saved = await self.api.send_message(case_id, content)
        except ApiError as e:
            logger.error("Failed to send message to case %s: %s", case_id, e.detail)
            self._drop_pending(client_id)
            return None
        self._settle_pending(client_id, saved)
        self._update_preview(saved)
        return saved

    async def notify_typing(self) -> bool:
        if self.active_case_id is None or self.connection is None:
            return False
        return await self.connection.send_typing(self.active_case_id)

    def _drop_pending(self, client_id: str) -> None:
        self.messages = [m for m in self.messages if m.client_id != client_id]

    def _settle_pending(self, client_id: str, saved: Message) -> None:
        if any(m.id == saved.id for m in self.messages):
            # Echo got here first
            self._drop_pending(client_id)
            return
        for i, m in enumerate(self.messages):
            if m.client_id == client_id:
                self.messages[i] = saved
                return

    def _match_pending(self, incoming: Message) -> int | None:
        if not self.user or incoming.sender_id != self.user.id:
            return None
        for i, m in enumerate(self.messages):
            if m.pending and m.case_id == incoming.case_id and m.content == incoming.content:
                return i
        return None

    # --- socket events ---

    def on_message_received(self, payload: dict[str, Any]) -> None:
        try:
            message = Message.model_validate(payload)
        except ValidationError as e:
            logger.warning("Ignoring malformed message_received payload: %s", e)
            return

        if message.case_id == self.active_case_id and not any(
            m.id == message.id for m in self.messages
        ):
            index = self._match_pending(message)
            if index is None:
                self.messages.append(message)
            else:
                self.messages[index] = message

        self._update_preview(message)

    def _update_preview(self, message: Message) -> None:
        for conversation in self.conversations:
            if conversation.case_id == message.case_id:
                conversation.last_message = message.content
                conversation.last_message_at = message.created_at

    def on_user_typing(self, payload: dict[str, Any]) -> None:
        case_id = payload.get("caseId")
        if case_id is not None and str(case_id) != self.active_case_id:
            return
        self.typing_user = payload.get("userId")
        if self._typing_timer is not None:
            self._typing_timer.cancel()
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(self.typing_seconds, self._clear_typing)

    def _clear_typing(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None
        self.typing_user = None

    def on_messages_read(self, payload: dict[str, Any]) -> None:
        case_id = payload.get("caseId")
        if case_id is None or str(case_id) != self.active_case_id:
            return
        for m in self.messages:
            m.read = True

    # --- teardown ---

    async def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._clear_typing()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        if self.active_case_id is not None and self.connection is not None:
            await self.connection.leave_case(self.active_case_id)
        self.active_case_id = None
