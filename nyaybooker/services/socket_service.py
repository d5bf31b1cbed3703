import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import socketio

from nyaybooker.core.config import settings

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None] | None]

LISTENED_EVENTS = (
    "connect",
    "disconnect",
    "connect_error",
    "message_received",
    "user_typing",
    "messages_read",
    "error",
)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def make_socket_client() -> socketio.AsyncClient:
    # Fixed backoff: delay_max == delay and no jitter
    return socketio.AsyncClient(
        reconnection=True,
        reconnection_attempts=settings.socket_reconnection_attempts,
        reconnection_delay=settings.socket_reconnection_delay,
        reconnection_delay_max=settings.socket_reconnection_delay,
        randomization_factor=0,
        logger=False,
        engineio_logger=False,
    )


class ConnectionManager:
    """Socket.IO session shared by chat views. Call close() when the session ends."""

    def __init__(
        self,
        url: str | None = None,
        client: socketio.AsyncClient | None = None,
    ) -> None:
        self.url = url or settings.resolved_socket_url
        self.state = ConnectionState.DISCONNECTED
        self._client = client or make_socket_client()
        self._opened = False
        self._closing = False
        self._connect_task: asyncio.Task[None] | None = None
        self._settled = asyncio.Event()
        self._subscribers: dict[str, list[Handler]] = {event: [] for event in LISTENED_EVENTS}
        for event in LISTENED_EVENTS:
            self._client.on(event, self._dispatcher(event))

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def show_reconnecting_banner(self) -> bool:
        return self._opened and not self.connected

    # --- lifecycle ---

    async def open(self, token: str) -> bool:
        """Connect with the token in the auth payload.

        Returns once the first attempt settles. If it failed, the client keeps
        retrying in the background (state RECONNECTING) and False is returned.
        """
        if self._opened:
            return self.connected
        self._opened = True
        self._closing = False
        self.state = ConnectionState.CONNECTING
        self._settled.clear()
        task = self._connect_task = asyncio.ensure_future(self._connect(token))
        settled = asyncio.ensure_future(self._settled.wait())
        try:
            await asyncio.wait({task, settled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            settled.cancel()
        if task.done() and not task.cancelled():
            task.result()
        return self.connected

    async def _connect(self, token: str) -> None:
        # retry=True runs the bounded reconnect loop for the first connection as well
        try:
            await self._client.connect(
                self.url,
                auth={"token": token},
                transports=settings.socket_transports_list,
                retry=True,
            )
        except socketio.exceptions.ConnectionError as e:
            if not self._closing:
                logger.warning("[Socket] Giving up on connection: %s", e)
                self.state = ConnectionState.DISCONNECTED
        finally:
            self._settled.set()

    async def close(self) -> None:
        """Tear down unconditionally. Subscribers are dropped first so nothing fires after this."""
        self._closing = True
        for handlers in self._subscribers.values():
            handlers.clear()
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._opened:
            try:
                await self._client.disconnect()
            finally:
                self._opened = False
        self.state = ConnectionState.DISCONNECTED

    # --- events in ---

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        if event not in self._subscribers:
            raise ValueError(f"Unknown socket event: {event}")
        self._subscribers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers[event]:
                self._subscribers[event].remove(handler)

        return unsubscribe

    def _dispatcher(self, event: str) -> Callable[..., Awaitable[None]]:
        async def dispatch(*args: Any) -> None:
            self._track_state(event, args)
            for handler in list(self._subscribers[event]):
                try:
                    result = handler(*args)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("[Socket] Handler for %s failed", event)

        return dispatch

    def _track_state(self, event: str, args: tuple[Any, ...]) -> None:
        if event == "connect":
            logger.info("[Socket] Connected")
            self.state = ConnectionState.CONNECTED
            self._settled.set()
        elif event == "disconnect":
            reason = args[0] if args else None
            logger.warning("[Socket] Disconnected: %s", reason)
            # The client retries on its own unless we are the ones closing
            self.state = ConnectionState.DISCONNECTED if self._closing else ConnectionState.RECONNECTING
        elif event == "connect_error":
            logger.warning("[Socket] Connection error: %s", args[0] if args else None)
            if not self._closing and not self.connected:
                self.state = ConnectionState.RECONNECTING
            self._settled.set()
        elif event == "error":
            logger.warning("[Socket] Server error: %s", args[0] if args else None)

    # --- intents out ---

    async def _emit(self, event: str, data: Any) -> bool:
        if not self.connected:
            logger.debug("[Socket] Not connected, dropping %s", event)
            return False
        await self._client.emit(event, data)
        return True

    async def join_case(self, case_id: str) -> bool:
        return await self._emit("join_case", case_id)

    async def leave_case(self, case_id: str) -> bool:
        return await self._emit("leave_case", case_id)

    async def send_message(self, case_id: str, content: str, type: str = "TEXT") -> bool:
        return await self._emit("send_message", {"caseId": case_id, "content": content, "type": type})

    async def send_typing(self, case_id: str) -> bool:
        return await self._emit("typing", {"caseId": case_id})

    async def mark_read(self, case_id: str) -> bool:
        return await self._emit("mark_read", {"caseId": case_id})
