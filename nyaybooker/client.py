import logging
from collections.abc import Callable

from nyaybooker.models.user import UserIdentity
from nyaybooker.services.api_client import ApiClient
from nyaybooker.services.auth_service import AuthService
from nyaybooker.services.availability_service import AvailabilityService
from nyaybooker.services.chat_service import ChatSynchronizer
from nyaybooker.services.session_store import SessionStore
from nyaybooker.services.socket_service import ConnectionManager

logger = logging.getLogger(__name__)


class BookingClient:
    def __init__(
        self,
        store: SessionStore | None = None,
        api: ApiClient | None = None,
        connection_factory: Callable[[], ConnectionManager] = ConnectionManager,
    ) -> None:
        self.store = store or SessionStore()
        self.api = api or ApiClient(tokens=self.store)
        self.auth = AuthService(self.api, self.store)
        self.availability = AvailabilityService(self.api)
        self.connection: ConnectionManager | None = None
        self._connection_factory = connection_factory
        self.auth.on_change(self._on_auth_change)

    async def _on_auth_change(self, user: UserIdentity | None) -> None:
        # A new user never inherits the previous user's socket
        await self._close_connection()
        if user is None:
            return
        token = self.store.get_access_token()
        if not token:
            return
        self.connection = self._connection_factory()
        await self.connection.open(token)

    async def _close_connection(self) -> None:
        if self.connection is not None:
            connection, self.connection = self.connection, None
            await connection.close()

    async def start(self) -> UserIdentity | None:
        return await self.auth.bootstrap()

    def open_chat(self) -> ChatSynchronizer:
        """A chat view borrowing the session's connection."""
        return ChatSynchronizer(self.api, self.connection, self.auth.user)

    async def aclose(self) -> None:
        await self._close_connection()
        await self.api.aclose()

    async def __aenter__(self) -> "BookingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
