import inspect
import logging
from collections.abc import Awaitable, Callable

from nyaybooker.core.errors import ApiError
from nyaybooker.core.security import is_token_expired
from nyaybooker.models.user import UserIdentity
from nyaybooker.services.api_client import ApiClient
from nyaybooker.services.session_store import SessionStore

logger = logging.getLogger(__name__)

AuthListener = Callable[[UserIdentity | None], Awaitable[None] | None]


class AuthService:
    """Who is signed in. Listeners hear about every change of user, including sign-out."""

    def __init__(self, api: ApiClient, store: SessionStore) -> None:
        self.api = api
        self.store = store
        self.user: UserIdentity | None = None
        self.is_loading = True
        self.error: str | None = None
        self._listeners: list[AuthListener] = []
        api.on_session_expired = self.expire_session

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def on_change(self, listener: AuthListener) -> None:
        self._listeners.append(listener)

    async def _set_user(self, user: UserIdentity | None) -> None:
        changed = (self.user.id if self.user else None) != (user.id if user else None)
        self.user = user
        self.store.set_identity(user)
        if not changed:
            return
        for listener in list(self._listeners):
            result = listener(user)
            if inspect.isawaitable(result):
                await result

    async def expire_session(self) -> None:
        """The API client could not refresh the session and has dropped the tokens."""
        if self.user is not None:
            logger.info("Session expired for %s", self.user.id)
        await self._set_user(None)

    async def bootstrap(self) -> UserIdentity | None:
        """Restore the stored session. Cancelling the calling task leaves state untouched."""
        token = self.store.get_access_token()
        if token and is_token_expired(token):
            # Skip the round-trip; the server would refuse it anyway
            self.store.clear_tokens()
        elif token:
            try:
                user = await self.api.get_me()
            except ApiError as e:
                logger.info("Stored session rejected: %s", e.detail)
                self.store.clear_tokens()
                await self._set_user(None)
            else:
                await self._set_user(user)
        self.is_loading = False
        return self.user

    async def login(self, email: str, password: str, remember_me: bool = False) -> UserIdentity | None:
        self.error = None
        try:
            user = await self.api.login(email, password, remember_me)
        except ApiError as e:
            self.error = e.detail or "Login failed. Please try again."
            logger.info("Login failed for %s: %s", email, self.error)
            return None
        await self._set_user(user)
        return user

    async def logout(self) -> None:
        try:
            await self.api.logout()
        except ApiError as e:
            logger.warning("Logout error: %s", e.detail)
        finally:
            self.store.clear()
            await self._set_user(None)
