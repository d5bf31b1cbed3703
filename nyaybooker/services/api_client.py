import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx

from nyaybooker.core.config import settings
from nyaybooker.core.errors import ApiError, SessionExpiredError
from nyaybooker.core.security import bearer_header, is_token_expired
from nyaybooker.models.availability import DayAvailability, LawyerSchedule
from nyaybooker.models.chat import Conversation, Message, SendMessageRequest
from nyaybooker.models.user import UserIdentity

logger = logging.getLogger(__name__)


class TokenSource(Protocol):
    def get_access_token(self) -> str | None: ...

    def get_refresh_token(self) -> str | None: ...

    def set_tokens(self, access_token: str, refresh_token: str | None = None) -> None: ...

    def clear_tokens(self) -> None: ...


class StaticTokenSource:
    """In-memory tokens, e.g. a bearer token forwarded by the facade. Never refreshes."""

    def __init__(self, access_token: str | None = None, refresh_token: str | None = None) -> None:
        self._access = access_token
        self._refresh = refresh_token

    def get_access_token(self) -> str | None:
        return self._access

    def get_refresh_token(self) -> str | None:
        return self._refresh

    def set_tokens(self, access_token: str, refresh_token: str | None = None) -> None:
        self._access = access_token
        if refresh_token:
            self._refresh = refresh_token

    def clear_tokens(self) -> None:
        self._access = None
        self._refresh = None


def make_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.api_url,
        timeout=settings.request_timeout_seconds,
        transport=httpx.AsyncHTTPTransport(retries=settings.http_retries),
        headers={"Content-Type": "application/json"},
    )


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "success" in body:
        return body.get("data")
    return body


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500] or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


class ApiClient:
    """REST client. Responses come wrapped as ``{"success", "message", "data"}``; ``request`` returns ``data``."""

    def __init__(
        self,
        tokens: TokenSource | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.tokens = tokens or StaticTokenSource()
        self._owns_http = http is None
        self._http = http or make_http_client()
        self._refresh_lock = asyncio.Lock()
        # Called after a refused refresh has cleared the tokens
        self.on_session_expired: Callable[[], Awaitable[None] | None] | None = None

    def with_tokens(self, tokens: TokenSource) -> "ApiClient":
        """Client sharing this one's connection pool but authenticating with other tokens."""
        return ApiClient(tokens=tokens, http=self._http)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- plumbing ---

    async def _access_token(self) -> str | None:
        token = self.tokens.get_access_token()
        if token and is_token_expired(token):
            # Expired: refresh before sending rather than waste a round-trip on a 401
            token = await self.refresh_session(stale_token=token)
        return token

    async def refresh_session(self, stale_token: str | None = None) -> str:
        """Exchange the refresh token for a new pair. Clears tokens and raises if impossible.

        Only one refresh runs at a time. A caller passing the ``stale_token`` it
        failed with gets the current token back if another refresh already
        replaced it, so a rotated refresh token is never spent twice.
        """
        async with self._refresh_lock:
            current = self.tokens.get_access_token()
            if (
                stale_token is not None
                and current
                and current != stale_token
                and not is_token_expired(current)
            ):
                return current

            refresh = self.tokens.get_refresh_token()
            if not refresh:
                await self._expire_session()
                raise SessionExpiredError()
            try:
                data = await self.request(
                    "POST", "/auth/refresh", json={"refreshToken": refresh}, auth=False
                )
            except ApiError as e:
                logger.warning("Token refresh failed: %s", e.detail)
                await self._expire_session()
                raise SessionExpiredError() from e
            access = (data or {}).get("accessToken")
            if not access:
                await self._expire_session()
                raise SessionExpiredError("Refresh response carried no access token")
            self.tokens.set_tokens(access, data.get("refreshToken"))
            return access

    async def _expire_session(self) -> None:
        self.tokens.clear_tokens()
        if self.on_session_expired is not None:
            result = self.on_session_expired()
            if inspect.isawaitable(result):
                await result

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        auth: bool = True,
        retry_on_401: bool = True,
    ) -> Any:
        token = await self._access_token() if auth else None
        headers = bearer_header(token) if token else {}
        try:
            resp = await self._http.request(method, path, params=params, json=json, headers=headers)
        except httpx.TransportError as e:
            raise ApiError(f"{type(e).__name__}: {e}") from e

        if (
            resp.status_code == 401
            and auth
            and retry_on_401
            and self.tokens.get_refresh_token()
        ):
            await self.refresh_session(stale_token=token)
            return await self.request(
                method, path, params=params, json=json, auth=auth, retry_on_401=False
            )
        if resp.status_code >= 400:
            raise ApiError(_error_detail(resp), resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(f"Invalid JSON from {path}", resp.status_code) from e
        return _unwrap(body)

    # --- auth ---

    async def login(
        self, email: str, password: str, remember_me: bool = False
    ) -> UserIdentity:
        data = await self.request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password, "rememberMe": remember_me},
            auth=False,
        )
        self.tokens.set_tokens(data["accessToken"], data.get("refreshToken"))
        return UserIdentity.from_payload(data["user"])

    async def logout(self) -> None:
        await self.request("POST", "/auth/logout", retry_on_401=False)

    async def get_me(self) -> UserIdentity:
        data = await self.request("GET", "/auth/me")
        return UserIdentity.from_payload(data["user"])

    # --- lawyers / availability ---

    async def get_lawyer_schedule(self, lawyer_id: str) -> LawyerSchedule:
        data = await self.request("GET", f"/lawyers/{lawyer_id}")
        return LawyerSchedule.model_validate(data)

    async def get_availability(self, lawyer_id: str, day: str) -> DayAvailability:
        data = await self.request(
            "GET", f"/lawyers/{lawyer_id}/availability", params={"date": day}
        )
        data = dict(data or {})
        data.setdefault("date", day)
        return DayAvailability.model_validate(data)

    # --- chat ---

    async def get_conversations(self) -> list[Conversation]:
        data = await self.request("GET", "/chat/conversations")
        return [Conversation.model_validate(c) for c in data or []]

    async def get_messages(
        self, case_id: str, page: int = 1, limit: int | None = None
    ) -> list[Message]:
        data = await self.request(
            "GET",
            f"/chat/{case_id}/messages",
            params={"page": page, "limit": limit or settings.messages_page_limit},
        )
        messages = [Message.model_validate(m) for m in data or []]
        for m in messages:
            m.case_id = m.case_id or case_id
        return messages

    async def send_message(self, case_id: str, content: str, type: str = "TEXT") -> Message:
        body = SendMessageRequest(content=content, type=type).model_dump(by_alias=True)
        data = await self.request("POST", f"/chat/{case_id}/messages", json=body)
        message = Message.model_validate(data)
        message.case_id = message.case_id or case_id
        return message

    async def mark_messages_read(self, case_id: str) -> int:
        data = await self.request("PUT", f"/chat/{case_id}/messages/read")
        return int((data or {}).get("markedRead", 0))
