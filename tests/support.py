import asyncio
import time

import httpx
import socketio
from jose import jwt

from nyaybooker.services.api_client import ApiClient, StaticTokenSource

UPSTREAM = "http://upstream.test/api/v1"


def make_token(exp_in_seconds: int = 3600, sub: str = "user-1") -> str:
    return jwt.encode(
        {"sub": sub, "exp": int(time.time()) + exp_in_seconds}, "test-secret", algorithm="HS256"
    )


def envelope(data, message: str = "Success") -> dict:
    return {"success": True, "message": message, "data": data}


def make_api(handler, tokens=None) -> ApiClient:
    http = httpx.AsyncClient(base_url=UPSTREAM, transport=httpx.MockTransport(handler))
    return ApiClient(tokens=tokens or StaticTokenSource(), http=http)


class FakeSocketClient:
    """Stands in for socketio.AsyncClient: records emits, lets tests fire events."""

    def __init__(self, fail_connect: bool = False) -> None:
        self.handlers = {}
        self.emitted = []
        self.connect_calls = []
        self.disconnect_calls = 0
        self.fail_connect = fail_connect
        # Set to end the retry loop of a failing connect(retry=True)
        self.retries_exhausted = asyncio.Event()

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def fire(self, event, *args):
        await self.handlers[event](*args)

    async def connect(self, url, auth=None, transports=None, retry=False, **kwargs):
        self.connect_calls.append({"url": url, "auth": auth, "transports": transports, "retry": retry})
        if self.fail_connect:
            await self.fire("connect_error", "refused")
            if retry:
                await self.retries_exhausted.wait()
            raise socketio.exceptions.ConnectionError("refused")
        await self.fire("connect")

    async def emit(self, event, data=None, **kwargs):
        self.emitted.append((event, data))

    async def disconnect(self):
        self.disconnect_calls += 1
        await self.fire("disconnect", "io client disconnect")
