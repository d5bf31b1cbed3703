import asyncio
from unittest.mock import MagicMock

import pytest

from nyaybooker.core.config import settings
from nyaybooker.services.socket_service import ConnectionManager, ConnectionState

from support import FakeSocketClient


def make_manager(**kwargs):
    client = FakeSocketClient(**kwargs)
    return ConnectionManager(url="http://socket.test", client=client), client


class TestLifecycle:
    def test_open_sends_token_in_auth_payload(self):
        manager, client = make_manager()
        assert asyncio.run(manager.open("tok-123")) is True
        call = client.connect_calls[0]
        assert call["url"] == "http://socket.test"
        assert call["auth"] == {"token": "tok-123"}
        assert call["transports"] == settings.socket_transports_list
        assert call["retry"] is True
        assert manager.state is ConnectionState.CONNECTED
        assert manager.connected

    def test_failed_first_connect_keeps_retrying(self):
        manager, client = make_manager(fail_connect=True)

        async def run():
            opened = await manager.open("tok")
            state = manager.state
            banner = manager.show_reconnecting_banner
            await manager.close()
            return opened, state, banner

        opened, state, banner = asyncio.run(run())
        assert opened is False
        assert client.connect_calls[0]["retry"] is True
        assert state is ConnectionState.RECONNECTING
        assert banner

    def test_retry_after_failed_first_connect_can_succeed(self):
        manager, client = make_manager(fail_connect=True)

        async def run():
            await manager.open("tok")
            await client.fire("connect")
            connected = manager.connected
            await manager.close()
            return connected

        assert asyncio.run(run()) is True
        assert manager.state is ConnectionState.DISCONNECTED

    def test_exhausted_retries_end_disconnected(self):
        manager, client = make_manager(fail_connect=True)

        async def run():
            await manager.open("tok")
            client.retries_exhausted.set()
            for _ in range(3):
                await asyncio.sleep(0)
            return manager.state, manager.show_reconnecting_banner

        state, banner = asyncio.run(run())
        assert state is ConnectionState.DISCONNECTED
        # Still opened, so the banner stays up until close()
        assert banner

    def test_close_while_retrying_stops_the_attempt(self):
        manager, client = make_manager(fail_connect=True)

        async def run():
            await manager.open("tok")
            task = manager._connect_task
            await manager.close()
            return task

        task = asyncio.run(run())
        assert task.done()
        assert manager.state is ConnectionState.DISCONNECTED
        assert not manager.show_reconnecting_banner

    def test_unexpected_disconnect_means_reconnecting(self):
        manager, client = make_manager()

        async def run():
            await manager.open("tok")
            await client.fire("disconnect", "transport close")
            assert manager.state is ConnectionState.RECONNECTING
            assert manager.show_reconnecting_banner
            await client.fire("connect")

        asyncio.run(run())
        assert manager.state is ConnectionState.CONNECTED
        assert not manager.show_reconnecting_banner

    def test_close_is_final(self):
        manager, client = make_manager()

        async def run():
            await manager.open("tok")
            await manager.close()
            await manager.close()

        asyncio.run(run())
        assert manager.state is ConnectionState.DISCONNECTED
        assert client.disconnect_calls == 1
        assert not manager.show_reconnecting_banner

    def test_never_opened_shows_no_banner(self):
        manager, _ = make_manager()
        assert manager.state is ConnectionState.DISCONNECTED
        assert not manager.show_reconnecting_banner


class TestSubscriptions:
    def test_handlers_receive_payloads(self):
        manager, client = make_manager()
        received = []
        manager.subscribe("message_received", received.append)

        async def run():
            await manager.open("tok")
            await client.fire("message_received", {"id": "m1"})

        asyncio.run(run())
        assert received == [{"id": "m1"}]

    def test_async_handlers_are_awaited(self):
        manager, client = make_manager()
        seen = []

        async def handler(payload):
            await asyncio.sleep(0)
            seen.append(payload)

        manager.subscribe("user_typing", handler)
        asyncio.run(client.fire("user_typing", {"userId": "u2"}))
        assert seen == [{"userId": "u2"}]

    def test_unsubscribe(self):
        manager, client = make_manager()
        handler = MagicMock(return_value=None)
        unsubscribe = manager.subscribe("messages_read", handler)
        unsubscribe()
        unsubscribe()
        asyncio.run(client.fire("messages_read", {"caseId": "c1"}))
        handler.assert_not_called()

    def test_failing_handler_does_not_stop_others(self):
        manager, client = make_manager()
        second = MagicMock(return_value=None)
        manager.subscribe("message_received", MagicMock(side_effect=RuntimeError("bad")))
        manager.subscribe("message_received", second)
        asyncio.run(client.fire("message_received", {"id": "m1"}))
        second.assert_called_once_with({"id": "m1"})

    def test_nothing_fires_after_close(self):
        manager, client = make_manager()
        handler = MagicMock(return_value=None)
        manager.subscribe("message_received", handler)

        async def run():
            await manager.open("tok")
            await manager.close()
            await client.fire("message_received", {"id": "late"})

        asyncio.run(run())
        handler.assert_not_called()

    def test_unknown_event(self):
        manager, _ = make_manager()
        with pytest.raises(ValueError):
            manager.subscribe("presence", MagicMock())


class TestIntents:
    def test_emit_payloads(self):
        manager, client = make_manager()

        async def run():
            await manager.open("tok")
            await manager.join_case("c1")
            await manager.send_message("c1", "hello")
            await manager.send_typing("c1")
            await manager.mark_read("c1")
            await manager.leave_case("c1")

        asyncio.run(run())
        assert client.emitted == [
            ("join_case", "c1"),
            ("send_message", {"caseId": "c1", "content": "hello", "type": "TEXT"}),
            ("typing", {"caseId": "c1"}),
            ("mark_read", {"caseId": "c1"}),
            ("leave_case", "c1"),
        ]

    def test_intents_are_dropped_while_disconnected(self):
        manager, client = make_manager()

        async def run():
            return [
                await manager.join_case("c1"),
                await manager.send_message("c1", "hello"),
                await manager.send_typing("c1"),
            ]

        assert asyncio.run(run()) == [False, False, False]
        assert client.emitted == []
