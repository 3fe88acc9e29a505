"""Tests for the connection lifecycle: connect, retry, drop, reconnect."""

from __future__ import annotations

import asyncio

import pytest

from parrot.errors import ChatConnectionError
from parrot.events import ConnectionState, Unavailable
from tests.mocks import FakeChatClient, connected_bridge, make_bridge


async def _wait_reconnect(bridge) -> None:
    task = bridge._reconnect_task
    assert task is not None
    await asyncio.wait_for(task, timeout=2)


class TestConnect:
    @pytest.mark.asyncio
    async def test_success_reaches_connected_and_joins_default_channel(self):
        bridge, client = make_bridge(default_channel="lobby")

        await bridge.connect()

        assert bridge.state is ConnectionState.CONNECTED
        assert client.joins == ["#lobby"]

    @pytest.mark.asyncio
    async def test_failure_raises_and_leaves_disconnected(self):
        bridge, client = make_bridge(FakeChatClient(fail_connects=1))

        with pytest.raises(ChatConnectionError):
            await bridge.connect()

        assert bridge.state is ConnectionState.DISCONNECTED
        assert client.joins == []

    @pytest.mark.asyncio
    async def test_connect_uses_configured_endpoint(self):
        bridge, client = make_bridge(irc_address="irc.example.net:7000", ssl=True)
        seen = {}

        async def record(hostname, port, tls=False, tls_verify=False):
            seen.update(hostname=hostname, port=port, tls=tls)

        client.connect = record
        await bridge.connect()

        assert seen == {"hostname": "irc.example.net", "port": 7000, "tls": True}
        # No connected event yet: still registering
        assert bridge.state is ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_identifies_with_nickserv_when_password_set(self):
        bridge, client = make_bridge(nick_password="hunter2")

        await bridge.connect()

        assert ("send", "NickServ", "IDENTIFY hunter2") in client.calls
        assert client.calls.index(("join", "#parrot")) < client.calls.index(
            ("send", "NickServ", "IDENTIFY hunter2")
        )

    @pytest.mark.asyncio
    async def test_no_identify_without_password(self):
        bridge, client = make_bridge()

        await bridge.connect()

        assert all(call[1] != "NickServ" for call in client.calls)


class TestConnectWithRetry:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        bridge, client = make_bridge(FakeChatClient(fail_connects=4))

        await asyncio.wait_for(bridge.connect_with_retry(), timeout=2)

        assert client.connect_attempts == 5
        assert bridge.state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_waits_fixed_delay_between_attempts(self):
        bridge, client = make_bridge(FakeChatClient(fail_connects=3), retry_delay=0.05)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await asyncio.wait_for(bridge.connect_with_retry(), timeout=2)
        elapsed = loop.time() - started

        assert client.connect_attempts == 4
        assert elapsed >= 0.14

    @pytest.mark.asyncio
    async def test_first_attempt_success_makes_one_attempt(self):
        bridge, client = make_bridge()

        await bridge.connect_with_retry()

        assert client.connect_attempts == 1


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_drop_marks_disconnected_and_submit_backs_off(self):
        bridge, client = await connected_bridge()
        client.fail_connects = 1000

        await client.drop()

        assert bridge.state in (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING)
        assert isinstance(bridge.submit("news", b"hi"), Unavailable)
        assert bridge.queue.empty()
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_disconnect_handler_returns_before_reconnect(self):
        bridge, client = await connected_bridge()
        client.fail_connects = 1000

        await asyncio.wait_for(client.drop(), timeout=0.5)

        assert bridge._reconnect_task is not None
        assert not bridge._reconnect_task.done()
        await bridge.stop()
        assert client.connect_attempts >= 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 1, 5])
    async def test_reconnect_joins_default_channel_exactly_once(self, failures):
        bridge, client = await connected_bridge()
        client.fail_connects = failures

        await client.drop()
        await _wait_reconnect(bridge)

        assert client.connect_attempts == 1 + failures + 1
        assert client.joins == ["#parrot"]
        assert bridge.state is ConnectionState.CONNECTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 3])
    async def test_drop_attempts_default_join_before_reconnect_join(self, failures):
        bridge, client = await connected_bridge()
        client.fail_connects = failures

        await client.drop()
        assert client.join_attempts == [("#parrot", False)]
        await _wait_reconnect(bridge)

        assert client.join_attempts == [("#parrot", False), ("#parrot", True)]
        assert client.joins == ["#parrot"]

    @pytest.mark.asyncio
    async def test_stop_makes_no_default_join_attempt(self):
        bridge, client = await connected_bridge()

        await bridge.stop()

        assert client.join_attempts == []
        assert bridge._reconnect_task is None
        assert bridge.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_second_drop_during_retry_does_not_start_another_loop(self):
        bridge, client = await connected_bridge()
        client.fail_connects = 1000

        await client.drop()
        first = bridge._reconnect_task
        await bridge.on_disconnected(False)

        assert bridge._reconnect_task is first
        await bridge.stop()

    @pytest.mark.asyncio
    async def test_delivery_resumes_after_reconnect(self):
        bridge, client = await connected_bridge()
        await bridge.start()
        client.fail_connects = 2

        await client.drop()
        await _wait_reconnect(bridge)
        bridge.submit("news", b"back")
        await asyncio.wait_for(bridge.queue.join(), timeout=2)
        await bridge.stop()

        assert client.sent == [("#news", "back")]

    @pytest.mark.asyncio
    async def test_notice_is_logged_only(self):
        bridge, client = await connected_bridge()

        await bridge.on_notice("NickServ", "This nickname is registered")

        assert client.calls == []
