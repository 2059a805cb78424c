"""Tests for the WebSocket command channel using pytest-aiohttp."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import web
from aiohttp.test_utils import unused_port

from pydlinkdsp.channel import ChannelState, CommandChannel
from pydlinkdsp.exceptions import DLinkConnectionError, DLinkTimeoutError
from pydlinkdsp.models import DeviceSession
from pydlinkdsp.token import derive_device_token


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from tests.conftest import FakePlug


@pytest.fixture
async def channel(device_session: DeviceSession) -> AsyncGenerator[CommandChannel]:
    """Create a channel that is closed after the test."""
    channel = CommandChannel(device_session)
    yield channel
    await channel.close()


class TestChannelOpen:
    """Test connection lifecycle."""

    async def test_open_success(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test opening moves the channel to READY and fires ready."""
        ready: list[bool] = []
        channel.add_listener("ready", lambda: ready.append(True))

        assert channel.state is ChannelState.IDLE
        assert await channel.open(plug_url) is True

        assert channel.state is ChannelState.READY
        assert channel.is_open
        assert ready == [True]
        await asyncio.wait_for(fake_plug.connected.wait(), timeout=2.0)

    async def test_open_refused(self, channel: CommandChannel) -> None:
        """Test a refused connection raises DLinkConnectionError."""
        with pytest.raises(DLinkConnectionError, match="Socket error"):
            await channel.open(f"http://127.0.0.1:{unused_port()}/SwitchCamera")

        assert channel.state is ChannelState.CLOSED

    async def test_open_rejected_handshake(
        self,
        channel: CommandChannel,
        aiohttp_server: Callable[..., Any],
    ) -> None:
        """Test a non-WebSocket answer raises DLinkConnectionError."""
        app = web.Application()
        server = await aiohttp_server(app)

        with pytest.raises(DLinkConnectionError, match="unexpected response 404"):
            await channel.open(str(server.make_url("/SwitchCamera")))

        assert channel.state is ChannelState.CLOSED

    async def test_open_twice_rejected(self, channel: CommandChannel, plug_url: str) -> None:
        """Test a channel cannot be opened a second time."""
        await channel.open(plug_url)

        with pytest.raises(DLinkConnectionError):
            await channel.open(plug_url)

    async def test_reopen_after_close_rejected(self, channel: CommandChannel, plug_url: str) -> None:
        """Test a closed channel stays closed."""
        await channel.open(plug_url)
        await channel.close()

        with pytest.raises(DLinkConnectionError):
            await channel.open(plug_url)


class TestRequestEnvelope:
    """Test request augmentation."""

    def test_envelope_before_sign_in(self, device_session: DeviceSession) -> None:
        """Test envelope fields without device credentials."""
        channel = CommandChannel(device_session)

        request = channel.build_request({"command": "sign_in"})

        assert request["command"] == "sign_in"
        assert request["sequence_id"] == 1001
        assert request["local_cid"] == 41556
        assert request["client_id"] == ""
        assert isinstance(request["timestamp"], int)
        assert "device_id" not in request
        assert "device_token" not in request

    def test_envelope_after_sign_in(self, device_session: DeviceSession) -> None:
        """Test device id and token are added once known."""
        device_session.salt = "salt"
        device_session.device_id = "B0C5540A1B2C"
        channel = CommandChannel(device_session)

        request = channel.build_request({"command": "get_setting"})

        assert request["device_id"] == "B0C5540A1B2C"
        assert request["device_token"] == derive_device_token("123456", "salt", "B0C5540A1B2C")

    def test_payload_not_modified(self, device_session: DeviceSession) -> None:
        """Test the caller's payload is left untouched."""
        payload = {"command": "get_setting"}
        CommandChannel(device_session).build_request(payload)
        assert payload == {"command": "get_setting"}

    def test_sequence_ids_increase(self, device_session: DeviceSession) -> None:
        """Test every request gets a new, larger sequence id."""
        channel = CommandChannel(device_session)
        ids = [channel.build_request({"command": "x"})["sequence_id"] for _ in range(3)]
        assert ids == [1001, 1002, 1003]


class TestRequests:
    """Test sending and correlation."""

    async def test_send_request_returns_sequence_id(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
    ) -> None:
        """Test fire-and-forget send returns the assigned sequence id."""
        fake_plug.replies["noop"] = lambda request: None
        await channel.open(plug_url)

        sequence_id = await channel.send_request({"command": "noop"})

        await fake_plug.wait_for_requests(1)
        assert fake_plug.received[0]["sequence_id"] == sequence_id
        assert channel.pending_count == 0

    async def test_send_request_await(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test the reply with the matching sequence id is returned."""
        await channel.open(plug_url)

        reply = await channel.send_request_await({"command": "sign_in"})

        assert reply["salt"] == "7d1ba2b4b0"
        assert reply["sequence_id"] == fake_plug.received[0]["sequence_id"]
        assert channel.pending_count == 0

    async def test_out_of_order_replies(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test a later request's reply resolves only that request."""
        fake_plug.replies["get_setting"] = lambda request: None
        await channel.open(plug_url)

        first = asyncio.create_task(channel.send_request_await({"command": "get_setting"}))
        second = asyncio.create_task(channel.send_request_await({"command": "get_setting"}))
        await fake_plug.wait_for_requests(2)
        first_id, second_id = (request["sequence_id"] for request in fake_plug.received)
        assert first_id < second_id

        await fake_plug.send({"sequence_id": second_id, "code": 0, "which": "second"})
        assert (await asyncio.wait_for(second, timeout=2.0))["which"] == "second"
        assert not first.done()

        await fake_plug.send({"sequence_id": first_id, "code": 0, "which": "first"})
        assert (await asyncio.wait_for(first, timeout=2.0))["which"] == "first"

    async def test_unmatched_messages_ignored(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
    ) -> None:
        """Test foreign sequence ids and invalid JSON do not resolve a request."""
        fake_plug.replies["get_setting"] = lambda request: None
        await channel.open(plug_url)

        task = asyncio.create_task(channel.send_request_await({"command": "get_setting"}))
        await fake_plug.wait_for_requests(1)
        sequence_id = fake_plug.received[0]["sequence_id"]

        await fake_plug.send({"sequence_id": sequence_id + 100, "code": 0})
        assert fake_plug.ws is not None
        await fake_plug.ws.send_str("not json")
        await asyncio.sleep(0.05)
        assert not task.done()

        await fake_plug.send({"sequence_id": sequence_id, "code": 0})
        assert (await asyncio.wait_for(task, timeout=2.0))["code"] == 0

    async def test_send_when_not_open(self, channel: CommandChannel) -> None:
        """Test sending on an unopened channel fails."""
        with pytest.raises(DLinkConnectionError, match="not open"):
            await channel.send_request_await({"command": "sign_in"})

        assert channel.pending_count == 0

    async def test_timeout_wrapper(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test a bounded wait raises DLinkTimeoutError and forgets the request."""
        fake_plug.replies["get_setting"] = lambda request: None
        await channel.open(plug_url)

        with pytest.raises(DLinkTimeoutError):
            await channel.send_request_await({"command": "get_setting"}, timeout=0.05)

        assert channel.pending_count == 0
        assert channel.is_open


class TestClose:
    """Test closing and close notification."""

    async def test_client_close_rejects_pending(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
    ) -> None:
        """Test closing fails outstanding requests and fires close."""
        closes: list[tuple[int | None, str]] = []
        channel.add_listener("close", lambda code, reason: closes.append((code, reason)))
        fake_plug.replies["get_setting"] = lambda request: None
        await channel.open(plug_url)

        task = asyncio.create_task(channel.send_request_await({"command": "get_setting"}))
        await fake_plug.wait_for_requests(1)
        await channel.close()

        with pytest.raises(DLinkConnectionError, match="Socket closed"):
            await task
        assert channel.state is ChannelState.CLOSED
        assert closes == [(1000, "Closed by client")]
        assert channel.pending_count == 0

    async def test_close_is_idempotent(self, channel: CommandChannel, plug_url: str) -> None:
        """Test closing twice fires close only once."""
        closes: list[int | None] = []
        channel.add_listener("close", lambda code, reason: closes.append(code))
        await channel.open(plug_url)

        await channel.close()
        await channel.close()

        assert len(closes) == 1

    async def test_close_unopened_channel(self, channel: CommandChannel) -> None:
        """Test closing a channel that never opened does nothing."""
        closes: list[int | None] = []
        channel.add_listener("close", lambda code, reason: closes.append(code))

        await channel.close()

        assert channel.state is ChannelState.CLOSED
        assert closes == []

    async def test_server_close_rejects_pending(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
    ) -> None:
        """Test a close from the plug fails outstanding requests with its code."""
        closed = asyncio.Event()
        channel.add_listener("close", lambda code, reason: closed.set())
        fake_plug.replies["get_setting"] = lambda request: None
        await channel.open(plug_url)

        task = asyncio.create_task(channel.send_request_await({"command": "get_setting"}))
        await fake_plug.wait_for_requests(1)
        assert fake_plug.ws is not None
        await fake_plug.ws.close(code=4000, message=b"bye")

        with pytest.raises(DLinkConnectionError) as exc_info:
            await asyncio.wait_for(task, timeout=2.0)
        assert exc_info.value.code == 4000
        assert exc_info.value.reason == "bye"
        await asyncio.wait_for(closed.wait(), timeout=2.0)
        assert channel.state is ChannelState.CLOSED


class TestEvents:
    """Test pushed device events."""

    @pytest.mark.parametrize(
        ("setting_type", "event"),
        [(16, "switched"), (41, "switched-led")],
    )
    async def test_pushed_event(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
        setting_type: int,
        event: str,
    ) -> None:
        """Test pushed socket and LED events are surfaced."""
        received: asyncio.Queue[tuple[bool, int]] = asyncio.Queue()
        channel.add_listener(event, lambda on, index: received.put_nowait((on, index)))
        await channel.open(plug_url)
        await asyncio.wait_for(fake_plug.connected.wait(), timeout=2.0)

        await fake_plug.send({"command": "event", "event": {"metadata": {"type": setting_type, "idx": 2, "value": 1}}})

        assert await asyncio.wait_for(received.get(), timeout=2.0) == (True, 2)

    async def test_raw_messages_surfaced(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test every text frame reaches message listeners."""
        received: asyncio.Queue[str] = asyncio.Queue()
        channel.add_listener("message", received.put_nowait)
        await channel.open(plug_url)
        await asyncio.wait_for(fake_plug.connected.wait(), timeout=2.0)

        await fake_plug.send({"command": "event"})

        assert json.loads(await asyncio.wait_for(received.get(), timeout=2.0)) == {"command": "event"}

    async def test_failing_listener_does_not_break_others(
        self,
        channel: CommandChannel,
        plug_url: str,
        fake_plug: FakePlug,
    ) -> None:
        """Test an exception in one listener is contained."""
        received: asyncio.Queue[tuple[bool, int]] = asyncio.Queue()

        def broken(on: bool, index: int) -> None:
            raise RuntimeError("boom")

        channel.add_listener("switched", broken)
        channel.add_listener("switched", lambda on, index: received.put_nowait((on, index)))
        await channel.open(plug_url)
        await asyncio.wait_for(fake_plug.connected.wait(), timeout=2.0)

        await fake_plug.send({"command": "event", "event": {"metadata": {"type": 16, "idx": 0, "value": 0}}})

        assert await asyncio.wait_for(received.get(), timeout=2.0) == (False, 0)

    def test_remove_listener(self, device_session: DeviceSession) -> None:
        """Test removed listeners are not called."""
        channel = CommandChannel(device_session)
        calls: list[bool] = []

        def listener() -> None:
            calls.append(True)

        channel.add_listener("ready", listener)
        channel.remove_listener("ready", listener)
        channel._emit("ready")

        assert calls == []


class TestKeepAlive:
    """Test keepalive pings."""

    async def test_pings_sent(self, plug_url: str, fake_plug: FakePlug) -> None:
        """Test pings carry the keepalive payload at the configured interval."""
        channel = CommandChannel(DeviceSession(ip="127.0.0.1", keep_alive=0.05))
        await channel.open(plug_url)

        await asyncio.sleep(0.3)
        await channel.close()

        assert len(fake_plug.pings) >= 2
        assert json.loads(fake_plug.pings[0]) == {"command": "keep_alive"}

    async def test_keep_alive_disabled(self, channel: CommandChannel, plug_url: str, fake_plug: FakePlug) -> None:
        """Test no pings are sent with an interval of 0."""
        await channel.open(plug_url)

        await asyncio.sleep(0.2)

        assert fake_plug.pings == []
        assert channel._keep_alive_task is None

    async def test_no_pings_after_close(self, plug_url: str, fake_plug: FakePlug) -> None:
        """Test pings stop once the channel closed."""
        channel = CommandChannel(DeviceSession(ip="127.0.0.1", keep_alive=0.05))
        await channel.open(plug_url)
        await asyncio.sleep(0.12)
        await channel.close()
        count = len(fake_plug.pings)

        await asyncio.sleep(0.2)

        assert len(fake_plug.pings) == count

    async def test_ping_when_not_open(self, device_session: DeviceSession) -> None:
        """Test ping on a closed channel is a no-op."""
        channel = CommandChannel(device_session)
        await channel.ping()
        assert channel.state is ChannelState.IDLE
