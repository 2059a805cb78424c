"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import WSMsgType, web

from pydlinkdsp.models import DeviceSession


if TYPE_CHECKING:
    from collections.abc import Callable

    from aiohttp.test_utils import TestServer


SALT = "7d1ba2b4b0"
DEVICE_ID = "B0C5540A1B2C"


class FakePlug:
    """In-process stand-in for the plug's WebSocket endpoint.

    Replies to ``sign_in``, ``get_setting`` and ``set_setting`` like a DSP-W245.
    A reply handler returning None sends nothing, so tests can answer by hand.

    Attributes:
        received: Parsed requests in arrival order.
        pings: Payloads of received ping frames.
        socket_values: Values reported by get_setting.
        replies: Reply handlers per command.
    """

    def __init__(self) -> None:
        self.received: list[dict[str, Any]] = []
        self.pings: list[bytes] = []
        self.socket_values: list[int] = [0]
        self.replies: dict[str, Callable[[dict[str, Any]], dict[str, Any] | None]] = {
            "sign_in": self._sign_in,
            "get_setting": self._get_setting,
            "set_setting": self._set_setting,
        }
        self.ws: web.WebSocketResponse | None = None
        self.connected = asyncio.Event()

    def _sign_in(self, request: dict[str, Any]) -> dict[str, Any]:
        return {"command": "sign_in", "code": 0, "salt": SALT, "device_id": DEVICE_ID, "local_cid": 41556}

    def _get_setting(self, request: dict[str, Any]) -> dict[str, Any]:
        return {
            "command": "get_setting",
            "code": 0,
            "setting": [
                {"uid": 0, "type": 16, "idx": idx, "metadata": {"value": value}}
                for idx, value in enumerate(self.socket_values)
            ],
        }

    def _set_setting(self, request: dict[str, Any]) -> dict[str, Any]:
        return {"command": "set_setting", "code": 0, "setting": request["setting"]}

    async def handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(autoping=False)
        await ws.prepare(request)
        self.ws = ws
        self.connected.set()

        async for msg in ws:
            if msg.type is WSMsgType.PING:
                self.pings.append(msg.data)
                await ws.pong(msg.data)
            elif msg.type is WSMsgType.TEXT:
                data = json.loads(msg.data)
                self.received.append(data)
                handler = self.replies.get(data.get("command"))
                reply = handler(data) if handler is not None else None
                if reply is not None:
                    reply.setdefault("sequence_id", data["sequence_id"])
                    await ws.send_json(reply)
        return ws

    async def shutdown(self, app: web.Application) -> None:
        """Close the open socket so the test server can stop."""
        if self.ws is not None and not self.ws.closed:
            await self.ws.close()

    async def send(self, message: dict[str, Any]) -> None:
        """Push a message to the client."""
        assert self.ws is not None
        await self.ws.send_json(message)

    async def wait_for_requests(self, count: int, timeout: float = 2.0) -> None:
        """Wait until ``count`` requests have arrived."""
        async with asyncio.timeout(timeout):
            while len(self.received) < count:
                await asyncio.sleep(0.01)

    def commands(self) -> list[str]:
        """Commands received so far."""
        return [request.get("command") for request in self.received]


@pytest.fixture
def fake_plug() -> FakePlug:
    """Create a fake plug endpoint."""
    return FakePlug()


@pytest.fixture
async def plug_server(aiohttp_server: Callable[..., Any], fake_plug: FakePlug) -> TestServer:
    """Serve the fake plug on /SwitchCamera."""
    app = web.Application()
    app.router.add_get("/SwitchCamera", fake_plug.handler)
    app.on_shutdown.append(fake_plug.shutdown)
    return await aiohttp_server(app)


@pytest.fixture
def plug_url(plug_server: TestServer) -> str:
    """URL of the fake plug endpoint."""
    return str(plug_server.make_url("/SwitchCamera"))


@pytest.fixture
def device_session() -> DeviceSession:
    """Create a session record without keepalive."""
    return DeviceSession(ip="127.0.0.1", pin="123456", keep_alive=0)
