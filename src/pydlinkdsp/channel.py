"""WebSocket command channel for D-Link smart plugs.

This module owns the secure WebSocket to the plug. It augments outgoing
commands with the request envelope, correlates replies to requests by
``sequence_id`` and keeps the connection alive with periodic pings.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING, Any

from aiohttp import (
    ClientError,
    ClientSession,
    ClientWebSocketResponse,
    WSCloseCode,
    WSMsgType,
    WSServerHandshakeError,
)

from pydlinkdsp.const import (
    CLOSE_GRACE_PERIOD,
    COMMAND_EVENT,
    COMMAND_KEEP_ALIVE,
    CONNECT_TIMEOUT,
    LOCAL_CID,
    TYPE_LED,
    TYPE_SOCKET,
)
from pydlinkdsp.exceptions import DLinkConnectionError, DLinkTimeoutError


if TYPE_CHECKING:
    from collections.abc import Callable

    from pydlinkdsp.models import DeviceSession

_LOGGER = logging.getLogger(__name__)

EVENT_READY = "ready"
EVENT_CLOSE = "close"
EVENT_ERROR = "error"
EVENT_MESSAGE = "message"
EVENT_SWITCHED = "switched"
EVENT_SWITCHED_LED = "switched-led"


class ChannelState(Enum):
    """Lifecycle of one connection attempt."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


class CommandChannel:
    """JSON request/response channel over the plug's WebSocket.

    A channel connects once. After it closed, create a new one to reconnect.

    Replies are matched to requests by ``sequence_id`` only, so replies may
    arrive in any order. Every request still waiting when the channel closes
    fails with DLinkConnectionError.

    Example:
        ```python
        channel = CommandChannel(DeviceSession(ip="192.168.0.20", pin="123456"))
        await channel.open("wss://192.168.0.20:8080/SwitchCamera")
        reply = await channel.send_request_await({"command": "sign_in"})
        await channel.close()
        ```

    Attributes:
        state: Current ChannelState.
    """

    def __init__(self, device: DeviceSession, *, session: ClientSession | None = None) -> None:
        """Initialize the channel.

        Args:
            device: Session record providing sequence ids and credentials.
            session: Optional aiohttp ClientSession. If not provided, one is
                created on open() and closed on close().
        """
        self._device = device
        self._session = session
        self._owns_session = session is None
        self._ws: ClientWebSocketResponse | None = None
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._listeners: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self._reader_task: asyncio.Task[None] | None = None
        self._keep_alive_task: asyncio.Task[None] | None = None
        self.state = ChannelState.IDLE

    @property
    def is_open(self) -> bool:
        """Check if the WebSocket is open."""
        return self.state is ChannelState.READY and self._ws is not None and not self._ws.closed

    @property
    def pending_count(self) -> int:
        """Get number of requests waiting for a reply."""
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Register a callback for a channel event.

        Events: ``ready``, ``close(code, reason)``, ``error(exc)``,
        ``message(text)``, ``switched(on, index)``, ``switched-led(on, index)``.

        Args:
            event: Event name.
            callback: Callable receiving the event arguments.
        """
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Unregister a callback previously added with add_listener()."""
        if callback in self._listeners[event]:
            self._listeners[event].remove(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception:
                _LOGGER.exception("Error in %s listener", event)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def open(self, url: str, *, ssl: bool = False, timeout: float = CONNECT_TIMEOUT) -> bool:
        """Connect the WebSocket.

        Certificate validation is off by default since plugs use self-signed
        certificates.

        Args:
            url: WebSocket URL, e.g. ``wss://<ip>:8080/SwitchCamera``.
            ssl: Whether to validate the server certificate.
            timeout: Seconds to wait for the connection.

        Returns:
            True once the socket is open.

        Raises:
            DLinkConnectionError: If the channel was used before, or connecting
                fails, times out or is rejected.
        """
        if self.state is not ChannelState.IDLE:
            msg = f"Channel cannot be opened in state {self.state.value}"
            raise DLinkConnectionError(msg)

        self.state = ChannelState.CONNECTING
        if self._session is None:
            self._session = ClientSession()
            self._owns_session = True

        _LOGGER.debug("Connecting to %s", url)
        try:
            async with asyncio.timeout(timeout):
                self._ws = await self._session.ws_connect(url, ssl=ssl, heartbeat=None)
        except WSServerHandshakeError as exc:
            _LOGGER.debug("Unexpected response: %s %s", exc.status, exc.message)
            await self._abort_open()
            msg = f"Socket error: unexpected response {exc.status}"
            raise DLinkConnectionError(msg) from exc
        except TimeoutError as exc:
            await self._abort_open()
            msg = f"Socket error: connecting to {url} timed out"
            raise DLinkConnectionError(msg) from exc
        except (ClientError, OSError) as exc:
            await self._abort_open()
            msg = f"Socket error: {exc}"
            raise DLinkConnectionError(msg) from exc

        self.state = ChannelState.READY
        _LOGGER.info("Socket open to %s", url)
        self._reader_task = asyncio.create_task(self._read_loop(self._ws))
        if self._device.keep_alive > 0:
            self._keep_alive_task = asyncio.create_task(self._keep_alive_loop())
        self._emit(EVENT_READY)
        return True

    async def _abort_open(self) -> None:
        self.state = ChannelState.CLOSED
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def close(self) -> None:
        """Close the WebSocket.

        Stops the keepalive, asks the plug to close and forces the connection
        down if that has not finished after a short grace period. Requests still
        waiting for a reply fail with DLinkConnectionError. Safe to call twice.
        """
        await self._stop_keep_alive()
        if self.state is ChannelState.IDLE:
            self.state = ChannelState.CLOSED
        elif self.state is not ChannelState.CLOSED:
            self._finalize(int(WSCloseCode.OK), "Closed by client", None)

        ws = self._ws
        if ws is not None and not ws.closed:
            try:
                async with asyncio.timeout(CLOSE_GRACE_PERIOD):
                    await ws.close()
            except TimeoutError:
                _LOGGER.debug("Socket did not close within %.1fs, terminating", CLOSE_GRACE_PERIOD)
            except (ClientError, OSError) as exc:
                _LOGGER.debug("Error while closing socket: %s", exc)
        await self._terminate()

    async def _terminate(self) -> None:
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._reader_task = None
        if self._owns_session and self._session is not None:
            try:
                await self._session.close()
            except (ClientError, OSError, RuntimeError) as exc:
                _LOGGER.debug("Error while terminating socket: %s", exc)
            self._session = None

    async def _stop_keep_alive(self) -> None:
        task = self._keep_alive_task
        self._keep_alive_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _finalize(self, code: int | None, reason: str, error: BaseException | None) -> None:
        """Move to CLOSED, fail waiting requests and notify listeners."""
        if self.state is ChannelState.CLOSED:
            return
        self.state = ChannelState.CLOSED
        if self._keep_alive_task is not None:
            self._keep_alive_task.cancel()
            self._keep_alive_task = None

        if error is not None:
            exc = DLinkConnectionError(f"Socket error: {error}", code=code, reason=reason)
        else:
            exc = DLinkConnectionError(f"Socket closed: {reason} ({code})", code=code, reason=reason)
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

        _LOGGER.info("Socket closed: %s (%s)", reason, code)
        if error is not None:
            self._emit(EVENT_ERROR, error)
        self._emit(EVENT_CLOSE, code, reason)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    async def _read_loop(self, ws: ClientWebSocketResponse) -> None:
        """Consume frames until the socket closes."""
        code: int | None = None
        reason = ""
        error: BaseException | None = None
        try:
            while True:
                msg = await ws.receive()
                if msg.type is WSMsgType.TEXT:
                    self._receive_data(msg.data)
                elif msg.type is WSMsgType.BINARY:
                    self._receive_data(msg.data.decode("utf-8", errors="replace"))
                elif msg.type is WSMsgType.CLOSE:
                    code, reason = msg.data, msg.extra or ""
                    break
                elif msg.type is WSMsgType.ERROR:
                    error = msg.data
                    break
                elif msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
        except (ClientError, OSError) as exc:
            error = exc

        if code is None:
            code = ws.close_code
        self._finalize(code, reason, error)

    def _receive_data(self, text: str) -> None:
        self._emit(EVENT_MESSAGE, text)
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            _LOGGER.warning("Dropping invalid JSON message: %s", text)
            return
        if not isinstance(message, dict):
            _LOGGER.warning("Dropping unexpected message: %s", text)
            return

        _LOGGER.debug("Got message: %s", message)
        if message.get("command") == COMMAND_EVENT:
            self._handle_event(message)

        sequence_id = message.get("sequence_id")
        future = self._pending.pop(sequence_id, None) if isinstance(sequence_id, int) else None
        if future is None:
            _LOGGER.debug("Unexpected message with sequence_id: %s", sequence_id)
        elif not future.done():
            future.set_result(message)

    def _handle_event(self, message: dict[str, Any]) -> None:
        metadata = (message.get("event") or {}).get("metadata")
        if not isinstance(metadata, dict):
            return
        value = metadata.get("value") == 1
        index = metadata.get("idx", 0)
        if metadata.get("type") == TYPE_SOCKET:
            _LOGGER.debug("Socket %s now %s", index, metadata.get("value"))
            self._emit(EVENT_SWITCHED, value, index)
        elif metadata.get("type") == TYPE_LED:
            _LOGGER.debug("LED %s now %s", index, metadata.get("value"))
            self._emit(EVENT_SWITCHED_LED, value, index)

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def build_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Add the envelope fields the plug expects to a command.

        Args:
            payload: Command body, must carry ``command``.

        Returns:
            A new dict with sequence id, timestamp, client fields and, once
            signed in, device id and device token.
        """
        request = dict(payload)
        request["sequence_id"] = self._device.next_sequence()
        request["local_cid"] = self._device.local_cid or LOCAL_CID
        request["timestamp"] = int(time.time())
        request["client_id"] = ""
        if self._device.device_id:
            request["device_id"] = self._device.device_id
            request["device_token"] = self._device.device_token
        return request

    async def _send_json(self, request: dict[str, Any]) -> None:
        if not self.is_open:
            msg = "Socket is not open"
            raise DLinkConnectionError(msg)
        assert self._ws is not None
        text = json.dumps(request)
        try:
            await self._ws.send_str(text)
        except (ClientError, OSError) as exc:
            msg = f"Failed to send: {exc}"
            raise DLinkConnectionError(msg) from exc
        _LOGGER.debug("%s written.", text)

    async def send_request(self, payload: dict[str, Any]) -> int:
        """Send a command without waiting for its reply.

        Args:
            payload: Command body.

        Returns:
            The sequence id assigned to the request.

        Raises:
            DLinkConnectionError: If the socket is not open or sending fails.
        """
        request = self.build_request(payload)
        await self._send_json(request)
        return request["sequence_id"]

    async def send_request_await(self, payload: dict[str, Any], *, timeout: float | None = None) -> dict[str, Any]:
        """Send a command and wait for the reply carrying its sequence id.

        Without a timeout this waits until the reply arrives or the channel closes.

        Args:
            payload: Command body.
            timeout: Optional seconds to wait for the reply.

        Returns:
            The parsed reply.

        Raises:
            DLinkConnectionError: If the socket is not open, or closes or fails
                before the reply arrives.
            DLinkTimeoutError: If ``timeout`` expires first.
        """
        request = self.build_request(payload)
        sequence_id = request["sequence_id"]
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[sequence_id] = future
        try:
            await self._send_json(request)
            if timeout is None:
                return await future
            try:
                async with asyncio.timeout(timeout):
                    return await future
            except TimeoutError as exc:
                msg = f"No reply to request {sequence_id} within {timeout}s"
                raise DLinkTimeoutError(msg) from exc
        finally:
            self._pending.pop(sequence_id, None)

    # -------------------------------------------------------------------------
    # Keepalive
    # -------------------------------------------------------------------------

    async def ping(self) -> None:
        """Send a keepalive ping if the socket is open."""
        if not self.is_open:
            return
        assert self._ws is not None
        try:
            await self._ws.ping(json.dumps({"command": COMMAND_KEEP_ALIVE}).encode())
        except (ClientError, OSError) as exc:
            _LOGGER.debug("Keepalive ping failed: %s", exc)

    async def _keep_alive_loop(self) -> None:
        """Ping every ``keep_alive`` seconds until cancelled."""
        try:
            while True:
                await asyncio.sleep(self._device.keep_alive)
                await self.ping()
        except asyncio.CancelledError:
            _LOGGER.debug("Keepalive loop cancelled")
            raise
