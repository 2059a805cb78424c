"""Sign-in handling for D-Link smart plugs."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydlinkdsp.channel import EVENT_CLOSE, CommandChannel
from pydlinkdsp.const import COMMAND_SIGN_IN, LOCAL_CID, SIGN_IN_SCOPE, TELNET_PORT, WEBSOCKET_PATH
from pydlinkdsp.exceptions import HandshakeError
from pydlinkdsp.telnet import get_token_from_telnet


if TYPE_CHECKING:
    from collections.abc import Callable

    from aiohttp import ClientSession

    from pydlinkdsp.models import DeviceSession

_LOGGER = logging.getLogger(__name__)


class AuthSession:
    """Connect to a plug and run the sign-in handshake.

    The plug answers ``sign_in`` with a salt and its device id. Every later
    request carries the device id and a token derived from PIN and salt.

    When the PIN printed on the plug is no longer valid (the plug was paired
    with the app), ``use_telnet_for_token`` reads the current device token over
    telnet right before signing in.

    Example:
        ```python
        device = DeviceSession(ip="192.168.0.20", pin="123456")
        auth = AuthSession(device)
        await auth.login()
        reply = await auth.channel.send_request_await({"command": "get_setting", "setting": [{"type": 16}]})
        ```

    Attributes:
        channel: Current CommandChannel (None before the first connect).
        url: WebSocket URL of the plug.
    """

    def __init__(
        self,
        device: DeviceSession,
        *,
        session: ClientSession | None = None,
        url: str | None = None,
        use_telnet_for_token: bool = False,
        telnet_port: int = TELNET_PORT,
    ) -> None:
        """Initialize the auth session.

        Args:
            device: Session record to fill in.
            session: Optional aiohttp ClientSession shared with the channel.
            url: WebSocket URL. Defaults to ``wss://<ip>:<port>/SwitchCamera``.
            use_telnet_for_token: Read the device token over telnet before signing in.
            telnet_port: Telnet port used for the token.
        """
        self._device = device
        self._session = session
        self._use_telnet_for_token = use_telnet_for_token
        self._telnet_port = telnet_port
        self._login_lock = asyncio.Lock()
        self._listeners: list[tuple[str, Callable[..., None]]] = []
        self.url = url or f"wss://{device.ip}:{device.port}{WEBSOCKET_PATH}"
        self.channel: CommandChannel | None = None

    def is_signed_in(self) -> bool:
        """Check if the handshake completed and the channel is still open."""
        return self._device.connected and self.channel is not None and self.channel.is_open

    def add_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Register a channel event callback that survives reconnects.

        Args:
            event: Channel event name.
            callback: Callable receiving the event arguments.
        """
        if (event, callback) not in self._listeners:
            self._listeners.append((event, callback))
        if self.channel is not None:
            self.channel.add_listener(event, callback)

    def remove_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Unregister a callback previously added with add_listener()."""
        if (event, callback) in self._listeners:
            self._listeners.remove((event, callback))
        if self.channel is not None:
            self.channel.remove_listener(event, callback)

    def _on_close(self, code: int | None, reason: str) -> None:
        _LOGGER.debug("Dropping handshake state after close: %s (%s)", reason, code)
        self._device.clear_handshake()

    async def connect(self) -> bool:
        """Open a new channel to the plug.

        Returns:
            True once the socket is open.

        Raises:
            DLinkConnectionError: If connecting fails.
        """
        if self.channel is not None:
            await self.channel.close()

        channel = CommandChannel(self._device, session=self._session)
        channel.add_listener(EVENT_CLOSE, self._on_close)
        for event, callback in self._listeners:
            channel.add_listener(event, callback)
        self.channel = channel
        return await channel.open(self.url)

    async def login(self) -> bool:
        """Connect if needed and sign in.

        Only one sign-in runs at a time.

        Returns:
            True if the handshake completed.

        Raises:
            DLinkConnectionError: If connecting fails or the socket closes mid-handshake.
            ExtractionError: If the telnet token could not be read.
            HandshakeError: If the sign-in reply lacks salt or device id.
        """
        async with self._login_lock:
            if self.channel is None or not self.channel.is_open:
                _LOGGER.debug("Need to connect. Doing that now.")
                await self.connect()
            assert self.channel is not None

            if self._use_telnet_for_token:
                token = await get_token_from_telnet(self._device.ip, port=self._telnet_port)
                self.set_pin(token)

            _LOGGER.debug("Connected. Signing in.")
            message = await self.channel.send_request_await(
                {"command": COMMAND_SIGN_IN, "scope": list(SIGN_IN_SCOPE)},
            )
            self._apply_sign_in(message)
            _LOGGER.info("Signed in to %s (device %s)", self._device.ip, self._device.short_id)
            return True

    def _apply_sign_in(self, message: dict[str, Any]) -> None:
        salt = message.get("salt")
        device_id = message.get("device_id")
        if not isinstance(salt, str) or not salt or not isinstance(device_id, str) or not device_id:
            msg = f"Unexpected sign-in reply: {message}"
            raise HandshakeError(msg, response=message)

        local_cid = message.get("local_cid")
        self._device.salt = salt
        self._device.device_id = device_id
        self._device.local_cid = local_cid if isinstance(local_cid, int) else LOCAL_CID
        self._device.short_id = device_id[-4:]
        self._device.invalidate_token()
        self._device.connected = True

    def set_pin(self, pin: str) -> None:
        """Replace the PIN or token used for the device token.

        An open socket and a sign-in already underway are not affected.

        Args:
            pin: New PIN or device token.
        """
        self._device.set_pin(pin)

    async def close(self) -> None:
        """Close the channel and forget the handshake state."""
        if self.channel is not None:
            await self.channel.close()
        self._device.clear_handshake()
