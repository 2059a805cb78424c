"""High-level client for D-Link DSP-W115 / DSP-W245 smart plugs.

This module ties sign-in and the command channel together into socket and
LED control.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydlinkdsp.auth import AuthSession
from pydlinkdsp.channel import EVENT_SWITCHED
from pydlinkdsp.const import (
    COMMAND_GET_SETTING,
    COMMAND_SET_SETTING,
    DEFAULT_KEEP_ALIVE,
    DEFAULT_PORT,
    MODEL_W115,
    TELNET_PORT,
    TYPE_LED,
    TYPE_SOCKET,
)
from pydlinkdsp.exceptions import DLinkConnectionError, InvalidParameterError
from pydlinkdsp.models import DeviceSession
from pydlinkdsp.parsers import check_api_response, model_variant, parse_setting_states
from pydlinkdsp.telnet import get_device_info_from_telnet, get_token_from_telnet


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from aiohttp import ClientSession

    from pydlinkdsp.models import DeviceInfo

_LOGGER = logging.getLogger(__name__)


class DLinkSmartPlug:
    """Client for one D-Link smart plug.

    Example:
        Basic usage:

        ```python
        from pydlinkdsp import DLinkSmartPlug

        async with DLinkSmartPlug(ip="192.168.0.20", pin="123456", model="w245") as plug:
            print(await plug.query_state(-1))  # [False, True, False, False]
            await plug.switch_socket(True, socket=2)
            await plug.switch_led(False, led=2)
        ```

        Reacting to sockets switched on the device itself:

        ```python
        def on_switched(on: bool, index: int) -> None:
            print(f"Socket {index} switched to {on}")


        plug = DLinkSmartPlug(ip="192.168.0.20", pin="TOKEN", use_telnet_for_token=True)
        plug.add_listener("switched", on_switched)
        await plug.login()
        ```

    Events:
        ``ready``, ``close(code, reason)``, ``error(exc)``, ``message(text)``,
        ``switched(on, index)``, ``switched-led(on, index)``.
    """

    def __init__(
        self,
        ip: str,
        pin: str = "",
        *,
        port: int = DEFAULT_PORT,
        model: str = MODEL_W115,
        keep_alive: float = DEFAULT_KEEP_ALIVE,
        use_telnet_for_token: bool = False,
        telnet_port: int = TELNET_PORT,
        session: ClientSession | None = None,
        url: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            ip: Address of the plug.
            pin: PIN printed on the plug, or the device token if it was paired with the app.
            port: WebSocket port.
            model: ``w115`` (one socket) or ``w245`` (four sockets).
            keep_alive: Seconds between keepalive pings, 0 turns them off.
            use_telnet_for_token: Read the device token over telnet before signing in.
                Telnet has to be enabled on the plug.
            telnet_port: Telnet port.
            session: Optional aiohttp ClientSession. Not closed by this client.
            url: Override for the WebSocket URL.
        """
        self._device = DeviceSession(ip=ip, pin=pin, port=port, model=model, keep_alive=keep_alive)
        self._telnet_port = telnet_port
        self._auth = AuthSession(
            self._device,
            session=session,
            url=url,
            use_telnet_for_token=use_telnet_for_token,
            telnet_port=telnet_port,
        )
        self._auth.add_listener(EVENT_SWITCHED, self._on_switched)

    @property
    def device(self) -> DeviceSession:
        """Get the session record."""
        return self._device

    @property
    def states(self) -> list[bool]:
        """Get the last state pushed by the plug for every socket."""
        return list(self._device.states)

    async def __aenter__(self) -> DLinkSmartPlug:
        """Enter the context manager.

        Connects and signs in.

        Returns:
            Self for use in async with statements.
        """
        await self.login()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the context manager.

        Args:
            exc_type: Exception type if an exception occurred.
            exc_val: Exception value if an exception occurred.
            exc_tb: Exception traceback if an exception occurred.
        """
        await self.disconnect()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def login(self) -> bool:
        """Connect and sign in. Retrieves salt and device id.

        Returns:
            True if signed in.

        Raises:
            DLinkConnectionError: If the plug cannot be reached.
            ExtractionError: If the telnet token could not be read.
            HandshakeError: If the sign-in reply is malformed.
        """
        return await self._auth.login()

    async def connect(self) -> bool:
        """Open the WebSocket without signing in."""
        return await self._auth.connect()

    async def disconnect(self) -> None:
        """Close the connection."""
        await self._auth.close()

    def set_pin(self, pin: str) -> None:
        """Replace the PIN or device token."""
        self._auth.set_pin(pin)

    def is_ready(self) -> bool:
        """Check if the plug is signed in."""
        return self._device.connected

    def get_device_id(self) -> str | None:
        """Get the device id (MAC without colons). Known after login."""
        return self._device.device_id

    def add_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Register a callback for a plug event.

        Args:
            event: Event name, see class docs.
            callback: Callable receiving the event arguments.
        """
        self._auth.add_listener(event, callback)

    def remove_listener(self, event: str, callback: Callable[..., None]) -> None:
        """Unregister a callback previously added with add_listener()."""
        self._auth.remove_listener(event, callback)

    def _on_switched(self, on: bool, index: int) -> None:
        if isinstance(index, int) and 0 <= index < len(self._device.states):
            self._device.states[index] = on

    # -------------------------------------------------------------------------
    # Telnet
    # -------------------------------------------------------------------------

    async def get_token_from_telnet(self) -> str:
        """Read the device token over telnet and use it as PIN from now on.

        Returns:
            The device token.

        Raises:
            DLinkConnectionError: If telnet is not reachable.
            ExtractionError: If no token was found.
        """
        token = await get_token_from_telnet(self._device.ip, port=self._telnet_port)
        self.set_pin(token)
        _LOGGER.debug("Telnet: using device token as PIN")
        return token

    async def get_device_info_from_telnet(self) -> DeviceInfo:
        """Read model, MAC and versions over telnet.

        The model variant (e.g. ``W245`` out of ``DSP-W245``) replaces the
        configured model.

        Returns:
            DeviceInfo from the plug's mDNS config.
        """
        info = await get_device_info_from_telnet(self._device.ip, port=self._telnet_port)
        if info.model:
            self._device.set_model(model_variant(info.model))
        return info

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self._device.connected or self._auth.channel is None:
            msg = "Not logged in. Call login() first."
            raise DLinkConnectionError(msg)
        message = await self._auth.channel.send_request_await(payload)
        check_api_response(message)
        return message

    async def _set_setting(self, value: int, index: int, setting_type: int) -> bool:
        message = await self._request(
            {
                "command": COMMAND_SET_SETTING,
                "setting": [
                    {
                        "uid": 0,
                        "metadata": {"value": value},
                        "idx": index,
                        "type": setting_type,
                    },
                ],
            },
        )
        settings = message.get("setting") or [{}]
        return settings[0].get("metadata", {}).get("value") == 1

    async def _get_setting(self, setting_type: int) -> list[dict[str, Any]]:
        message = await self._request({"command": COMMAND_GET_SETTING, "setting": [{"type": setting_type}]})
        settings: list[dict[str, Any]] = message.get("setting") or []
        return settings

    async def switch_socket(self, on: bool, socket: int = 0) -> bool:
        """Switch a socket (0 on the W115, 0-3 on the W245).

        Args:
            on: Target state.
            socket: Socket index.

        Returns:
            New state reported by the plug.

        Raises:
            ApiError: If the plug rejects the command.
            DLinkConnectionError: If not logged in or the socket closes.
        """
        return await self._set_setting(1 if on else 0, socket, TYPE_SOCKET)

    async def switch_led(self, on: bool = False, led: int = 0) -> bool:
        """Switch an LED (0 on the W115, 0-3 on the W245).

        Args:
            on: Target state.
            led: LED index.

        Returns:
            New LED state reported by the plug.

        Raises:
            ApiError: If the plug rejects the command.
            DLinkConnectionError: If not logged in or the socket closes.
        """
        return await self._set_setting(1 if on else 0, led, TYPE_LED)

    async def query_state(self, socket: int = 0) -> bool | list[bool]:
        """Query socket state.

        Args:
            socket: Socket index, or -1 for all sockets.

        Returns:
            State of the socket, or a list with the state of every socket.

        Raises:
            ApiError: If the plug rejects the query (424 is reported as 403).
            InvalidParameterError: If the plug did not report that socket.
            DLinkConnectionError: If not logged in or the socket closes.
        """
        if socket < -1:
            msg = f"Invalid socket index {socket}"
            raise InvalidParameterError(msg, parameter_name="socket", value=socket)

        states = parse_setting_states(await self._get_setting(TYPE_SOCKET))
        if socket == -1:
            return states
        if socket >= len(states):
            msg = f"Socket {socket} not reported by device ({len(states)} sockets)"
            raise InvalidParameterError(msg, parameter_name="socket", value=socket)
        return states[socket]
