"""Python client library for D-Link DSP-W115 / DSP-W245 smart plugs.

This package provides an async client for the JSON protocol the plugs speak
over a secure WebSocket.

The library is organized into four layers:
1. **Token** (pydlinkdsp.token): Device token derivation from PIN and salt
2. **Channel** (pydlinkdsp.channel): WebSocket request/response correlation and keepalive
3. **Auth** (pydlinkdsp.auth): Connection setup and the sign-in handshake
4. **Client** (pydlinkdsp.client): Socket and LED control

Paired plugs only accept their rotating device token, which pydlinkdsp.telnet
can read over telnet.

Example:
    Basic usage:

    ```python
    from pydlinkdsp import DLinkSmartPlug

    async with DLinkSmartPlug(ip="192.168.0.20", pin="123456") as plug:
        if not await plug.query_state():
            await plug.switch_socket(True)
    ```
"""

from __future__ import annotations

from pydlinkdsp.auth import AuthSession
from pydlinkdsp.channel import ChannelState, CommandChannel
from pydlinkdsp.client import DLinkSmartPlug
from pydlinkdsp.exceptions import (
    ApiError,
    AuthenticationError,
    DLinkConnectionError,
    DLinkError,
    DLinkTimeoutError,
    ExtractionError,
    HandshakeError,
    InvalidParameterError,
)
from pydlinkdsp.models import DeviceInfo, DeviceModel, DeviceSession
from pydlinkdsp.parsers import parse_config_token, parse_mdns_info
from pydlinkdsp.telnet import (
    ScraperState,
    TelnetScraper,
    get_device_info_from_telnet,
    get_token_from_telnet,
)
from pydlinkdsp.token import derive_device_token


__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "AuthSession",
    "AuthenticationError",
    "ChannelState",
    "CommandChannel",
    "DLinkConnectionError",
    "DLinkError",
    "DLinkSmartPlug",
    "DLinkTimeoutError",
    "DeviceInfo",
    "DeviceModel",
    "DeviceSession",
    "ExtractionError",
    "HandshakeError",
    "InvalidParameterError",
    "ScraperState",
    "TelnetScraper",
    "__version__",
    "derive_device_token",
    "get_device_info_from_telnet",
    "get_token_from_telnet",
    "parse_config_token",
    "parse_mdns_info",
]
