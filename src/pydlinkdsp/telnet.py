"""Scripted telnet session for scraping values out of device config files.

Paired plugs no longer accept the PIN printed on their back. They accept a
device token that rotates and lives in ``/mydlink/config/device.cfg``. With the
telnet server enabled, the file can be read with the factory credentials.

The session is driven by a small state machine that only looks at the text of
each received chunk:

1. ``login:`` (any case) -> send the username
2. ``password:`` (any case) -> send the password
3. ``#`` (shell prompt) -> send ``cat <file>``
4. search marker -> keep the chunk, send EOT and stop

Prompts are re-checked on every chunk, since the device may repeat them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum

from pydlinkdsp.const import (
    DEVICE_CONFIG_FILE,
    DEVICE_TOKEN_KEY,
    MDNS_CONFIG_FILE,
    MDNS_SERVICE_MARKER,
    TELNET_EOT,
    TELNET_PASSWORD,
    TELNET_PORT,
    TELNET_USERNAME,
)
from pydlinkdsp.exceptions import DLinkConnectionError, ExtractionError
from pydlinkdsp.models import DeviceInfo
from pydlinkdsp.parsers import parse_config_token, parse_mdns_info


__all__ = [
    "ScraperState",
    "TelnetScraper",
    "get_device_info_from_telnet",
    "get_token_from_telnet",
    "read_file_from_telnet",
]

_LOGGER = logging.getLogger(__name__)

_READ_SIZE = 4096


class ScraperState(Enum):
    """Progress of a scripted telnet session."""

    AWAITING_LOGIN_PROMPT = "awaiting_login_prompt"
    AWAITING_PASSWORD_PROMPT = "awaiting_password_prompt"
    AWAITING_SHELL_PROMPT = "awaiting_shell_prompt"
    AWAITING_TARGET = "awaiting_target"
    DONE = "done"


class TelnetScraper:
    """Prompt-driven state machine reading one file over telnet.

    The machine knows nothing about sockets: feed it decoded chunks and write
    out whatever it returns. This keeps prompt handling testable regardless of
    how the transport splits the stream.

    Example:
        ```python
        scraper = TelnetScraper("/mydlink/config/device.cfg", "DeviceToken")
        for chunk in chunks:
            for data in scraper.feed(chunk):
                writer.write(data)
            if scraper.done:
                print(scraper.result)
        ```

    Attributes:
        file_path: File to print once the shell prompt shows up.
        search_marker: Text identifying the chunk that carries the file contents.
        state: Furthest step reached so far.
        result: Chunk containing the search marker (None until found).
    """

    def __init__(
        self,
        file_path: str,
        search_marker: str,
        *,
        username: str = TELNET_USERNAME,
        password: str = TELNET_PASSWORD,
    ) -> None:
        """Initialize the scraper.

        Args:
            file_path: Absolute path of the file on the device.
            search_marker: Text expected in the file output.
            username: Telnet login name.
            password: Telnet password.
        """
        self.file_path = file_path
        self.search_marker = search_marker
        self.state = ScraperState.AWAITING_LOGIN_PROMPT
        self.result: str | None = None
        self._username = username
        self._password = password

    @property
    def done(self) -> bool:
        """Whether the marker has been seen."""
        return self.state is ScraperState.DONE

    def _advance(self, state: ScraperState) -> None:
        # Repeated prompts must not move the machine backwards.
        order = list(ScraperState)
        if order.index(state) > order.index(self.state):
            self.state = state

    def feed(self, chunk: str) -> list[bytes]:
        """Process one received chunk.

        Args:
            chunk: Decoded text as received from the device.

        Returns:
            Data to send back, in order. Empty once the session is done.
        """
        if self.done:
            return []

        outgoing: list[bytes] = []
        lowered = chunk.lower()

        if "login:" in lowered:
            _LOGGER.debug("Telnet: sending login")
            outgoing.append(f"{self._username}\n".encode())
            self._advance(ScraperState.AWAITING_PASSWORD_PROMPT)

        if "password:" in lowered:
            _LOGGER.debug("Telnet: sending password")
            outgoing.append(f"{self._password}\n".encode())
            self._advance(ScraperState.AWAITING_SHELL_PROMPT)

        if "#" in chunk:
            _LOGGER.debug("Telnet: sending command")
            outgoing.append(f"cat {self.file_path}\n".encode())
            self._advance(ScraperState.AWAITING_TARGET)

        if self.search_marker in chunk:
            _LOGGER.debug("Telnet: found %s", self.search_marker)
            self.result = chunk
            outgoing.append(TELNET_EOT)
            self.state = ScraperState.DONE

        return outgoing


async def read_file_from_telnet(
    host: str,
    file_path: str,
    search_marker: str,
    *,
    port: int = TELNET_PORT,
) -> str:
    """Log in over telnet, print a file and return the chunk holding ``search_marker``.

    No timeout is applied. Wrap the call in ``asyncio.timeout`` for a bounded wait.

    Args:
        host: Address of the plug.
        file_path: File to print.
        search_marker: Text expected in the file output.
        port: Telnet port.

    Returns:
        The received chunk that contains the marker.

    Raises:
        DLinkConnectionError: If the telnet server cannot be reached.
        ExtractionError: If the session ends before the marker shows up.
    """
    try:
        reader, writer = await asyncio.open_connection(host, port)
    except OSError as exc:
        msg = f"Failed to connect to telnet on {host}:{port}: {exc}"
        raise DLinkConnectionError(msg) from exc

    _LOGGER.debug("Telnet: connected to %s:%d", host, port)
    scraper = TelnetScraper(file_path, search_marker)

    try:
        while not scraper.done:
            data = await reader.read(_READ_SIZE)
            if not data:
                msg = "Connection ended."
                raise ExtractionError(msg, file_path=file_path)
            for outgoing in scraper.feed(data.decode("utf-8", errors="replace")):
                writer.write(outgoing)
            await writer.drain()
    except OSError as exc:
        msg = f"Telnet connection failed: {exc}"
        raise ExtractionError(msg, file_path=file_path) from exc
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    assert scraper.result is not None
    return scraper.result


async def get_token_from_telnet(host: str, *, port: int = TELNET_PORT) -> str:
    """Read the current device token from device.cfg.

    Args:
        host: Address of the plug.
        port: Telnet port.

    Returns:
        The device token, usable in place of the PIN.

    Raises:
        DLinkConnectionError: If the telnet server cannot be reached.
        ExtractionError: If the session ended early or no token pair was found.
    """
    text = await read_file_from_telnet(host, DEVICE_CONFIG_FILE, DEVICE_TOKEN_KEY, port=port)
    token = parse_config_token(text, DEVICE_TOKEN_KEY)
    if token is None:
        msg = "No token found."
        raise ExtractionError(msg, file_path=DEVICE_CONFIG_FILE)
    _LOGGER.debug("Telnet: got token")
    return token


async def get_device_info_from_telnet(host: str, *, port: int = TELNET_PORT) -> DeviceInfo:
    """Read model, MAC and versions from the mDNS service config.

    Args:
        host: Address of the plug.
        port: Telnet port.

    Returns:
        DeviceInfo parsed from mdns.conf.

    Raises:
        DLinkConnectionError: If the telnet server cannot be reached.
        ExtractionError: If the session ended before the service record showed up.
    """
    text = await read_file_from_telnet(host, MDNS_CONFIG_FILE, MDNS_SERVICE_MARKER, port=port)
    return parse_mdns_info(text)
