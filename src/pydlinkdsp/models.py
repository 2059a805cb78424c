"""Data models for D-Link smart plug sessions and device metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydlinkdsp.const import DEFAULT_KEEP_ALIVE, DEFAULT_PORT, MODEL_W115, MODEL_W245, MULTI_SOCKET_COUNT, SEQUENCE_SEED
from pydlinkdsp.token import derive_device_token


__all__ = [
    "DeviceInfo",
    "DeviceModel",
    "DeviceSession",
]


class DeviceModel(str, Enum):
    """Supported plug models."""

    W115 = MODEL_W115  # single socket
    W245 = MODEL_W245  # four sockets

    @property
    def socket_count(self) -> int:
        """Number of switchable sockets on this model."""
        return MULTI_SOCKET_COUNT if self is DeviceModel.W245 else 1


@dataclass
class DeviceInfo:
    """Device metadata read from the mDNS config over telnet.

    Attributes:
        mac: MAC address.
        model: Full model name (e.g., "DSP-W245").
        hardware_version: Hardware revision.
        firmware_version: Firmware version.
        software_version: mydlink agent version.
    """

    mac: str | None = None
    model: str | None = None
    hardware_version: str | None = None
    firmware_version: str | None = None
    software_version: str | None = None


@dataclass
class DeviceSession:
    """State of one plug session, owned by a single DLinkSmartPlug.

    Credential state survives reconnects. Handshake state (salt, device id)
    is set by a successful sign-in and cleared on disconnect.

    Attributes:
        ip: Address of the plug.
        pin: PIN printed on the plug, or the device token if the plug was paired.
        port: WebSocket port.
        model: Model name, decides how many sockets the state cache tracks.
        keep_alive: Seconds between keepalive pings, 0 disables them.
        salt: Salt from the sign-in reply (None until signed in).
        device_id: Device id from the sign-in reply (None until signed in).
        local_cid: Client session tag echoed in the sign-in reply.
        short_id: Last four characters of the device id.
        sequence: Last sequence id handed out.
        connected: Whether the sign-in handshake completed.
        states: Last pushed state of every socket.
    """

    ip: str
    pin: str = ""
    port: int = DEFAULT_PORT
    model: str = MODEL_W115
    keep_alive: float = DEFAULT_KEEP_ALIVE
    salt: str | None = None
    device_id: str | None = None
    local_cid: int | None = None
    short_id: str | None = None
    sequence: int = SEQUENCE_SEED
    connected: bool = False
    states: list[bool] = field(default_factory=list)

    _token: str | None = field(default=None, init=False, repr=False)
    _token_inputs: tuple[str, str | None, str | None] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """Size the state cache for the model."""
        if not self.states:
            self.states = [False] * self.socket_count

    @property
    def socket_count(self) -> int:
        """Number of sockets tracked for the configured model."""
        try:
            return DeviceModel(self.model.lower()).socket_count
        except ValueError:
            return 1

    @property
    def device_token(self) -> str | None:
        """Derived device token, recomputed only when pin, salt or device id changed."""
        inputs = (self.pin, self.salt, self.device_id)
        if self._token is None or self._token_inputs != inputs:
            self._token = derive_device_token(*inputs)
            self._token_inputs = inputs if self._token is not None else None
        return self._token

    def next_sequence(self) -> int:
        """Advance and return the sequence counter."""
        self.sequence += 1
        return self.sequence

    def set_pin(self, pin: str) -> None:
        """Replace the PIN and drop the cached token."""
        self.pin = pin
        self.invalidate_token()

    def set_model(self, model: str) -> None:
        """Adopt a model name and resize the state cache."""
        self.model = model.lower()
        self.states = [False] * self.socket_count

    def invalidate_token(self) -> None:
        """Drop the cached token so the next request derives a fresh one."""
        self._token = None
        self._token_inputs = None

    def clear_handshake(self) -> None:
        """Forget everything learned during sign-in."""
        self.salt = None
        self.device_id = None
        self.short_id = None
        self.connected = False
        self.invalidate_token()
