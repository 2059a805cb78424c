"""Constants for pydlinkdsp library."""

from __future__ import annotations


# WebSocket Configuration
DEFAULT_PORT = 8080
WEBSOCKET_PATH = "/SwitchCamera"
CONNECT_TIMEOUT = 5.0  # seconds
CLOSE_GRACE_PERIOD = 0.5  # seconds before a close is forced
DEFAULT_KEEP_ALIVE = 30  # seconds between pings, 0 disables

# Request Envelope
SEQUENCE_SEED = 1000
LOCAL_CID = 41556
SIGN_IN_SCOPE = (
    "user.all",
    "device.status",
    "device.control",
    "viewing.all",
    "photo.all",
    "recording.all",
    "device.mode",
    "base.all",
)

# Commands
COMMAND_SIGN_IN = "sign_in"
COMMAND_GET_SETTING = "get_setting"
COMMAND_SET_SETTING = "set_setting"
COMMAND_KEEP_ALIVE = "keep_alive"
COMMAND_EVENT = "event"

# Setting Types
TYPE_SOCKET = 16
TYPE_LED = 41

# API Result Codes
CODE_OK = 0
CODE_DEVICE_FORBIDDEN = 424
CODE_FORBIDDEN = 403

# Device Models
MODEL_W115 = "w115"
MODEL_W245 = "w245"
MULTI_SOCKET_COUNT = 4

# Telnet Configuration
TELNET_PORT = 23
TELNET_USERNAME = "admin"
TELNET_PASSWORD = "123456"
TELNET_EOT = b"\x04"
DEVICE_CONFIG_FILE = "/mydlink/config/device.cfg"
DEVICE_TOKEN_KEY = "DeviceToken"
MDNS_CONFIG_FILE = "/mydlink/config/mdns/mdns.conf"
MDNS_SERVICE_MARKER = "_dcp._tcp. local."
