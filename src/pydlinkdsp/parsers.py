"""Parsing utilities for device replies and scraped config files.

This module provides shared parsing functions used by DLinkSmartPlug and the
telnet helpers to turn raw text and JSON replies into plain values and models.
"""

from __future__ import annotations

from typing import Any

from pydlinkdsp.const import CODE_DEVICE_FORBIDDEN, CODE_FORBIDDEN, CODE_OK, DEVICE_TOKEN_KEY
from pydlinkdsp.exceptions import ApiError
from pydlinkdsp.models import DeviceInfo


__all__ = [
    "check_api_response",
    "model_variant",
    "parse_config_token",
    "parse_mdns_info",
    "parse_setting_states",
]

_MDNS_FIELDS = {
    "mac": "mac",
    "model": "model",
    "hw_ver": "hardware_version",
    "fw_ver": "firmware_version",
    "md_ver": "software_version",
}


def parse_config_token(text: str, key: str = DEVICE_TOKEN_KEY) -> str | None:
    """Find the value paired with ``key`` in a chunk of device.cfg.

    The file is a JSON-ish list of ``"key":value`` pairs. Terminal output around
    the file (the echoed command, the next prompt) may share a pair, so only the
    last word before the colon is compared against the quoted key.

    Args:
        text: Raw chunk read from the telnet session.
        key: Field name without quotes.

    Returns:
        The unquoted value, or None if no pair carries exactly that key.
    """
    quoted_key = f'"{key}"'
    for pair in text.split(","):
        raw_key, sep, raw_value = pair.partition(":")
        if not sep:
            continue
        words = raw_key.split()
        if not words or words[-1].lstrip("{") != quoted_key:
            continue
        value_words = raw_value.split()
        if not value_words:
            return ""
        return value_words[0].rstrip("}").strip('"')
    return None


def model_variant(model: str) -> str:
    """Return the part of a model name after its last hyphen (DSP-W245 -> W245)."""
    return model.rpartition("-")[2]


def parse_mdns_info(text: str) -> DeviceInfo:
    """Parse ``key=value`` lines of mdns.conf into a DeviceInfo.

    Unknown keys are ignored.

    Args:
        text: Raw chunk read from the telnet session.

    Returns:
        DeviceInfo with every recognised field filled in.
    """
    info = DeviceInfo()
    for line in text.split("\n"):
        key, sep, value = line.strip().partition("=")
        attribute = _MDNS_FIELDS.get(key)
        if sep and attribute is not None:
            setattr(info, attribute, value)
    return info


def check_api_response(message: dict[str, Any]) -> None:
    """Raise ApiError if a reply carries a non-zero result code.

    Code 424 is what the plug answers for a bad device token, it is reported
    as 403 so callers see a plain "forbidden".

    Args:
        message: Parsed reply.

    Raises:
        ApiError: If ``code`` is not 0.
    """
    code = message.get("code")
    if code == CODE_OK:
        return
    if code == CODE_DEVICE_FORBIDDEN:
        raise ApiError(CODE_FORBIDDEN, "Forbidden - invalid credentials?")
    raise ApiError(code if isinstance(code, int) else -1, message.get("message"))


def parse_setting_states(settings: list[dict[str, Any]]) -> list[bool]:
    """Convert the ``setting`` array of a get_setting reply into booleans."""
    return [setting.get("metadata", {}).get("value") == 1 for setting in settings]
