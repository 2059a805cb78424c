"""Device token derivation."""

from __future__ import annotations

import hashlib


def derive_device_token(pin: str, salt: str | None, device_id: str | None) -> str | None:
    """Derive the device token sent along with every request after sign-in.

    The device hashes the PIN and the salt as two separate SHA-1 updates and
    prefixes the hex digest with its device id.

    Args:
        pin: PIN printed on the device or the device token read over telnet.
        salt: Salt handed out in the sign-in reply.
        device_id: Device id handed out in the sign-in reply.

    Returns:
        Token in the form ``<device_id>-<sha1 hex>``, or None while the
        handshake has not completed.
    """
    if not salt or not device_id:
        return None

    sha1 = hashlib.sha1()  # noqa: S324 - required by the device protocol
    sha1.update(pin.encode("utf-8"))
    sha1.update(salt.encode("utf-8"))
    return f"{device_id}-{sha1.hexdigest()}"
