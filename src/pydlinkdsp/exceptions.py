"""Custom exceptions for pydlinkdsp library."""

from __future__ import annotations

from typing import Any


class DLinkError(Exception):
    """Base exception for all pydlinkdsp errors."""


class DLinkConnectionError(DLinkError):
    """Exception raised for transport failures.

    Covers failed connects, unexpected socket closes and socket-level errors.

    Attributes:
        code: Optional WebSocket close code.
        reason: Optional close reason sent by the device.
    """

    def __init__(self, message: str = "", code: int | None = None, reason: str | None = None) -> None:
        """Initialize DLinkConnectionError.

        Args:
            message: Error message.
            code: Optional WebSocket close code.
            reason: Optional close reason.
        """
        super().__init__(message)
        self.code = code
        self.reason = reason


class DLinkTimeoutError(DLinkError):
    """Exception raised when a caller-imposed wait runs out."""


class AuthenticationError(DLinkError):
    """Exception raised for authentication failures."""


class HandshakeError(AuthenticationError):
    """Exception raised when the sign-in reply is malformed or unexpected.

    Attributes:
        response: Raw reply received from the device, kept for diagnosis.
    """

    def __init__(self, message: str = "", response: Any = None) -> None:
        """Initialize HandshakeError.

        Args:
            message: Error message.
            response: Raw sign-in reply.
        """
        super().__init__(message)
        self.response = response


class ApiError(DLinkError):
    """Exception raised when the device answers with a non-zero code.

    Attributes:
        code: Numeric result code reported by the device.
        message: Message reported by the device, if any.
    """

    def __init__(self, code: int, message: str | None = None) -> None:
        """Initialize ApiError.

        Args:
            code: Numeric result code.
            message: Device supplied message.
        """
        super().__init__(f"API Error {code}: {message}")
        self.code = code
        self.message = message


class ExtractionError(DLinkError):
    """Exception raised when a value could not be scraped over telnet.

    Attributes:
        file_path: Optional path of the file that was being read.
    """

    def __init__(self, message: str = "", file_path: str | None = None) -> None:
        """Initialize ExtractionError.

        Args:
            message: Error message.
            file_path: Optional path of the file being read.
        """
        super().__init__(message)
        self.file_path = file_path


class InvalidParameterError(DLinkError):
    """Exception raised for invalid parameter values.

    Attributes:
        parameter_name: Optional name of the invalid parameter.
        value: Optional value that was invalid.
    """

    def __init__(
        self,
        message: str = "",
        parameter_name: str | None = None,
        value: Any = None,
    ) -> None:
        """Initialize InvalidParameterError.

        Args:
            message: Error message.
            parameter_name: Optional name of the invalid parameter.
            value: Optional value that was invalid.
        """
        super().__init__(message)
        self.parameter_name = parameter_name
        self.value = value
