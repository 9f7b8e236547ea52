"""
Errors raised by the BOPTEST client.

Session establishment (select / initialize / step) raises hard errors,
``stop`` only logs status errors, and float coercion of time series only
warns.
"""
from typing import Optional


class BOPTESTError(Exception):
    """Base class for all client errors."""


class BOPTESTHTTPError(BOPTESTError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str, url: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"Error: {status_code} - {message}")


class SelectionError(BOPTESTError):
    """Test case not found or no slot available on BOPTEST-Service."""


class InitializationError(BOPTESTError):
    pass


class StepConfigError(BOPTESTError):
    pass


class SessionStateError(BOPTESTError):
    """Operation not allowed in the current session state."""


class DataShapeError(BOPTESTError):
    """Response body is missing keys the client needs."""


class NetworkError(BOPTESTError):
    """Transport-level failure (connection refused, reset, DNS...)."""


class RequestTimeoutError(NetworkError, TimeoutError):
    pass


class TypeCoercionWarning(UserWarning):
    """A time series column could not be converted to float."""
