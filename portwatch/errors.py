from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONNECT_FAILURE = "connect_failure"
    SESSION_UNAVAILABLE = "session_unavailable"
    NAVIGATION_ERROR = "navigation_error"
    ELEMENT_TIMEOUT = "element_timeout"
    NO_SUCH_ELEMENT = "no_such_element"
    SESSION_ERROR = "session_error"
    SESSION_CLOSE_ERROR = "session_close_error"
    UNEXPECTED = "unexpected"


class PortwatchError(Exception):
    """Base class for every error raised by portwatch."""


class ConfigError(PortwatchError):
    pass


class AddressParseError(PortwatchError):
    def __init__(self, line: str, reason: str):
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason


class ConnectFailure(PortwatchError):
    """TCP connect failed. Never escapes ``probe()``."""

    kind = ErrorKind.CONNECT_FAILURE

    def __init__(self, address: str, reason: str):
        super().__init__(f"connect to {address} failed: {reason}")
        self.address = address
        self.reason = reason


class ResultSinkError(PortwatchError):
    pass


class SessionCloseError(PortwatchError):
    kind = ErrorKind.SESSION_CLOSE_ERROR

    def __init__(self, failures: list[str]):
        super().__init__("session close failed: " + "; ".join(failures))
        self.failures = list(failures)


class MeasurementError(PortwatchError):
    """An error that ends a functional-time measurement.

    ``close_error`` is set when releasing the browser session also failed; it is
    informational and does not change which error the caller sees.
    """

    kind = ErrorKind.UNEXPECTED

    def __init__(self, message: str):
        super().__init__(message)
        self.close_error: SessionCloseError | None = None


class SessionUnavailable(MeasurementError):
    kind = ErrorKind.SESSION_UNAVAILABLE


class NavigationError(MeasurementError):
    kind = ErrorKind.NAVIGATION_ERROR


class SessionError(MeasurementError):
    kind = ErrorKind.SESSION_ERROR


class NoSuchElement(MeasurementError):
    kind = ErrorKind.NO_SUCH_ELEMENT

    def __init__(self, selector: str, detail: str = ""):
        message = f"element {selector!r} does not exist"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.selector = selector


class ElementTimeout(MeasurementError):
    kind = ErrorKind.ELEMENT_TIMEOUT

    def __init__(self, selector: str, timeout: float):
        super().__init__(f"element {selector!r} not visible after {timeout:g} seconds")
        self.selector = selector
        self.timeout = timeout
