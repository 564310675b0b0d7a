"""Exceptions raised by the monitoring core."""

from enum import Enum


class MonitorException(Exception):
    """Base exception for the monitoring core."""


class ValidationError(MonitorException):
    """A temperature limit outside the accepted range."""

    def __init__(self, value: object, min_value: float, max_value: float) -> None:
        super().__init__(f"limit must be between {min_value:g} and {max_value:g}, got {value!r}")
        self.value = value
        self.min_value = min_value
        self.max_value = max_value


class LedgerErrorKind(str, Enum):
    WRITE_FAILURE = "write_failure"
    READ_FAILURE = "read_failure"


class LedgerError(MonitorException):
    """A fault talking to the external audit ledger."""

    kind: LedgerErrorKind

    def __init__(self, kind: LedgerErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class LedgerWriteError(LedgerError):
    def __init__(self, message: str) -> None:
        super().__init__(LedgerErrorKind.WRITE_FAILURE, message)


class LedgerReadError(LedgerError):
    def __init__(self, message: str) -> None:
        super().__init__(LedgerErrorKind.READ_FAILURE, message)


class TransientLedgerError(MonitorException):
    """A ledger fault worth retrying (connection drop, timeout, 5xx)."""


class PermissionDenied(MonitorException):
    """Notifications are not authorized on this notification center."""
