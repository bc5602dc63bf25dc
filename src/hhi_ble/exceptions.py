"""Exceptions raised by the HHI BLE driver."""

from __future__ import annotations


class HHIError(Exception):
    """Base exception for all HHI driver errors."""


class DiscoveryCancelled(HHIError):
    """User declined the device picker (no device chosen)."""


class ConnectionFailed(HHIError):
    """Transport-level connect or service resolution failed."""


class BLETimeoutError(ConnectionFailed):
    """BLE connection attempt timed out."""


class SessionClosed(ConnectionFailed):
    """Register access attempted on a session that is no longer valid."""


class RegisterAccessError(HHIError):
    """A single register operation failed.

    Raised per register; batch operations catch it, log it and move on.
    """

    def __init__(self, message: str, register_id: int | None = None):
        super().__init__(message)
        self.register_id = register_id


class RegisterUnavailable(RegisterAccessError):
    """Characteristic is not exposed by this firmware revision."""


class NotificationSetupFailed(RegisterAccessError):
    """Device rejected enabling notifications on a characteristic."""


class TransferFailed(RegisterAccessError):
    """Platform rejected a read or write on a live session."""


class EncodingError(HHIError):
    """Value cannot be encoded (out of range, wrong type, too long) or payload cannot be decoded."""


class CapabilityViolation(HHIError):
    """Register accessed in a mode its catalog entry does not declare.

    This is a programming error and is never swallowed by batch operations.
    """
