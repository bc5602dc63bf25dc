"""HHI register protocol implementation."""

from .codec import decode, decode_register, encode, encode_register, validate
from .registers import (
    AMPLITUDE_USE_POTENTIOMETER,
    BATTERY_SERVICE_UUID,
    CATALOG,
    DURATION_WHILE_ABOVE_THRESHOLD,
    EMG_THRESHOLD_BUTTON,
    PULSE_COUNT_UNBOUNDED,
    SERVICE_UUID,
    Access,
    Register,
    RegisterId,
    ServiceKind,
    WireType,
    catalog,
    describe,
    require_access,
)

__all__ = [
    "Access",
    "Register",
    "RegisterId",
    "ServiceKind",
    "WireType",
    "CATALOG",
    "SERVICE_UUID",
    "BATTERY_SERVICE_UUID",
    "AMPLITUDE_USE_POTENTIOMETER",
    "DURATION_WHILE_ABOVE_THRESHOLD",
    "EMG_THRESHOLD_BUTTON",
    "PULSE_COUNT_UNBOUNDED",
    "catalog",
    "describe",
    "require_access",
    "encode",
    "decode",
    "validate",
    "encode_register",
    "decode_register",
]
