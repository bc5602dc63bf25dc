"""BLE transport: session lifecycle and register access."""

from .access import read_register, subscribe, write_register
from .connection import DeviceSession, SessionManager, SessionState

__all__ = [
    "DeviceSession",
    "SessionManager",
    "SessionState",
    "read_register",
    "write_register",
    "subscribe",
]
