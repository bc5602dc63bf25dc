"""HHI BLE Protocol Package.

  Pure Python driver for the HHI wearable neurostimulation device's BLE
  control service.
  """

from .device import HHIDevice
from .discovery import DiscoveredDevice, discover_devices
from .exceptions import (
    BLETimeoutError,
    CapabilityViolation,
    ConnectionFailed,
    DiscoveryCancelled,
    EncodingError,
    HHIError,
    NotificationSetupFailed,
    RegisterAccessError,
    RegisterUnavailable,
    SessionClosed,
    TransferFailed,
)
from .models import (
    ConfigState,
    ConnectivityFlag,
    LogEntry,
    OperatingMode,
    SaveReport,
    StateChange,
    StatusState,
    StimulationCommand,
    SyncReport,
    TriggerSource,
    decode_connectivity,
    get_mode_name,
    mode_allows_network,
    mode_allows_stimulation,
)
from .protocol import (
    BATTERY_SERVICE_UUID,
    SERVICE_UUID,
    Access,
    Register,
    RegisterId,
    WireType,
    catalog,
    decode,
    encode,
)
from .sync import StateSynchronizer
from .transport import (
    DeviceSession,
    SessionManager,
    SessionState,
    read_register,
    subscribe,
    write_register,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "HHIDevice",
    "discover_devices",
    "DiscoveredDevice",
    # Core layers
    "SessionManager",
    "SessionState",
    "DeviceSession",
    "StateSynchronizer",
    "read_register",
    "write_register",
    "subscribe",
    # Exceptions
    "HHIError",
    "DiscoveryCancelled",
    "ConnectionFailed",
    "BLETimeoutError",
    "SessionClosed",
    "RegisterAccessError",
    "RegisterUnavailable",
    "NotificationSetupFailed",
    "TransferFailed",
    "EncodingError",
    "CapabilityViolation",
    # Models
    "ConfigState",
    "StatusState",
    "StateChange",
    "LogEntry",
    "SyncReport",
    "SaveReport",
    # Enums
    "OperatingMode",
    "ConnectivityFlag",
    "TriggerSource",
    "StimulationCommand",
    "Access",
    "WireType",
    "RegisterId",
    # Utilities
    "Register",
    "catalog",
    "encode",
    "decode",
    "decode_connectivity",
    "get_mode_name",
    "mode_allows_network",
    "mode_allows_stimulation",
    # Constants
    "SERVICE_UUID",
    "BATTERY_SERVICE_UUID",
]
