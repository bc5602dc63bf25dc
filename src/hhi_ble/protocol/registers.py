"""Register catalog for the HHI control service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, Flag, IntEnum
from typing import Final

from bleak.uuids import normalize_uuid_16

from ..exceptions import CapabilityViolation


class RegisterId(IntEnum):
    """16-bit characteristic identifiers."""

    OPERATING_MODE = 0xBB02
    STIM_AMPLITUDE = 0xBB03
    STIM_FREQUENCY = 0xBB04
    STIM_PULSE_WIDTH = 0xBB05
    STIM_DURATION = 0xBB06
    EMG_THRESHOLD = 0xBB07
    TRIGGER_ENABLE = 0xBB08
    MQTT_SERVER = 0xBB09
    MASTER_NAME = 0xBB0A
    MINION_NAME = 0xBB0B
    WIFI_SSID = 0xBB0C
    WIFI_PASSWORD = 0xBB0D
    CONNECTIVITY = 0xBB0E
    IP_ADDRESS = 0xBB0F
    CURRENT_AMPLITUDE = 0xBB10
    CURRENT_EMG_THRESHOLD = 0xBB11
    TRIGGER_STIMULATION = 0xBB12
    STIM_PULSE_COUNT = 0xBB13
    STIM_ACTIVE = 0xBB14

    # Standard Battery Level characteristic (lives in the battery service)
    BATTERY_LEVEL = 0x2A19


class WireType(Enum):
    """On-air encoding of a register value."""

    UINT8 = "uint8"
    UINT16_LE = "uint16-le"
    UTF8 = "utf8"


class Access(Flag):
    """Access modes a register supports."""

    READ = 1
    WRITE = 2
    NOTIFY = 4


class ServiceKind(Enum):
    """Which GATT service a register is resolved in."""

    CONTROL = "control"
    BATTERY = "battery"


# Protocol constants
CONTROL_SERVICE_ID = 0xBB01
BATTERY_SERVICE_ID = 0x180F

SERVICE_UUID = normalize_uuid_16(CONTROL_SERVICE_ID)
BATTERY_SERVICE_UUID = normalize_uuid_16(BATTERY_SERVICE_ID)

UINT8_MAX = 0xFF
UINT16_MAX = 0xFFFF

# Sentinels
AMPLITUDE_USE_POTENTIOMETER = 0xFFFF
DURATION_WHILE_ABOVE_THRESHOLD = 0xFF
EMG_THRESHOLD_BUTTON = 0xFF
PULSE_COUNT_UNBOUNDED = 0


@dataclass(frozen=True, slots=True)
class Register:
    """Static descriptor of one device register."""

    id: int
    name: str
    wire_type: WireType
    access: Access
    encoded_range: tuple[int, int] | None = None
    max_length: int | None = None
    sentinels: frozenset[int] = frozenset()
    service: ServiceKind = ServiceKind.CONTROL
    write_with_response: bool = True
    secret: bool = False

    @property
    def uuid(self) -> str:
        """Full 128-bit UUID string of the characteristic."""
        return normalize_uuid_16(self.id)

    @property
    def readable(self) -> bool:
        return Access.READ in self.access

    @property
    def writable(self) -> bool:
        return Access.WRITE in self.access

    @property
    def notifiable(self) -> bool:
        return Access.NOTIFY in self.access


_RW = Access.READ | Access.WRITE
_RN = Access.READ | Access.NOTIFY
_RWN = Access.READ | Access.WRITE | Access.NOTIFY

_REGISTERS: Final[tuple[Register, ...]] = (
    Register(RegisterId.OPERATING_MODE, "operating_mode", WireType.UINT8, _RW,
             encoded_range=(0, 3)),
    Register(RegisterId.STIM_AMPLITUDE, "stim_amplitude", WireType.UINT16_LE, _RW,
             encoded_range=(0, UINT16_MAX)),
    Register(RegisterId.STIM_FREQUENCY, "stim_frequency", WireType.UINT8, _RW,
             encoded_range=(0, UINT8_MAX)),
    Register(RegisterId.STIM_PULSE_WIDTH, "stim_pulse_width", WireType.UINT16_LE, _RW,
             encoded_range=(0, UINT16_MAX)),
    Register(RegisterId.STIM_DURATION, "stim_duration", WireType.UINT8, _RW,
             encoded_range=(0, UINT8_MAX)),
    Register(RegisterId.EMG_THRESHOLD, "emg_threshold", WireType.UINT8, _RW,
             encoded_range=(0, 5), sentinels=frozenset({EMG_THRESHOLD_BUTTON})),
    Register(RegisterId.TRIGGER_ENABLE, "trigger_enable", WireType.UINT8, _RW,
             encoded_range=(0, 3)),
    Register(RegisterId.MQTT_SERVER, "mqtt_server", WireType.UTF8, _RWN,
             max_length=64),
    Register(RegisterId.MASTER_NAME, "master_name", WireType.UTF8, _RWN,
             max_length=32),
    Register(RegisterId.MINION_NAME, "minion_name", WireType.UTF8, _RWN,
             max_length=32),
    Register(RegisterId.WIFI_SSID, "wifi_ssid", WireType.UTF8, _RWN,
             max_length=32),
    Register(RegisterId.WIFI_PASSWORD, "wifi_password", WireType.UTF8, Access.WRITE,
             max_length=64, write_with_response=False, secret=True),
    Register(RegisterId.CONNECTIVITY, "connectivity", WireType.UINT8, _RN),
    Register(RegisterId.IP_ADDRESS, "ip_address", WireType.UTF8, _RN,
             max_length=45),
    Register(RegisterId.CURRENT_AMPLITUDE, "current_amplitude", WireType.UINT16_LE, _RN),
    Register(RegisterId.CURRENT_EMG_THRESHOLD, "current_emg_threshold", WireType.UINT8, _RN),
    Register(RegisterId.TRIGGER_STIMULATION, "trigger_stimulation", WireType.UINT8, Access.WRITE,
             encoded_range=(0, 1)),
    Register(RegisterId.STIM_PULSE_COUNT, "stim_pulse_count", WireType.UINT16_LE, _RW,
             encoded_range=(0, UINT16_MAX)),
    Register(RegisterId.STIM_ACTIVE, "stim_active", WireType.UINT8, _RN),
    Register(RegisterId.BATTERY_LEVEL, "battery_level", WireType.UINT8, _RN,
             encoded_range=(0, 100), service=ServiceKind.BATTERY),
)

CATALOG: Final[dict[int, Register]] = {reg.id: reg for reg in _REGISTERS}


def catalog(register_id: int) -> Register:
    """Look up a register descriptor by identifier.

    Raises:
        CapabilityViolation: If the identifier is not in the catalog
    """
    try:
        return CATALOG[register_id]
    except KeyError:
        raise CapabilityViolation(
            f"Unknown register 0x{register_id:04X}"
        ) from None


def require_access(register: Register, access: Access) -> None:
    """Fail fast if ``register`` does not declare ``access``.

    Raises:
        CapabilityViolation: On access-mode mismatch
    """
    if access not in register.access:
        raise CapabilityViolation(
            f"Register {register.name} (0x{register.id:04X}) does not support {access.name}"
        )


def describe(register_id: int) -> str:
    """Human-readable label for log messages, tolerant of unknown ids."""
    reg = CATALOG.get(register_id)
    if reg is None:
        return f"0x{register_id:04X}"
    return f"{reg.name} (0x{reg.id:04X})"
