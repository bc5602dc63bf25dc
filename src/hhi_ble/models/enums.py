from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Final


class OperatingMode(IntEnum):
    """Device operating modes."""
    TRADITIONAL = 0
    REMOTE_CONTROLLER = 1
    REMOTE_MINION = 2
    CUSTOM = 3


MODE_NAMES: Final[dict[OperatingMode, str]] = {
    OperatingMode.TRADITIONAL: "Traditional HHI",
    OperatingMode.REMOTE_CONTROLLER: "Master/Controller",
    OperatingMode.REMOTE_MINION: "Minion/Remote",
    OperatingMode.CUSTOM: "Custom",
}


def get_mode_name(mode: OperatingMode | int) -> str | None:
    """Get display name for an operating mode, if known."""
    try:
        return MODE_NAMES[OperatingMode(mode)]
    except (ValueError, KeyError):
        return None


def mode_allows_stimulation(mode: OperatingMode | int) -> bool:
    """Stimulation parameters and the trigger register only apply in custom mode."""
    return mode == OperatingMode.CUSTOM


def mode_allows_network(mode: OperatingMode | int) -> bool:
    """Network identity registers only apply in the remote modes."""
    return mode in (OperatingMode.REMOTE_CONTROLLER, OperatingMode.REMOTE_MINION)


class ConnectivityFlag(IntFlag):
    """Connectivity status bitmask (register 0xBB0E)."""
    WIFI = 0x01
    MQTT = 0x02


class TriggerSource(IntFlag):
    """Trigger-enable bitmask (register 0xBB08)."""
    EMG = 0x01
    BUTTON = 0x02


class StimulationCommand(IntEnum):
    """Values accepted by the trigger stimulation register."""
    STOP = 0
    START = 1
