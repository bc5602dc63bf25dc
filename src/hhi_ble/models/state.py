"""In-memory mirrors of device registers."""

from __future__ import annotations

from dataclasses import dataclass, fields

from .enums import ConnectivityFlag


@dataclass
class ConfigState:
    """Mirror of the read/write configuration registers.

    Defaults match what the device ships with before the first read.
    ``wifi_password`` is only a write buffer; it is never populated from
    the device.
    """

    operating_mode: int = 0
    stim_amplitude: int = 10
    stim_frequency: int = 20
    stim_pulse_width: int = 200
    stim_duration: int = 0
    stim_pulse_count: int = 5
    emg_threshold: int = 0
    trigger_enable: int = 0
    wifi_ssid: str = ""
    wifi_password: str = ""
    mqtt_server: str = ""
    master_name: str = ""
    minion_name: str = ""


@dataclass
class StatusState:
    """Mirror of read-only/notify status registers."""

    battery_percent: int = 0
    wifi_connected: bool = False
    mqtt_connected: bool = False
    ip_address: str = ""
    stim_active: bool = False

    def reset(self) -> list[str]:
        """Restore defaults, returning the names of fields that changed."""
        changed = []
        defaults = StatusState()
        for f in fields(self):
            default = getattr(defaults, f.name)
            if getattr(self, f.name) != default:
                setattr(self, f.name, default)
                changed.append(f.name)
        return changed


def decode_connectivity(raw: int) -> tuple[bool, bool]:
    """Split the connectivity byte into (wifi_connected, mqtt_connected).

    Bits are independent; MQTT may be reported without Wi-Fi.
    """
    flags = ConnectivityFlag(raw & (ConnectivityFlag.WIFI | ConnectivityFlag.MQTT))
    return ConnectivityFlag.WIFI in flags, ConnectivityFlag.MQTT in flags
