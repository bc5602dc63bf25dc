"""BLE device discovery for HHI devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bleak import BleakScanner

from .protocol import SERVICE_UUID

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredDevice:
    """One scan result offered to the device chooser.

    Attributes:
        device: BLEDevice handle usable for connecting
        name: Advertised local name (may be None)
        rssi: Signal strength in dBm, if reported
        advertises_control_service: True if the HHI service UUID was advertised
    """

    device: BLEDevice
    name: str | None
    rssi: int | None
    advertises_control_service: bool

    @property
    def address(self) -> str:
        return self.device.address


async def discover_devices(timeout: float = 10.0) -> list[DiscoveredDevice]:
    """Scan for nearby BLE devices.

    The scan is not filtered on the HHI service: firmware does not always
    advertise it, so every device is returned and the ones that do are
    flagged and sorted first.

    Args:
        timeout: Scan duration in seconds (default: 10)

    Returns:
        Devices ordered by (advertises HHI service, RSSI) descending
    """
    _LOGGER.debug("Scanning for BLE devices (%.1fs)", timeout)
    found = await BleakScanner.discover(timeout=timeout, return_adv=True)

    results: list[DiscoveredDevice] = []
    for device, adv in found.values():
        service_uuids = {uuid.lower() for uuid in adv.service_uuids or []}
        results.append(
            DiscoveredDevice(
                device=device,
                name=adv.local_name or device.name,
                rssi=adv.rssi,
                advertises_control_service=SERVICE_UUID.lower() in service_uuids,
            )
        )

    results.sort(
        key=lambda d: (d.advertises_control_service, d.rssi if d.rssi is not None else -999),
        reverse=True,
    )

    _LOGGER.debug(
        "Found %d devices (%d advertising HHI service)",
        len(results),
        sum(1 for d in results if d.advertises_control_service),
    )
    return results


def choose_first_hhi(candidates: list[DiscoveredDevice]) -> DiscoveredDevice | None:
    """Default chooser: the strongest device advertising the HHI service.

    Falls back to the strongest device overall, since some firmware does not
    advertise the service UUID. Returns None only for an empty scan.
    """
    for candidate in candidates:
        if candidate.advertises_control_service:
            return candidate
    if candidates:
        _LOGGER.debug("No device advertises the HHI service; using strongest signal")
        return max(candidates, key=lambda d: d.rssi if d.rssi is not None else -999)
    return None
