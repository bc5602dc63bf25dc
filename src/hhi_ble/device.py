"""Main HHI BLE device class."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from .exceptions import (
    ConnectionFailed,
    DiscoveryCancelled,
    EncodingError,
    RegisterAccessError,
    SessionClosed,
)
from .models import (
    ConfigState,
    LogEntry,
    OperatingMode,
    SaveReport,
    StateChange,
    StatusState,
    StimulationCommand,
    SyncReport,
)
from .protocol import RegisterId, describe
from .sync import CONFIG_FIELDS, StateSynchronizer
from .transport import DeviceSession, SessionManager, SessionState, read_register, write_register

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice

    from .transport.connection import Chooser

_LOGGER = logging.getLogger(__name__)

STIMULATION_REGISTERS: tuple[RegisterId, ...] = (
    RegisterId.STIM_AMPLITUDE,
    RegisterId.STIM_FREQUENCY,
    RegisterId.STIM_PULSE_WIDTH,
    RegisterId.STIM_DURATION,
    RegisterId.STIM_PULSE_COUNT,
    RegisterId.EMG_THRESHOLD,
    RegisterId.TRIGGER_ENABLE,
)

NETWORK_REGISTERS: tuple[RegisterId, ...] = (
    RegisterId.WIFI_SSID,
    RegisterId.WIFI_PASSWORD,
    RegisterId.MQTT_SERVER,
    RegisterId.MASTER_NAME,
    RegisterId.MINION_NAME,
)


class HHIDevice:
    """HHI neurostimulation wearable over BLE.

    Main API: connects, mirrors device registers into :attr:`config` and
    :attr:`status`, and writes configuration back.

    Usage:
        async with HHIDevice("AA:BB:CC:DD:EE:FF") as device:
            device.config.stim_amplitude = 1500
            await device.save_stimulation_settings()

        # Let the user pick from a scan
        device = HHIDevice(chooser=pick_from_list)
        await device.connect()
    """

    def __init__(
            self,
            mac_address: str | None = None,
            ble_device: BLEDevice | None = None,
            chooser: Chooser | None = None,
            config: ConfigState | None = None,
            status: StatusState | None = None,
            timeout: float = 10.0,
            scan_timeout: float = 10.0,
            max_attempts: int = 4,
            use_services_cache: bool = True,
    ):
        """Initialize HHI device.

        Args:
            mac_address: Optional device MAC address
            ble_device: Optional BLEDevice from an external scanner
            chooser: Optional device picker for scan results
            config: Optional ConfigState to populate (default: fresh defaults)
            status: Optional StatusState to populate (default: fresh defaults)
            timeout: BLE connection timeout in seconds (default: 10)
            scan_timeout: Discovery scan duration in seconds (default: 10)
            max_attempts: Connection attempts for bleak-retry-connector (default: 4)
            use_services_cache: Enable GATT service caching (default: True)
        """
        self._manager = SessionManager(
            mac_address=mac_address,
            ble_device=ble_device,
            chooser=chooser,
            timeout=timeout,
            scan_timeout=scan_timeout,
            max_attempts=max_attempts,
            use_services_cache=use_services_cache,
        )
        self._sync = StateSynchronizer(config, status)
        self._synced_session: DeviceSession | None = None
        self._manager.add_disconnect_listener(self._on_session_ended)

    async def __aenter__(self) -> HHIDevice:
        """Connect and read device state."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Disconnect from device."""
        await self.disconnect()

    @property
    def config(self) -> ConfigState:
        """Configuration mirror; set fields here, then call a save method."""
        return self._sync.config

    @property
    def status(self) -> StatusState:
        """Status mirror (battery, connectivity, IP, stimulation active)."""
        return self._sync.status

    @property
    def state(self) -> SessionState:
        return self._manager.state

    @property
    def is_connected(self) -> bool:
        return self._manager.is_connected

    @property
    def operating_mode(self) -> OperatingMode | int:
        """Current operating mode, as an OperatingMode when the value is known."""
        try:
            return OperatingMode(self._sync.current_mode)
        except ValueError:
            return self._sync.current_mode

    @property
    def stimulation_relevant(self) -> bool:
        """Whether stimulation settings apply in the current mode (custom only)."""
        return self._sync.stimulation_relevant

    @property
    def network_relevant(self) -> bool:
        """Whether network identity settings apply in the current mode."""
        return self._sync.network_relevant

    def add_state_listener(self, callback: Callable[[StateChange], None]) -> Callable[[], None]:
        """Subscribe to state changes (for UI binding)."""
        return self._sync.add_state_listener(callback)

    def add_log_listener(self, callback: Callable[[LogEntry], None]) -> Callable[[], None]:
        """Subscribe to diagnostic log entries."""
        return self._sync.add_log_listener(callback)

    def add_session_state_listener(self, callback: Callable[[SessionState], None]) -> Callable[[], None]:
        """Subscribe to connection lifecycle transitions."""
        return self._manager.add_state_listener(callback)

    async def connect(self) -> SyncReport:
        """Connect, read all registers and arm notifications.

        Calling connect() on an already synchronized session is a no-op.

        Returns:
            SyncReport of the initial read pass

        Raises:
            DiscoveryCancelled: If the user declined the device picker
            ConnectionFailed: If the connection or service resolution fails
        """
        try:
            session = await self._manager.connect()
        except DiscoveryCancelled as e:
            self._sync.log(logging.INFO, "Device selection cancelled: %s", e, error=e)
            raise
        except ConnectionFailed as e:
            self._sync.log(logging.ERROR, "Failed to connect: %s", e, error=e)
            raise

        if session is self._synced_session:
            return SyncReport()

        return await self._synchronize(session)

    async def reconnect(self) -> SyncReport:
        """Reconnect to the last device and resynchronize.

        Raises:
            ConnectionFailed: If reconnecting fails
        """
        try:
            session = await self._manager.reconnect()
        except ConnectionFailed as e:
            self._sync.log(logging.ERROR, "Failed to reconnect: %s", e, error=e)
            raise
        return await self._synchronize(session)

    async def disconnect(self) -> None:
        """Disconnect from device."""
        await self._manager.disconnect()

    async def read(self, register_id: int) -> Any:
        """Read one register and store it in the state mirrors.

        Raises:
            RegisterAccessError: If the register is unavailable or the read fails
            EncodingError: If the payload is malformed
            CapabilityViolation: If the register is not readable
        """
        session = self._require_session()
        try:
            value = await read_register(session, register_id)
        except (RegisterAccessError, EncodingError, SessionClosed) as e:
            self._sync.log(
                logging.ERROR,
                "Failed to read %s: %s",
                describe(register_id),
                e,
                register=register_id,
                error=e,
            )
            raise
        self._sync.apply(register_id, value, "read")
        return value

    async def write(self, register_id: int, value: Any) -> None:
        """Write one register and record it in ConfigState.

        Raises:
            EncodingError: If the value is out of range (nothing is sent)
            RegisterAccessError: If the register is unavailable or the write fails
            CapabilityViolation: If the register is not writable
        """
        session = self._require_session()
        try:
            await write_register(session, register_id, value)
        except (RegisterAccessError, EncodingError, SessionClosed) as e:
            self._sync.log(
                logging.ERROR,
                "Failed to write %s: %s",
                describe(register_id),
                e,
                register=register_id,
                error=e,
            )
            raise
        self._sync.record_write(register_id, value)

    async def save_operating_mode(self, mode: OperatingMode | int | None = None) -> None:
        """Write the operating mode (default: the value in config)."""
        value = int(self.config.operating_mode if mode is None else mode)
        await self.write(RegisterId.OPERATING_MODE, value)
        self._sync.log(logging.INFO, "Operating Mode updated to %d", value, register=RegisterId.OPERATING_MODE)

    async def save_stimulation_settings(self) -> SaveReport:
        """Write amplitude, frequency, pulse width, duration, pulse count, EMG threshold and trigger mask."""
        return await self._save_batch("Stimulation settings", STIMULATION_REGISTERS)

    async def save_network_settings(self) -> SaveReport:
        """Write Wi-Fi, MQTT and peer name settings.

        The password is only sent when the write buffer is not blank.
        """
        registers: Iterable[RegisterId] = NETWORK_REGISTERS
        if not self.config.wifi_password.strip():
            registers = [r for r in NETWORK_REGISTERS if r != RegisterId.WIFI_PASSWORD]
        return await self._save_batch("Wi-Fi/MQTT settings", registers)

    async def trigger_stimulation(self) -> None:
        """Start stimulation."""
        await self.write(RegisterId.TRIGGER_STIMULATION, int(StimulationCommand.START))
        self._sync.log(logging.INFO, "Stimulation triggered!", register=RegisterId.TRIGGER_STIMULATION)

    async def stop_stimulation(self) -> None:
        """Stop stimulation (needed for unbounded pulse counts)."""
        await self.write(RegisterId.TRIGGER_STIMULATION, int(StimulationCommand.STOP))
        self._sync.log(logging.INFO, "Stimulation stopped.", register=RegisterId.TRIGGER_STIMULATION)

    async def _synchronize(self, session: DeviceSession) -> SyncReport:
        _LOGGER.debug("Synchronizing state from %s", session.address)
        try:
            report = await self._sync.initial_read(session)
            await self._sync.arm_notifications(session)
        except SessionClosed as e:
            self._sync.log(logging.ERROR, "Connection lost during synchronization: %s", e, error=e)
            raise
        self._synced_session = session
        self._sync.log(logging.INFO, "Connected and ready!")
        return report

    async def _save_batch(self, label: str, register_ids: Iterable[RegisterId]) -> SaveReport:
        session = self._require_session()
        report = SaveReport()
        for register_id in register_ids:
            value = getattr(self.config, CONFIG_FIELDS[register_id])
            try:
                await write_register(session, register_id, value)
            except SessionClosed as e:
                self._sync.log(logging.ERROR, "Failed to write %s: %s", label, e, register=register_id, error=e)
                raise
            except (RegisterAccessError, EncodingError) as e:
                report.failed[register_id] = e
                self._sync.log(
                    logging.WARNING,
                    "Unable to write %s: %s",
                    describe(register_id),
                    e,
                    register=register_id,
                    error=e,
                )
                continue
            self._sync.record_write(register_id, value)
            report.written.append(register_id)

        if report.ok:
            self._sync.log(logging.INFO, "%s updated successfully.", label)
        else:
            self._sync.log(
                logging.WARNING,
                "%s partially written (%d failed).",
                label,
                len(report.failed),
            )
        return report

    def _require_session(self) -> DeviceSession:
        session = self._manager.session
        if session is None or not session.is_valid:
            raise SessionClosed("Device not connected")
        return session

    def _on_session_ended(self, session: DeviceSession) -> None:
        if session is self._synced_session:
            self._synced_session = None
        self._sync.handle_disconnect(session)

