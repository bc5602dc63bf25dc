"""BLE session lifecycle management."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Union

from bleak import BleakClient, BleakScanner
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from ..discovery import DiscoveredDevice, choose_first_hhi, discover_devices
from ..exceptions import BLETimeoutError, ConnectionFailed, DiscoveryCancelled
from ..protocol import BATTERY_SERVICE_UUID, SERVICE_UUID, Register, ServiceKind

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.service import BleakGATTService

_LOGGER = logging.getLogger(__name__)

Chooser = Callable[
    [list[DiscoveredDevice]],
    Union[DiscoveredDevice, None, Awaitable[Union[DiscoveredDevice, None]]],
]


class SessionState(Enum):
    """Connection lifecycle states."""

    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    SERVICE_RESOLVING = "service_resolving"
    READY = "ready"


class DeviceSession:
    """One live connection to a device.

    Valid from a successful connect until the next disconnect or link drop.
    Invalidation is one-way; a reconnect produces a new session.
    """

    def __init__(
            self,
            client: BleakClient,
            service: BleakGATTService,
            battery_service: BleakGATTService | None = None,
            address: str = "",
    ):
        self.client = client
        self.service = service
        self.battery_service = battery_service
        self.address = address
        self._valid = True
        self._subscriptions: set[int] = set()

    @property
    def is_valid(self) -> bool:
        """True while the session may be used for register access."""
        return self._valid and self.client.is_connected

    @property
    def subscriptions(self) -> frozenset[int]:
        """Register ids with notifications armed in this session."""
        return frozenset(self._subscriptions)

    def service_for(self, register: Register) -> BleakGATTService | None:
        """GATT service a register lives in, if resolved."""
        if register.service is ServiceKind.BATTERY:
            return self.battery_service
        return self.service

    def add_subscription(self, register_id: int) -> None:
        self._subscriptions.add(register_id)

    def invalidate(self) -> None:
        """End the session; armed subscriptions stop delivering."""
        if self._valid:
            _LOGGER.debug(
                "Invalidating session for %s (%d subscriptions)",
                self.address,
                len(self._subscriptions),
            )
        self._valid = False
        self._subscriptions.clear()


class SessionManager:
    """Owns the BLE connection to one HHI device.

    Features:
    - Device picker via scan + chooser, or direct MAC/BLEDevice
    - Automatic retry logic with bleak-retry-connector
    - Service caching for faster reconnections
    - Link-drop detection with session invalidation
    - Context manager for automatic cleanup
    """

    def __init__(
            self,
            mac_address: str | None = None,
            ble_device: BLEDevice | None = None,
            chooser: Chooser | None = None,
            timeout: float = 10.0,
            scan_timeout: float = 10.0,
            max_attempts: int = 4,
            use_services_cache: bool = True,
    ):
        """Initialize session manager.

        Args:
            mac_address: Optional device MAC address (skips the chooser)
            ble_device: Optional BLEDevice from an external scanner (skips discovery)
            chooser: Callback picking one device from scan results; returning None
                cancels the connect (default: strongest device, preferring those
                advertising the HHI service)
            timeout: Connection timeout in seconds (default: 10)
            scan_timeout: Discovery scan duration in seconds (default: 10)
            max_attempts: Maximum connection attempts for bleak-retry-connector (default: 4)
            use_services_cache: Enable GATT service caching for faster reconnections (default: True)
        """
        self.mac_address = mac_address
        self.ble_device = ble_device
        self.chooser = chooser or choose_first_hhi
        self.timeout = timeout
        self.scan_timeout = scan_timeout
        self.max_attempts = max_attempts
        self.use_services_cache = use_services_cache

        self._state = SessionState.DISCONNECTED
        self._client: BleakClient | None = None
        self._session: DeviceSession | None = None
        self._last_device: BLEDevice | None = None
        self._generation = 0
        self._state_listeners: list[Callable[[SessionState], None]] = []
        self._disconnect_listeners: list[Callable[[DeviceSession], None]] = []

    async def __aenter__(self) -> SessionManager:
        """Connect to device (context manager entry)."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Disconnect from device (context manager exit)."""
        await self.disconnect()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> DeviceSession | None:
        """Current session, or None when not READY."""
        return self._session

    @property
    def is_connected(self) -> bool:
        """Check if a valid session exists."""
        return self._session is not None and self._session.is_valid

    def add_state_listener(self, callback: Callable[[SessionState], None]) -> Callable[[], None]:
        """Register a callback for state transitions. Returns an unsubscribe function."""
        self._state_listeners.append(callback)
        return lambda: self._state_listeners.remove(callback)

    def add_disconnect_listener(
            self, callback: Callable[[DeviceSession], None]
    ) -> Callable[[], None]:
        """Register a callback run when a session ends. Returns an unsubscribe function."""
        self._disconnect_listeners.append(callback)
        return lambda: self._disconnect_listeners.remove(callback)

    async def connect(self) -> DeviceSession:
        """Discover, connect and resolve services.

        Returns the existing session when already READY.

        Raises:
            DiscoveryCancelled: If the chooser declined every device
            ConnectionFailed: If connect or service resolution fails
            BLETimeoutError: If the connection times out
        """
        if self._state is SessionState.READY:
            if self.is_connected:
                return self._session
            # link died before bleak reported it
            self._teardown()
        if self._state is not SessionState.DISCONNECTED:
            raise ConnectionFailed(f"Connect already in progress (state={self._state.value})")

        return await self._establish(self._discover)

    async def reconnect(self) -> DeviceSession:
        """Drop the current session and connect again to the last device.

        Raises:
            ConnectionFailed: If no device has been connected before, or connect fails
        """
        await self.disconnect()
        device = self._last_device
        if device is None:
            raise ConnectionFailed("No previous device to reconnect to")

        async def _reuse() -> BLEDevice:
            return device

        _LOGGER.info("Reconnecting to %s", device.address)
        return await self._establish(_reuse)

    async def disconnect(self) -> None:
        """Disconnect from device and invalidate the session.

        Also cancels a connect that is still in progress.
        """
        self._generation += 1
        client = self._client
        self._teardown()
        if client is None:
            return
        try:
            _LOGGER.debug("Disconnecting from %s", client.address)
            await client.disconnect()
        except Exception as e:
            _LOGGER.warning("Error during disconnect: %s", e)

    async def _establish(self, resolve_device: Callable[[], Awaitable[BLEDevice]]) -> DeviceSession:
        client: BleakClient | None = None
        generation = self._generation
        try:
            self._set_state(SessionState.DISCOVERING)
            device = await resolve_device()
            self._check_cancelled(generation)
            self._last_device = device

            self._set_state(SessionState.CONNECTING)
            _LOGGER.debug(
                "Connecting to %s with bleak-retry-connector (max_attempts=%d)",
                device.address,
                self.max_attempts,
            )
            client = await establish_connection(
                client_class=BleakClientWithServiceCache,
                device=device,
                name=device.name or device.address,
                disconnected_callback=self._on_disconnected,
                max_attempts=self.max_attempts,
                use_services_cache=self.use_services_cache,
                timeout=self.timeout,
            )
            self._check_cancelled(generation)
            self._client = client
            _LOGGER.debug("Connected to %s", device.address)

            self._set_state(SessionState.SERVICE_RESOLVING)
            session = self._resolve_services(client, device.address)

        except DiscoveryCancelled:
            if generation == self._generation:
                self._set_state(SessionState.DISCONNECTED)
            raise
        except ConnectionFailed:
            await self._abort(client, generation)
            raise
        except asyncio.TimeoutError as e:
            await self._abort(client, generation)
            raise BLETimeoutError(
                f"Connection timeout after {self.timeout}s"
            ) from e
        except Exception as e:
            await self._abort(client, generation)
            raise ConnectionFailed(
                f"Failed to connect: {e}"
            ) from e

        self._session = session
        self._set_state(SessionState.READY)
        _LOGGER.info("Session ready for %s", session.address)
        return session

    async def _discover(self) -> BLEDevice:
        if self.ble_device:
            return self.ble_device

        if self.mac_address:
            device = await BleakScanner.find_device_by_address(
                self.mac_address,
                timeout=self.scan_timeout,
            )
            if device is None:
                raise ConnectionFailed(
                    f"Device {self.mac_address} not found during scan"
                )
            return device

        candidates = await discover_devices(timeout=self.scan_timeout)
        if not candidates:
            raise ConnectionFailed("No BLE devices found during scan")
        choice = self.chooser(candidates)
        if inspect.isawaitable(choice):
            choice = await choice
        if choice is None:
            raise DiscoveryCancelled(
                f"No device selected ({len(candidates)} candidates)"
            )
        _LOGGER.debug("Selected %s (%s)", choice.address, choice.name)
        return choice.device

    def _resolve_services(self, client: BleakClient, address: str) -> DeviceSession:
        services = client.services
        service = services.get_service(SERVICE_UUID)
        if not service:
            raise ConnectionFailed(
                f"Service {SERVICE_UUID} not found"
            )

        battery_service = services.get_service(BATTERY_SERVICE_UUID)
        if battery_service is None:
            _LOGGER.debug("Battery service not present on %s", address)

        return DeviceSession(client, service, battery_service, address=address)

    def _check_cancelled(self, generation: int) -> None:
        if generation != self._generation:
            raise ConnectionFailed("Disconnected during connect")

    async def _abort(self, client: BleakClient | None, generation: int) -> None:
        # a newer connect owns the manager state once disconnect() ran
        if generation == self._generation:
            self._client = None
            self._set_state(SessionState.DISCONNECTED)
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            _LOGGER.warning("Error closing half-open connection: %s", e)

    def _on_disconnected(self, client: BleakClient) -> None:
        """bleak disconnected_callback; only acts on the current client."""
        if client is not self._client:
            return
        _LOGGER.warning("Link to %s dropped", client.address)
        self._teardown()

    def _teardown(self) -> None:
        session = self._session
        self._session = None
        self._client = None
        if session is not None:
            session.invalidate()
        self._set_state(SessionState.DISCONNECTED)
        if session is not None:
            for callback in list(self._disconnect_listeners):
                try:
                    callback(session)
                except Exception:
                    _LOGGER.exception("Disconnect listener failed")

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        _LOGGER.debug("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        for callback in list(self._state_listeners):
            try:
                callback(state)
            except Exception:
                _LOGGER.exception("State listener failed")
