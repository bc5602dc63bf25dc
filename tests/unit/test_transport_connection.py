"""Test SessionManager lifecycle with a patched bleak-retry-connector."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from hhi_ble.discovery import DiscoveredDevice
from hhi_ble.exceptions import BLETimeoutError, ConnectionFailed, DiscoveryCancelled
from hhi_ble.transport import SessionManager, SessionState


@pytest.mark.asyncio
async def test_connect_reaches_ready(ble_device, client, patch_connect) -> None:
    """connect() walks every state up to READY."""
    calls = patch_connect(client)
    manager = SessionManager(ble_device=ble_device, max_attempts=2, timeout=5.0)
    states = []
    manager.add_state_listener(states.append)

    session = await manager.connect()

    assert manager.state is SessionState.READY
    assert states == [
        SessionState.DISCOVERING,
        SessionState.CONNECTING,
        SessionState.SERVICE_RESOLVING,
        SessionState.READY,
    ]
    assert session.is_valid
    assert session.battery_service is not None
    assert calls[0]["device"] is ble_device
    assert calls[0]["max_attempts"] == 2
    assert calls[0]["timeout"] == 5.0


@pytest.mark.asyncio
async def test_connect_when_ready_is_noop(ble_device, client, patch_connect) -> None:
    """connect() while READY returns the existing session."""
    calls = patch_connect(client)
    manager = SessionManager(ble_device=ble_device)

    first = await manager.connect()
    second = await manager.connect()

    assert first is second
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_missing_control_service_fails(ble_device, make_client, patch_connect) -> None:
    """A device without the control service is disconnected and rejected."""
    client = make_client(control=False)
    patch_connect(client)
    manager = SessionManager(ble_device=ble_device)

    with pytest.raises(ConnectionFailed, match="not found"):
        await manager.connect()

    assert manager.state is SessionState.DISCONNECTED
    assert manager.session is None
    assert client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_missing_battery_service_is_tolerated(ble_device, make_client, patch_connect) -> None:
    """The battery service is optional."""
    patch_connect(make_client(battery=False))
    manager = SessionManager(ble_device=ble_device)

    session = await manager.connect()

    assert session.battery_service is None
    assert manager.state is SessionState.READY


@pytest.mark.asyncio
async def test_platform_error_becomes_connection_failed(ble_device, patch_connect) -> None:
    """Connect errors are wrapped in ConnectionFailed."""
    patch_connect(OSError("Adapter powered off"))
    manager = SessionManager(ble_device=ble_device)

    with pytest.raises(ConnectionFailed, match="Adapter powered off"):
        await manager.connect()
    assert manager.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_timeout_becomes_ble_timeout(ble_device, patch_connect) -> None:
    """Connect timeouts become BLETimeoutError."""
    patch_connect(asyncio.TimeoutError())
    manager = SessionManager(ble_device=ble_device, timeout=3.0)

    with pytest.raises(BLETimeoutError, match="3.0s"):
        await manager.connect()
    assert manager.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_chooser_declining_cancels(monkeypatch, patch_connect, client) -> None:
    """A chooser returning None cancels discovery."""
    calls = patch_connect(client)
    candidate = DiscoveredDevice(
        device=SimpleNamespace(address="11:22:33:44:55:66", name="other"),
        name="other",
        rssi=-60,
        advertises_control_service=False,
    )

    async def _discover_devices(timeout: float = 10.0):
        return [candidate]

    monkeypatch.setattr("hhi_ble.transport.connection.discover_devices", _discover_devices)
    seen = []

    def _chooser(candidates):
        seen.extend(candidates)
        return None

    manager = SessionManager(chooser=_chooser)

    with pytest.raises(DiscoveryCancelled):
        await manager.connect()

    assert seen == [candidate]
    assert calls == []
    assert manager.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_async_chooser_selects_device(monkeypatch, patch_connect, client) -> None:
    """Awaitable choosers are supported."""
    calls = patch_connect(client)
    device = SimpleNamespace(address="AA:BB:CC:DD:EE:FF", name="HHI-01")
    candidate = DiscoveredDevice(device=device, name="HHI-01", rssi=-40, advertises_control_service=True)

    async def _discover_devices(timeout: float = 10.0):
        return [candidate]

    async def _chooser(candidates):
        return candidates[0]

    monkeypatch.setattr("hhi_ble.transport.connection.discover_devices", _discover_devices)
    manager = SessionManager(chooser=_chooser)

    await manager.connect()

    assert calls[0]["device"] is device


@pytest.mark.asyncio
async def test_mac_address_not_found(monkeypatch, patch_connect, client) -> None:
    """An address that is not seen in the scan fails."""
    patch_connect(client)

    async def _find_device_by_address(address, timeout=10.0):
        return None

    monkeypatch.setattr(
        "hhi_ble.transport.connection.BleakScanner.find_device_by_address",
        _find_device_by_address,
    )
    manager = SessionManager(mac_address="AA:BB:CC:DD:EE:FF")

    with pytest.raises(ConnectionFailed, match="not found during scan"):
        await manager.connect()


@pytest.mark.asyncio
async def test_link_drop_invalidates_session(ble_device, client, patch_connect) -> None:
    """A link drop invalidates the session and notifies listeners."""
    patch_connect(client)
    manager = SessionManager(ble_device=ble_device)
    ended = []
    manager.add_disconnect_listener(ended.append)
    session = await manager.connect()

    client.drop_link()

    assert not session.is_valid
    assert manager.state is SessionState.DISCONNECTED
    assert manager.session is None
    assert ended == [session]


@pytest.mark.asyncio
async def test_disconnect_closes_client(ble_device, client, patch_connect) -> None:
    """disconnect() closes the client and invalidates the session."""
    patch_connect(client)
    manager = SessionManager(ble_device=ble_device)
    ended = []
    manager.add_disconnect_listener(ended.append)
    session = await manager.connect()

    await manager.disconnect()

    assert client.disconnect_calls == 1
    assert not session.is_valid
    assert ended == [session]
    assert manager.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnect_produces_new_session(ble_device, make_client, patch_connect) -> None:
    """reconnect() replaces the session for the same device."""
    first_client = make_client()
    second_client = make_client()
    calls = patch_connect(first_client, second_client)
    manager = SessionManager(ble_device=ble_device)
    first = await manager.connect()

    second = await manager.reconnect()

    assert second is not first
    assert not first.is_valid
    assert second.is_valid
    assert [c["device"] for c in calls] == [ble_device, ble_device]


@pytest.mark.asyncio
async def test_reconnect_without_previous_device() -> None:
    """reconnect() needs a device from an earlier connect."""
    manager = SessionManager(mac_address="AA:BB:CC:DD:EE:FF")

    with pytest.raises(ConnectionFailed, match="No previous device"):
        await manager.reconnect()


@pytest.mark.asyncio
async def test_context_manager(ble_device, client, patch_connect) -> None:
    """The async context manager connects and disconnects."""
    patch_connect(client)

    async with SessionManager(ble_device=ble_device) as manager:
        assert manager.is_connected

    assert not manager.is_connected
    assert client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_disconnect_during_connect_cancels_it(monkeypatch, ble_device, client) -> None:
    """disconnect() while establish_connection is pending aborts that connect."""
    started = asyncio.Event()
    release = asyncio.Event()

    async def _establish_connection(**kwargs):
        started.set()
        await release.wait()
        client.disconnected_callback = kwargs["disconnected_callback"]
        return client

    monkeypatch.setattr(
        "hhi_ble.transport.connection.establish_connection",
        _establish_connection,
    )
    manager = SessionManager(ble_device=ble_device)
    connect_task = asyncio.create_task(manager.connect())
    await started.wait()

    await manager.disconnect()
    release.set()

    with pytest.raises(ConnectionFailed, match="Disconnected during connect"):
        await connect_task
    assert manager.state is SessionState.DISCONNECTED
    assert manager.session is None
    assert client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_connect_after_cancelled_connect_owns_state(monkeypatch, ble_device, make_client) -> None:
    """A connect started after disconnect() is not undone by the stale one."""
    stale_client = make_client()
    fresh_client = make_client()
    release = asyncio.Event()
    started = asyncio.Event()

    async def _establish_connection(**kwargs):
        if not started.is_set():
            started.set()
            await release.wait()
            result = stale_client
        else:
            result = fresh_client
        result.disconnected_callback = kwargs["disconnected_callback"]
        return result

    monkeypatch.setattr(
        "hhi_ble.transport.connection.establish_connection",
        _establish_connection,
    )
    manager = SessionManager(ble_device=ble_device)
    stale_task = asyncio.create_task(manager.connect())
    await started.wait()
    await manager.disconnect()

    session = await manager.connect()
    release.set()
    with pytest.raises(ConnectionFailed):
        await stale_task

    assert manager.state is SessionState.READY
    assert manager.session is session
    assert session.client is fresh_client
    assert stale_client.disconnect_calls == 1


@pytest.mark.asyncio
async def test_default_chooser_falls_back_to_unadvertised_device(monkeypatch, patch_connect, client) -> None:
    """Firmware that does not advertise the service is still picked by default."""
    calls = patch_connect(client)
    device = SimpleNamespace(address="AA:BB:CC:DD:EE:FF", name="HHI")
    candidate = DiscoveredDevice(device=device, name="HHI", rssi=-55, advertises_control_service=False)

    async def _discover_devices(timeout: float = 10.0):
        return [candidate]

    monkeypatch.setattr("hhi_ble.transport.connection.discover_devices", _discover_devices)
    manager = SessionManager()

    await manager.connect()

    assert calls[0]["device"] is device
    assert manager.state is SessionState.READY


@pytest.mark.asyncio
async def test_empty_scan_is_connection_failed(monkeypatch, patch_connect, client) -> None:
    """No devices in range is a connection failure, not a cancelled picker."""
    calls = patch_connect(client)

    async def _discover_devices(timeout: float = 10.0):
        return []

    monkeypatch.setattr("hhi_ble.transport.connection.discover_devices", _discover_devices)
    manager = SessionManager()

    with pytest.raises(ConnectionFailed, match="No BLE devices found") as exc_info:
        await manager.connect()

    assert not isinstance(exc_info.value, DiscoveryCancelled)
    assert calls == []
    assert manager.state is SessionState.DISCONNECTED
