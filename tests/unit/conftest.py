"""Shared fakes standing in for bleak clients, services and characteristics."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from types import SimpleNamespace

import pytest
from bleak.uuids import normalize_uuid_16

from hhi_ble.protocol import (
    BATTERY_SERVICE_UUID,
    CATALOG,
    SERVICE_UUID,
    RegisterId,
    ServiceKind,
)
from hhi_ble.transport import DeviceSession

DEVICE_ADDRESS = "AA:BB:CC:DD:EE:FF"

# Register payloads as a device in custom mode would report them
DEVICE_VALUES: dict[int, bytes] = {
    RegisterId.OPERATING_MODE: b"\x03",
    RegisterId.STIM_AMPLITUDE: b"\xB0\x04",  # 1200
    RegisterId.STIM_FREQUENCY: b"\x14",  # 20 Hz
    RegisterId.STIM_PULSE_WIDTH: b"\x2C\x01",  # 300 us
    RegisterId.STIM_DURATION: b"\x0A",  # 1 s
    RegisterId.STIM_PULSE_COUNT: b"\x2C\x01",  # 300
    RegisterId.EMG_THRESHOLD: b"\x02",
    RegisterId.TRIGGER_ENABLE: b"\x03",
    RegisterId.CONNECTIVITY: b"\x01",
    RegisterId.IP_ADDRESS: b"192.168.1.20",
    RegisterId.WIFI_SSID: b"lab-net",
    RegisterId.MQTT_SERVER: b"mqtt.local:1883",
    RegisterId.MASTER_NAME: b"hhi-master",
    RegisterId.MINION_NAME: b"hhi-minion",
    RegisterId.CURRENT_AMPLITUDE: b"\xB0\x04",
    RegisterId.CURRENT_EMG_THRESHOLD: b"\x02",
    RegisterId.STIM_ACTIVE: b"\x00",
    RegisterId.BATTERY_LEVEL: b"\x57",  # 87 %
}


def uuid_of(register_id: int) -> str:
    return normalize_uuid_16(register_id)


class FakeCharacteristic:
    def __init__(self, register_id: int, properties: list[str]):
        self.register_id = register_id
        self.uuid = uuid_of(register_id)
        self.properties = properties


class FakeService:
    def __init__(self, uuid: str, characteristics: Iterable[FakeCharacteristic]):
        self.uuid = uuid
        self._characteristics = {c.uuid: c for c in characteristics}

    def get_characteristic(self, uuid: str) -> FakeCharacteristic | None:
        return self._characteristics.get(uuid.lower())


class FakeServiceCollection:
    def __init__(self, services: Iterable[FakeService]):
        self._services = {s.uuid: s for s in services}

    def get_service(self, uuid: str) -> FakeService | None:
        return self._services.get(uuid.lower())


class FakeClient:
    """Minimal BleakClient replacement recording all GATT traffic."""

    def __init__(self, values: dict[int, bytes], services: FakeServiceCollection):
        self.address = DEVICE_ADDRESS
        self.is_connected = True
        self.services = services
        self.values = {uuid_of(k): bytes(v) for k, v in values.items()}
        self.reads: list[str] = []
        self.writes: list[tuple[str, bytes, bool]] = []
        self.read_errors: dict[str, Exception] = {}
        self.write_errors: dict[str, Exception] = {}
        self.notify_errors: dict[str, Exception] = {}
        self.callbacks: dict[str, Callable] = {}
        self.disconnect_calls = 0
        self.disconnected_callback: Callable | None = None

    async def read_gatt_char(self, characteristic: FakeCharacteristic) -> bytearray:
        self.reads.append(characteristic.uuid)
        if characteristic.uuid in self.read_errors:
            raise self.read_errors[characteristic.uuid]
        return bytearray(self.values[characteristic.uuid])

    async def write_gatt_char(self, characteristic, data: bytes, response: bool = False) -> None:
        if characteristic.uuid in self.write_errors:
            raise self.write_errors[characteristic.uuid]
        self.writes.append((characteristic.uuid, bytes(data), response))

    async def start_notify(self, characteristic, callback) -> None:
        if characteristic.uuid in self.notify_errors:
            raise self.notify_errors[characteristic.uuid]
        self.callbacks[characteristic.uuid] = callback

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._go_down()

    def notify(self, register_id: int, data: bytes) -> None:
        """Deliver a notification the way bleak would."""
        uuid = uuid_of(register_id)
        self.callbacks[uuid](uuid, bytearray(data))

    def drop_link(self) -> None:
        """Simulate an unsolicited link loss."""
        self._go_down()

    def _go_down(self) -> None:
        was_connected = self.is_connected
        self.is_connected = False
        if was_connected and self.disconnected_callback is not None:
            self.disconnected_callback(self)

    def written(self, register_id: int) -> list[bytes]:
        uuid = uuid_of(register_id)
        return [data for u, data, _ in self.writes if u == uuid]


def _properties(register) -> list[str]:
    props = []
    if register.readable:
        props.append("read")
    if register.writable:
        props.append("write" if register.write_with_response else "write-without-response")
    if register.notifiable:
        props.append("notify")
    return props


def build_client(
        values: dict[int, bytes] | None = None,
        missing: Iterable[int] = (),
        no_notify: Iterable[int] = (),
        battery: bool = True,
        control: bool = True,
) -> FakeClient:
    """Build a fake client exposing the catalog, minus ``missing`` registers."""
    values = dict(DEVICE_VALUES if values is None else values)
    missing = set(missing)
    no_notify = set(no_notify)

    control_chars = []
    battery_chars = []
    for register in CATALOG.values():
        if register.id in missing:
            continue
        props = _properties(register)
        if register.id in no_notify:
            props = [p for p in props if p != "notify"]
        characteristic = FakeCharacteristic(register.id, props)
        if register.service is ServiceKind.BATTERY:
            battery_chars.append(characteristic)
        else:
            control_chars.append(characteristic)

    services = []
    if control:
        services.append(FakeService(SERVICE_UUID, control_chars))
    if battery:
        services.append(FakeService(BATTERY_SERVICE_UUID, battery_chars))
    return FakeClient(values, FakeServiceCollection(services))


def session_for(client: FakeClient) -> DeviceSession:
    return DeviceSession(
        client,
        client.services.get_service(SERVICE_UUID),
        client.services.get_service(BATTERY_SERVICE_UUID),
        address=client.address,
    )


@pytest.fixture
def make_client() -> Callable[..., FakeClient]:
    return build_client


@pytest.fixture
def make_session() -> Callable[[FakeClient], DeviceSession]:
    return session_for


@pytest.fixture
def client() -> FakeClient:
    return build_client()


@pytest.fixture
def session(client: FakeClient) -> DeviceSession:
    return session_for(client)


@pytest.fixture
def ble_device() -> SimpleNamespace:
    return SimpleNamespace(address=DEVICE_ADDRESS, name="HHI-01")


@pytest.fixture
def patch_connect(monkeypatch):
    """Replace establish_connection with one returning the given fake client.

    Returns a list that records each call's keyword arguments.
    """
    calls: list[dict] = []

    def _install(fake: FakeClient | Exception, *more: FakeClient):
        results = [fake, *more]

        async def _establish_connection(**kwargs):
            calls.append(kwargs)
            result = results.pop(0) if len(results) > 1 else results[0]
            if isinstance(result, BaseException):
                raise result
            result.is_connected = True
            result.disconnected_callback = kwargs["disconnected_callback"]
            return result

        monkeypatch.setattr(
            "hhi_ble.transport.connection.establish_connection",
            _establish_connection,
        )
        return calls

    return _install
