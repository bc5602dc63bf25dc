"""Typed register read/write/subscribe over a DeviceSession."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..exceptions import (
    EncodingError,
    NotificationSetupFailed,
    RegisterAccessError,
    RegisterUnavailable,
    SessionClosed,
    TransferFailed,
)
from ..protocol import (
    Access,
    Register,
    catalog,
    decode_register,
    describe,
    encode_register,
    require_access,
)

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic

    from .connection import DeviceSession

_LOGGER = logging.getLogger(__name__)

_NOTIFY_PROPERTIES = frozenset({"notify", "indicate"})


def _ensure_valid(session: DeviceSession, action: str, register: Register) -> None:
    if not session.is_valid:
        raise SessionClosed(
            f"Cannot {action} {describe(register.id)}: session is closed"
        )


def _resolve_characteristic(
        session: DeviceSession,
        register: Register,
) -> BleakGATTCharacteristic:
    """Find the characteristic for ``register`` in the session's services.

    Raises:
        RegisterUnavailable: If the service or characteristic is absent
    """
    service = session.service_for(register)
    if service is None:
        raise RegisterUnavailable(
            f"{register.service.value} service not available for {describe(register.id)}",
            register.id,
        )

    characteristic = service.get_characteristic(register.uuid)
    if characteristic is None:
        raise RegisterUnavailable(
            f"Characteristic {describe(register.id)} not exposed by device",
            register.id,
        )
    return characteristic


def _classify(
        session: DeviceSession,
        register: Register,
        action: str,
        error: Exception,
) -> Exception:
    """Map a platform error onto the driver taxonomy."""
    if not session.is_valid:
        return SessionClosed(
            f"Session closed during {action} of {describe(register.id)}: {error}"
        )
    return TransferFailed(
        f"{action.capitalize()} of {describe(register.id)} failed: {error}",
        register.id,
    )


async def read_register(session: DeviceSession, register_id: int) -> int | str:
    """Read and decode one register.

    Raises:
        CapabilityViolation: If the register is not readable
        SessionClosed: If the session is (or becomes) invalid
        RegisterUnavailable: If the device does not expose the register
        TransferFailed: If the platform rejects the read
        EncodingError: If the payload is too short for the wire type
    """
    register = catalog(register_id)
    require_access(register, Access.READ)
    _ensure_valid(session, "read", register)
    characteristic = _resolve_characteristic(session, register)

    try:
        data = await session.client.read_gatt_char(characteristic)
    except Exception as e:
        raise _classify(session, register, "read", e) from e

    value = decode_register(register, data)
    _LOGGER.debug("Read %s: %r", describe(register.id), value)
    return value


async def write_register(session: DeviceSession, register_id: int, value: int | str) -> None:
    """Validate, encode and write one register.

    Validation happens before any transport call, so an out-of-range value
    never reaches the device.

    Raises:
        CapabilityViolation: If the register is not writable
        EncodingError: If the value is out of range or too long
        SessionClosed: If the session is (or becomes) invalid
        RegisterUnavailable: If the device does not expose the register
        TransferFailed: If the platform rejects the write
    """
    register = catalog(register_id)
    require_access(register, Access.WRITE)
    data = encode_register(register, value)
    _ensure_valid(session, "write", register)
    characteristic = _resolve_characteristic(session, register)

    _LOGGER.debug(
        "Writing %s: %s (%s)",
        describe(register.id),
        "[REDACTED]" if register.secret else repr(value),
        "[REDACTED]" if register.secret else data.hex(),
    )
    try:
        await session.client.write_gatt_char(
            characteristic,
            data,
            response=register.write_with_response,
        )
    except Exception as e:
        raise _classify(session, register, "write", e) from e


async def subscribe(
        session: DeviceSession,
        register_id: int,
        on_change: Callable[[Any], None],
        on_error: Callable[[RegisterAccessError | EncodingError], None] | None = None,
) -> None:
    """Enable notifications and deliver decoded values to ``on_change``.

    The subscription belongs to ``session``: once the session is
    invalidated no further values are delivered.

    Args:
        session: Live device session
        register_id: Register to subscribe to
        on_change: Called with each decoded value
        on_error: Called with malformed-payload errors instead of ``on_change``

    Raises:
        CapabilityViolation: If the register is not declared notifiable
        SessionClosed: If the session is (or becomes) invalid
        RegisterUnavailable: If the characteristic is absent or cannot notify
        NotificationSetupFailed: If the device rejects the subscription
    """
    register = catalog(register_id)
    require_access(register, Access.NOTIFY)
    _ensure_valid(session, "subscribe to", register)
    characteristic = _resolve_characteristic(session, register)

    properties = {p.lower() for p in characteristic.properties or []}
    if not properties & _NOTIFY_PROPERTIES:
        raise RegisterUnavailable(
            f"Characteristic {describe(register.id)} does not support notifications",
            register.id,
        )

    def _notification_callback(sender: Any, data: bytearray) -> None:
        if not session.is_valid:
            _LOGGER.debug("Dropping notification on %s: session closed", describe(register.id))
            return
        try:
            value = decode_register(register, data)
        except EncodingError as e:
            if on_error is None:
                _LOGGER.warning("Malformed notification on %s: %s", describe(register.id), e)
            else:
                on_error(e)
            return
        _LOGGER.debug("Notification %s: %r", describe(register.id), value)
        on_change(value)

    try:
        await session.client.start_notify(characteristic, _notification_callback)
    except Exception as e:
        if not session.is_valid:
            raise SessionClosed(
                f"Session closed while subscribing to {describe(register.id)}: {e}"
            ) from e
        raise NotificationSetupFailed(
            f"Device rejected notifications on {describe(register.id)}: {e}",
            register.id,
        ) from e

    session.add_subscription(register.id)
    _LOGGER.debug("Notifications started for %s", describe(register.id))
