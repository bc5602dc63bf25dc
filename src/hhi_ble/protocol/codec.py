"""Wire encoding for HHI registers.

All multi-byte integers are little-endian. Strings are raw UTF-8 with no
length prefix and no terminator; the attribute length carries the string
length.
"""

from __future__ import annotations

import struct

from ..exceptions import EncodingError
from .registers import UINT8_MAX, UINT16_MAX, Register, WireType


def encode(value: int | str, wire_type: WireType, max_length: int | None = None) -> bytes:
    """Encode an application value into register bytes.

    Args:
        value: Integer for UINT8/UINT16_LE, str for UTF8
        wire_type: Target wire type
        max_length: Maximum encoded byte length (UTF8 only)

    Returns:
        Encoded payload (1 byte, 2 bytes LSB first, or UTF-8 bytes)

    Raises:
        EncodingError: On type mismatch or string longer than max_length
    """
    if wire_type is WireType.UTF8:
        if not isinstance(value, str):
            raise EncodingError(f"Expected str for {wire_type.value}, got {type(value).__name__}")
        data = value.encode("utf-8")
        if max_length is not None and len(data) > max_length:
            raise EncodingError(
                f"String too long: {len(data)} bytes (max {max_length})"
            )
        return data

    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"Expected int for {wire_type.value}, got {type(value).__name__}")

    if wire_type is WireType.UINT8:
        return bytes([value & UINT8_MAX])
    if wire_type is WireType.UINT16_LE:
        return struct.pack("<H", value & UINT16_MAX)

    raise EncodingError(f"Unsupported wire type: {wire_type!r}")


def decode(data: bytes | bytearray, wire_type: WireType) -> int | str:
    """Decode register bytes into an application value.

    Invalid UTF-8 sequences are replaced with U+FFFD rather than failing.

    Raises:
        EncodingError: If payload is shorter than the wire type requires
    """
    if wire_type is WireType.UTF8:
        return bytes(data).decode("utf-8", errors="replace")

    if wire_type is WireType.UINT8:
        if len(data) < 1:
            raise EncodingError("uint8 payload is empty")
        return data[0]
    if wire_type is WireType.UINT16_LE:
        if len(data) < 2:
            raise EncodingError(f"uint16 payload too short: {len(data)} bytes (need 2)")
        return struct.unpack("<H", bytes(data[0:2]))[0]

    raise EncodingError(f"Unsupported wire type: {wire_type!r}")


def validate(register: Register, value: int | str) -> None:
    """Check a value against the register's declared range or length.

    Raises:
        EncodingError: If the value cannot be written to ``register``
    """
    if register.wire_type is WireType.UTF8:
        # length is enforced by encode()
        if not isinstance(value, str):
            raise EncodingError(
                f"{register.name} expects str, got {type(value).__name__}"
            )
        return

    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(
            f"{register.name} expects int, got {type(value).__name__}"
        )

    if register.encoded_range is None:
        return

    low, high = register.encoded_range
    if low <= value <= high or value in register.sentinels:
        return

    allowed = f"{low}-{high}"
    if register.sentinels:
        allowed += " or " + ", ".join(f"0x{s:X}" for s in sorted(register.sentinels))
    raise EncodingError(
        f"{register.name} out of range: {value} (must be {allowed})"
    )


def encode_register(register: Register, value: int | str) -> bytes:
    """Validate and encode ``value`` for ``register``."""
    validate(register, value)
    return encode(value, register.wire_type, register.max_length)


def decode_register(register: Register, data: bytes | bytearray) -> int | str:
    """Decode a payload read or notified from ``register``."""
    return decode(data, register.wire_type)
