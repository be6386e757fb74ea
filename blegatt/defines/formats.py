"""Canonical textual forms for bluetooth addresses and UUIDs.

The only formats that blegatt owns are:

- addresses: six colon separated upper-case hex octets, ``AA:BB:CC:DD:EE:FF``
- uuids: the lower-case hyphenated 128-bit form,
  ``f000aa00-0451-4000-b000-000000000000``

Every public entry point normalizes user input through these helpers so that
lookups never depend on the case or shorthand a caller happened to use.
"""

import re
import uuid
from typing import Union
from typedargs.exceptions import ArgumentError
from .compact_uuid import expand_uuid

UUIDLike = Union[str, int, uuid.UUID]

_ADDRESS_RE = re.compile(r'^[0-9A-F]{2}([:-]?)[0-9A-F]{2}(?:\1[0-9A-F]{2}){4}$')
_SHORT_UUID_RE = re.compile(r'^(0x)?([0-9a-f]{4}|[0-9a-f]{8})$')


def normalize_address(address: str) -> str:
    """Convert a bluetooth address into its canonical colon-hex form.

    Colon separated, dash separated and unseparated 12 digit forms are
    accepted in any case.

    Raises:
        ArgumentError: The address is not a valid 6-byte bluetooth address.
    """

    if not isinstance(address, str):
        raise ArgumentError("Bluetooth address must be a string", address=address)

    cleaned = address.strip().upper()
    if _ADDRESS_RE.match(cleaned) is None:
        raise ArgumentError("Invalid bluetooth address", address=address)

    digits = cleaned.replace(':', '').replace('-', '')
    return ':'.join(digits[i:i + 2] for i in range(0, 12, 2))


def normalize_uuid(value: UUIDLike) -> uuid.UUID:
    """Convert a string, 16/32-bit alias or UUID object into a UUID.

    Short forms such as ``"2902"``, ``"0x2902"`` or the integer ``0x2902`` are
    expanded against the bluetooth base uuid.

    Raises:
        ArgumentError: The value cannot be interpreted as a UUID.
    """

    if isinstance(value, uuid.UUID):
        return value

    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0 or value > 0xFFFFFFFF:
            raise ArgumentError("Integer UUID alias out of range", value=value)

        return expand_uuid(value.to_bytes(4 if value > 0xFFFF else 2, 'little'))

    if not isinstance(value, str):
        raise ArgumentError("Unknown UUID type", value=value)

    cleaned = value.strip().lower()
    short = _SHORT_UUID_RE.match(cleaned)
    if short is not None:
        alias = bytes.fromhex(short.group(2))
        return expand_uuid(bytes(reversed(alias)))

    try:
        return uuid.UUID(cleaned)
    except ValueError as err:
        raise ArgumentError("Invalid UUID string", value=value) from err


def format_uuid(value: UUIDLike) -> str:
    """Return the canonical lower-case hyphenated string form of a UUID."""

    return str(normalize_uuid(value))
