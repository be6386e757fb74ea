"""Compact UUIDs allowing 2, 4 and 16 byte UUIDs to be represented in compact form."""

import uuid
import binascii
import struct


BASE_UUID = uuid.UUID("00000000-0000-1000-8000-00805f9b34fb")

# All bits of the base UUID except the 32-bit alias field in the top word
_ALIAS_MASK = (1 << 96) - 1


def expand_uuid(bytes_le: bytes = None, uint16: int = None) -> uuid.UUID:
    """Expand a 2, 4 or 16 byte UUID into a full uuid object.

    The Bluetooth specification allows UUIDs that share the Bluetooth base
    UUID to be sent over the air as 16 or 32 bit aliases.  Everything that
    goes over the air is little endian, including full 128-bit UUIDs.

    Args:
        bytes_le: The little endian encoded uuid of length 2, 4 or 16.
        uint16: Alternatively, a 16-bit integer alias.
    """

    if bytes_le is None:
        if uint16 is None:
            raise ValueError("One of bytes_le or uint16 must be passed")

        bytes_le = struct.pack("<H", uint16)

    if len(bytes_le) not in (2, 4, 16):
        raise ValueError("Invalid guid length, is not 2, 4 or 16. Data=%s" %
                         binascii.hexlify(bytes_le).decode('utf-8'))

    if len(bytes_le) == 16:
        return uuid.UUID(bytes=bytes(reversed(bytes_le)))

    alias = int.from_bytes(bytes_le, 'little')
    return uuid.UUID(int=BASE_UUID.int | (alias << 96))


def compact_uuid(expanded: uuid.UUID) -> bytes:
    """Represent a 16-byte uuid in its most compacted form.

    Return:
        The most compact little-endian bytes representation of the UUID:
        2 bytes for 16-bit aliases, 4 for 32-bit aliases or all 16 bytes.
    """

    if expanded.int & _ALIAS_MASK == BASE_UUID.int:
        alias = expanded.int >> 96
        if alias <= 0xFFFF:
            return struct.pack("<H", alias)

        return struct.pack("<L", alias)

    return bytes(reversed(expanded.bytes))
