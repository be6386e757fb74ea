"""Tests of the UUID and address normalization functions."""

import uuid
import pytest
from typedargs.exceptions import ArgumentError
from blegatt.defines import (compact_uuid, expand_uuid, normalize_uuid, normalize_address, format_uuid,
                             AttributeType)


TI_TEMPERATURE = uuid.UUID("f000aa00-0451-4000-b000-000000000000")


def test_basic_roundtrip():
    """Make sure compacting an expanded uuid is a no-op."""
    start = b'\x01\x02'

    expanded_bytes = expand_uuid(start)
    compressed = compact_uuid(expanded_bytes)
    assert compressed == start

    expanded_int = expand_uuid(uint16=0x0201)
    compressed = compact_uuid(expanded_int)
    assert compressed == start
    assert expanded_int == expanded_bytes


def test_128_bit_noop():
    """Make sure compacting a 128-bit uuid gives back its over the air form."""

    packed = compact_uuid(TI_TEMPERATURE)
    assert len(packed) == 16
    assert expand_uuid(packed) == TI_TEMPERATURE


def test_32_bit_alias():
    expanded = expand_uuid(b'\x01\x02\x03\x04')
    assert str(expanded) == "04030201-0000-1000-8000-00805f9b34fb"
    assert compact_uuid(expanded) == b'\x01\x02\x03\x04'


def test_normalize_uuid_forms():
    """All of the shorthand forms refer to the same attribute."""

    cccd = "00002902-0000-1000-8000-00805f9b34fb"

    assert str(normalize_uuid(0x2902)) == cccd
    assert str(normalize_uuid("2902")) == cccd
    assert str(normalize_uuid("0x2902")) == cccd
    assert str(normalize_uuid(cccd.upper())) == cccd
    assert normalize_uuid(AttributeType.CLIENT_CONFIG) is AttributeType.CLIENT_CONFIG

    assert format_uuid("F000AA00-0451-4000-B000-000000000000") == str(TI_TEMPERATURE)


def test_invalid_uuids():
    with pytest.raises(ArgumentError):
        normalize_uuid("not a uuid")

    with pytest.raises(ArgumentError):
        normalize_uuid(-1)

    with pytest.raises(ArgumentError):
        normalize_uuid(1.5)


def test_normalize_address():
    assert normalize_address("aa:bb:cc:dd:ee:ff") == "AA:BB:CC:DD:EE:FF"
    assert normalize_address("AA-BB-CC-DD-EE-FF") == "AA:BB:CC:DD:EE:FF"
    assert normalize_address("aabbccddeeff") == "AA:BB:CC:DD:EE:FF"

    for bad in ("AA:BB:CC:DD:EE", "AA:BB-CC:DD:EE:FF", "GG:BB:CC:DD:EE:FF", None):
        with pytest.raises(ArgumentError):
            normalize_address(bad)
