"""Constant enumerations and values used in BLE communication."""

from enum import IntEnum
from .compact_uuid import expand_uuid


class AttributeType:
    """Defined types of Gatt attributes."""

    PRIMARY_SERVICE = expand_uuid(uint16=0x2800)
    SECONDARY_SERVICE = expand_uuid(uint16=0x2801)
    INCLUDE = expand_uuid(uint16=0x2802)
    CHAR_DECLARATION = expand_uuid(uint16=0x2803)
    CHAR_EXTENDED_PROPERTIES = expand_uuid(uint16=0x2900)
    CHAR_USER_DESCRIPTION = expand_uuid(uint16=0x2901)
    CLIENT_CONFIG = expand_uuid(uint16=0x2902)
    SERVER_CONFIG = expand_uuid(uint16=0x2903)
    PRESENTATION_FORMAT = expand_uuid(uint16=0x2904)

    DEVICE_NAME = expand_uuid(uint16=0x2A00)
    APPEARANCE = expand_uuid(uint16=0x2A01)


class ClientConfig:
    """Bits of the client characteristic configuration descriptor."""

    DISABLED = b'\x00\x00'
    NOTIFY = b'\x01\x00'
    INDICATE = b'\x02\x00'


class AddressType:
    """The two kinds of LE device addresses."""

    PUBLIC = 'public'
    RANDOM = 'random'

    ALL = frozenset([PUBLIC, RANDOM])


class AdvertisementType:
    """Defined types of BLE advertisement packets."""

    CONNECTABLE = 0x00
    DIRECTED = 0x01
    NONCONNECTABLE = 0x02
    SCAN_RESPONSE = 0x04
    SCANNABLE = 0x06


class AdElementType(IntEnum):
    """Types of data elements that can be found in an advertisement.

    The complete list of such ad elements can be found at:
    https://www.bluetooth.com/specifications/assigned-numbers/generic-access-profile/
    """

    FLAGS = 1
    INCOMPLETE_UUID_16_LIST = 2
    COMPLETE_UUID_16_LIST = 3
    INCOMPLETE_UUID_32_LIST = 4
    COMPLETE_UUID_32_LIST = 5
    INCOMPLETE_UUID_128_LIST = 6
    COMPLETE_UUID_128_LIST = 7
    SHORTENED_LOCAL_NAME = 8
    COMPLETE_LOCAL_NAME = 9
    TX_POWER_LEVEL = 0xA

    DEVICE_CLASS = 0xD
    SIMPLE_PAIRING_HASH = 0xE
    SIMPLE_PAIRING_RANDOMIZER = 0xF

    SECURITY_TK_VALUE = 0x10
    SECURITY_OOB_FLAGS = 0x11
    SLAVE_CONN_INTERVAL_RANGE = 0x12

    SOLICITATION_UUID_16_LIST = 0x14
    SOLICITATION_UUID_128_LIST = 0x15
    SERVICE_DATA_UUID_16 = 0x16

    APPEARANCE = 0x19

    SERVICE_DATA_UUID_32 = 0x20
    SERVICE_DATA_UUID_128 = 0x21

    MANUFACTURER_DATA = 0xFF


class GAPAdFlags(IntEnum):
    """BLE well known flags indicating device capabilities."""

    LE_LIMITED_DISC_MODE = 0x01
    LE_GENERAL_DISC_MODE = 0x02
    BR_EDR_NOT_SUPPORTED = 0x04
    LE_BR_EDR_CONTROLLER = 0x08
    LE_BR_EDR_HOST = 0x10


# The ATT protocol caps every attribute value at 512 bytes
MAX_ATTRIBUTE_LENGTH = 512
