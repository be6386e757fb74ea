"""Constants, formats and encodings defined by the bluetooth standard."""

from .compact_uuid import compact_uuid, expand_uuid, BASE_UUID
from .constants import (AttributeType, AdElementType, AdvertisementType, AddressType, ClientConfig,
                        GAPAdFlags, MAX_ATTRIBUTE_LENGTH)
from .formats import normalize_address, normalize_uuid, format_uuid, UUIDLike

__all__ = ['compact_uuid', 'expand_uuid', 'BASE_UUID', 'AttributeType', 'AdElementType', 'AdvertisementType',
           'AddressType', 'ClientConfig', 'GAPAdFlags', 'MAX_ATTRIBUTE_LENGTH', 'normalize_address',
           'normalize_uuid', 'format_uuid', 'UUIDLike']
