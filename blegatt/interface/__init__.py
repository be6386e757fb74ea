"""Generic types and objects representing ble primitive messages and operations.

This subpackage contains the generic classes and interfaces that the GATT
engine is written against: the transport contract, the events it emits, the
device and GATT data model and the exception hierarchy.
"""

from .advertisement import BLEAdvertisement
from .device import BLEDevice, DiscoveryFilter
from .state import AdapterState, ConnectionState
from .gatt import (GattTable, GattService, GattCharacteristic, GattDescriptor, GattAttribute,
                   CharacteristicProperties)
from .transport import AbstractTransport, AttributeRecord
from . import errors
from . import messages


__all__ = ['AbstractTransport', 'AttributeRecord', 'BLEAdvertisement', 'BLEDevice', 'DiscoveryFilter',
           'AdapterState', 'ConnectionState', 'GattTable', 'GattService', 'GattCharacteristic',
           'GattDescriptor', 'GattAttribute', 'CharacteristicProperties', 'messages', 'errors']
