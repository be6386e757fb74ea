"""Bluetooth Low Energy GATT central engine.

This package discovers nearby peripherals, manages the lifecycle of their
connections, discovers and caches their GATT tables and performs attribute
reads, writes and notification delivery over an unreliable radio link.

The engine never talks to hardware itself.  Everything it needs from a radio
is expressed by ``interface.AbstractTransport``, which is implemented by the
in-memory ``emulation.EmulatedTransport`` and by the optional bleak based
``transports.bleak_transport.BleakTransport``.

Asynchronous callers use ``GattClient`` directly; blocking scripts use
``BluetoothManager``, which runs the engine on a background event loop.
"""

from .core import GattClient, GattClientOptions, Peripheral
from .interface import BLEDevice, DiscoveryFilter, ConnectionState
from .manager import BluetoothManager, SyncDevice

__all__ = ['GattClient', 'GattClientOptions', 'Peripheral', 'BLEDevice', 'DiscoveryFilter', 'ConnectionState',
           'BluetoothManager', 'SyncDevice']
