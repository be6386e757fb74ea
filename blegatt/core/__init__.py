"""The asynchronous GATT central engine.

The pieces are layered leaves first: the DeviceRegistry records what has
been seen, the DiscoveryController feeds it from the transport, each
ConnectionStateMachine governs one device's link, the GattCatalog discovers
the GATT table of a new link and AttributeIO performs reads, writes and
notification delivery.  GattClient wires them to one transport.
"""

from .options import GattClientOptions, DEFAULT_CLIENT_OPTIONS
from .registry import DeviceRegistry
from .discovery import DiscoveryController, DiscoverySession
from .session import ConnectionSession
from .catalog import GattCatalog, build_table
from .attribute_io import AttributeIO, Poller
from .connection import ConnectionStateMachine
from .peripheral import Peripheral
from .client import GattClient

__all__ = ['GattClientOptions', 'DEFAULT_CLIENT_OPTIONS', 'DeviceRegistry', 'DiscoveryController',
           'DiscoverySession', 'ConnectionSession', 'GattCatalog', 'build_table', 'AttributeIO', 'Poller',
           'ConnectionStateMachine', 'Peripheral', 'GattClient']
