"""Events that flow from a transport up through the GATT engine.

Transports publish the low level events (advertisements, scan state, link
loss and value changes) on their ``events`` OperationManager.  The GattClient
publishes the higher level ones (link up, services resolved, state changes and
disconnections) on its own ``events`` manager so that observers can react
before or after a ``connect()`` call resolves.

Every event has an ``event`` attribute naming it so that waiters can match
on it, plus ``link`` or ``address`` where the event concerns one device.
"""

from typing import Any, Hashable, Optional
from .advertisement import BLEAdvertisement
from .errors import DisconnectionError
from .state import ConnectionState


class BluetoothEvent:
    """Base class for all events sent from a bluetooth driver."""

    event = None  #type: Optional[str]
    category = None  #type: Optional[str]


class AdvertisementSeen(BluetoothEvent):
    """Event sent when a ble advertisement is received during a scan."""

    def __init__(self, advertisement: BLEAdvertisement):
        self.category = "scanning"
        self.event = "advertisement"  #type: str
        self.sender = advertisement.sender  #type: str
        self.advertisement = advertisement  #type: BLEAdvertisement


class ScanningStarted(BluetoothEvent):
    """Event sent when scanning for devices has begun."""

    def __init__(self):
        self.category = "scanning"
        self.event = "scanning_started"


class ScanningStopped(BluetoothEvent):
    """Event sent when scanning for devices has stopped.

    Stopping could either be because a user requested that scanning be stopped
    or because the underlying hardware needed to stop scanning in order to
    perform another operation.
    """

    def __init__(self):
        self.category = "scanning"
        self.event = "scanning_stopped"


class LinkLost(BluetoothEvent):
    """Event sent by a transport when a link closes without being asked to.

    It is never sent in response to ``link_disconnect()``.
    """

    def __init__(self, link: Hashable, reason: int = DisconnectionError.UNKNOWN_ERROR):
        self.category = "link"
        self.event = "link_lost"
        self.link = link
        self.reason = reason


class ValueChanged(BluetoothEvent):
    """Event sent by a transport when a notification or indication arrives."""

    def __init__(self, link: Hashable, handle: int, value: bytes):
        self.category = "link"
        self.event = "value_changed"
        self.link = link
        self.handle = handle
        self.value = value


class LinkUp(BluetoothEvent):
    """Event sent once the transport link to a device exists.

    This precedes GATT discovery, so the catalog is not usable yet.
    """

    def __init__(self, address: str, link: Hashable):
        self.category = "connection"
        self.event = "link_up"
        self.address = address
        self.link = link


class ServicesResolved(BluetoothEvent):
    """Event sent once GATT discovery finished and the catalog is frozen."""

    def __init__(self, address: str, table: Any):
        self.category = "connection"
        self.event = "services_resolved"
        self.address = address
        self.table = table


class StateChanged(BluetoothEvent):
    """Event sent on every connection state machine transition."""

    def __init__(self, address: str, old_state: ConnectionState, new_state: ConnectionState):
        self.category = "connection"
        self.event = "state_changed"
        self.address = address
        self.old_state = old_state
        self.new_state = new_state


class DeviceDisconnected(BluetoothEvent):
    """Event sent when a connection session ends for any reason.

    Args:
        address: The device that disconnected.
        expected: True if the disconnection was locally requested.
        error: For unexpected disconnections, the error describing why.
    """

    def __init__(self, address: str, expected: bool, error: Optional[DisconnectionError] = None):
        self.category = "connection"
        self.event = "device_disconnected"
        self.address = address
        self.expected = expected
        self.error = error
