"""Generic adapter and connection state."""

from enum import IntEnum
from typing import Optional
from ..defines import MAX_ATTRIBUTE_LENGTH


class ConnectionState(IntEnum):
    """The states of a device's connection state machine."""

    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    DISCONNECTING = 3


class AdapterState:
    """Generic data that must be returned by any BLE transport.

    This state is defined to contain the minimum amount of information that
    must be queryable about a given radio in order to run the GATT engine on
    top of it in a portable way.  Transports are free to subclass this class
    and provide additional information as long as they cover the minimum.

    Args:
        identifier: A stable name for the adapter, such as ``hci0``.
        powered: Whether the radio is on.
        discoverable: Whether the adapter itself is advertising.
        discovering: Whether a scan is currently active.
        max_connections: The maximum number of simultaneous peripheral connections
            that can be handled.  This must be a conservative estimate if the
            actual number is not known.
        max_attribute_length: The longest attribute value, in bytes, that
            the transport can write in one request.
    """

    def __init__(self, identifier: str, powered: bool = True, discoverable: bool = False,
                 discovering: bool = False, max_connections: int = 1,
                 max_attribute_length: Optional[int] = MAX_ATTRIBUTE_LENGTH):
        self.identifier = identifier
        self.powered = powered
        self.discoverable = discoverable
        self.discovering = discovering
        self.max_connections = max_connections

        if max_attribute_length is None:
            max_attribute_length = MAX_ATTRIBUTE_LENGTH

        self.max_attribute_length = max_attribute_length

    def __repr__(self):
        return "<AdapterState %s powered=%s discovering=%s>" % (self.identifier, self.powered, self.discovering)
