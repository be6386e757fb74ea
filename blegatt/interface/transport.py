"""The narrow contract every radio transport must implement.

The GATT engine never talks to hardware directly.  Everything it needs from
a radio is expressed as the coroutines of ``AbstractTransport`` plus the
events that the transport publishes on its ``events`` OperationManager (see
``messages``).  Links are opaque hashable handles chosen by the transport.
"""

from typing import Hashable, List, Optional
from uuid import UUID
from typing_extensions import Protocol
from ..utilities.async_tools import OperationManager
from .state import AdapterState


class AttributeRecord:
    """One entry of the flat attribute table reported by a transport.

    The engine materializes these into the service -> characteristic ->
    descriptor tree, so records must be reported in ascending handle order
    with every characteristic following its service and every descriptor
    following its characteristic.

    Args:
        kind: One of ``service``, ``characteristic`` or ``descriptor``.
        handle: The handle used to read or write the attribute.  For
            characteristics this is the value handle.
        uuid: The attribute uuid.
        properties: For characteristics, the uint8 property bitmask.
        end_handle: For services, the last handle belonging to the service.
    """

    SERVICE = 'service'
    CHARACTERISTIC = 'characteristic'
    DESCRIPTOR = 'descriptor'

    def __init__(self, kind: str, handle: int, uuid: UUID, properties: int = 0, end_handle: Optional[int] = None):
        self.kind = kind
        self.handle = handle
        self.uuid = uuid
        self.properties = properties
        self.end_handle = end_handle

    def __repr__(self):
        return "AttributeRecord(%s, 0x%04x, %s)" % (self.kind, self.handle, self.uuid)


class AbstractTransport(Protocol):
    """Abstract specification of how radio drivers expose their functionality.

    All operations are coroutines.  None of them time out on their own: the
    engine wraps every call in its own deadline and cancels the call when it
    expires, so implementations must tolerate cancellation at any await.

    Failures of the radio or the link must be raised as
    ``errors.TransportError`` subclasses.  Attribute protocol rejections
    should be raised as ``errors.GattError``.
    """

    @property
    def events(self) -> OperationManager:
        """All transport events are dispatched through this operation manager."""

    async def start(self):
        """Start this transport.

        This method must be called before any other methods may be called.
        """

    async def stop(self):
        """Stop this transport, closing every link and any scan."""

    async def state(self) -> AdapterState:
        """Return the current state of the radio adapter."""

    async def scan_start(self, filter_hint=None):
        """Begin publishing AdvertisementSeen events.

        Args:
            filter_hint (DiscoveryFilter): Criteria the transport may use to
                pre-filter advertisements in hardware.  The engine filters
                again, so transports are free to ignore it.
        """

    async def scan_stop(self):
        """Stop publishing AdvertisementSeen events."""

    async def link_connect(self, address: str, address_type: str) -> Hashable:
        """Establish a link to a peripheral and return its handle."""

    async def link_disconnect(self, link: Hashable):
        """Close a link.

        No LinkLost event is published for a locally requested disconnection.
        """

    async def attribute_table(self, link: Hashable) -> List[AttributeRecord]:
        """Enumerate every service, characteristic and descriptor on the peer."""

    async def attribute_read(self, link: Hashable, handle: int) -> bytes:
        """Read one attribute value."""

    async def attribute_write(self, link: Hashable, handle: int, value: bytes, ack_required: bool):
        """Write one attribute value.

        If ``ack_required`` is False this returns once the value has been
        handed to the radio, otherwise once the peer acknowledged it.
        """

    async def link_pair(self, link: Hashable):
        """Run the pairing exchange on a link."""

    async def link_cancel_pairing(self, link: Hashable):
        """Abort an outstanding pairing exchange."""
