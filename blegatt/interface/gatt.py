"""Common class definitions for GATT tables.

A GattTable is the fully materialized service -> characteristic ->
descriptor tree of one remote peripheral for one connection session.  Every
attribute is identified inside its parent by ``(uuid, instance)`` where
``instance`` counts the earlier siblings that share the same uuid, so
peripherals exposing duplicate uuids stay addressable.

Once ``freeze()`` has been called the structure of the table can no longer
change.  Only the cached values and subscription state of characteristics
are updated afterwards.
"""

from typing import Dict, Iterator, List, Optional, Union
from uuid import UUID
import struct
from typedargs.exceptions import InternalError
from ..defines import AttributeType, normalize_uuid, UUIDLike
from .errors import NotFoundError, UnsupportedOperationError


class CharacteristicProperties:
    """Representation of the properties of a GattCharacteristic.

    This convience class holds all of the permitted actions on a characteristic
    and also allows encoding them into their binary value.
    """

    broadcast = False
    read = False
    write_no_response = False
    write = False
    notify = False
    indicate = False
    write_authenticated = False
    extended = False

    def __init__(self, *, broadcast=False, read=False, write_no_response=False, write=False,
                 notify=False, indicate=False, write_authenticated=False, extended=False):
        self.broadcast = broadcast
        self.read = read
        self.write_no_response = write_no_response
        self.write = write
        self.notify = notify
        self.indicate = indicate
        self.write_authenticated = write_authenticated
        self.extended = extended

    @classmethod
    def from_int(cls, value: int) -> 'CharacteristicProperties':
        """Decode the uint8 property bitmask from a characteristic declaration."""

        return cls(broadcast=bool(value & (1 << 0)), read=bool(value & (1 << 1)),
                   write_no_response=bool(value & (1 << 2)), write=bool(value & (1 << 3)),
                   notify=bool(value & (1 << 4)), indicate=bool(value & (1 << 5)),
                   write_authenticated=bool(value & (1 << 6)), extended=bool(value & (1 << 7)))

    @property
    def int_value(self):
        """The uint8 integer representing these permissions.

        This integer is encoded as specified in the bluetooth standard, mapping
        each permission to its designated bit.
        """

        value = 0
        value |= int(self.broadcast) << 0
        value |= int(self.read) << 1
        value |= int(self.write_no_response) << 2
        value |= int(self.write) << 3
        value |= int(self.notify) << 4
        value |= int(self.indicate) << 5
        value |= int(self.write_authenticated) << 6
        value |= int(self.extended) << 7

        return value

    @property
    def writable(self) -> bool:
        """Whether any kind of write is permitted."""

        return self.write or self.write_no_response or self.write_authenticated

    def __eq__(self, other):
        if not isinstance(other, CharacteristicProperties):
            return NotImplemented

        return self.int_value == other.int_value

    def __repr__(self):
        names = [name for name in ('broadcast', 'read', 'write_no_response', 'write', 'notify',
                                   'indicate', 'write_authenticated', 'extended') if getattr(self, name)]
        return "CharacteristicProperties(%s)" % ", ".join(names)


class GattDescriptor:
    """A descriptor attached to a characteristic.

    Descriptors have no capability set, they are always readable and writable.

    Args:
        uuid: The UUID of the descriptor.
        handle: The transport handle used to read and write it.
        instance: Index among the earlier descriptors of the same
            characteristic that share this uuid.
    """

    kind = 'descriptor'

    def __init__(self, uuid: UUID, handle: int, instance: int = 0):
        self.uuid = uuid
        self.handle = handle
        self.instance = instance
        self.value = None  # type: Optional[bytes]
        self.characteristic = None  # type: Optional[GattCharacteristic]

    @property
    def int_value(self):
        """The cached value of the descriptor as a 16-bit little endian integer."""

        if self.value is None or len(self.value) != 2:
            raise ValueError("Cannot convert descriptor value to int because its the wrong size")

        return struct.unpack('<H', self.value)[0]

    def __repr__(self):
        return "<GattDescriptor %s#%d handle=0x%04x>" % (self.uuid, self.instance, self.handle)


class GattCharacteristic:
    """Representation of a GATT characteristic.

    GATT characteristics are the core unit of a GATT database and are the
    named objects that can be read, written and subscribed to.

    Args:
        uuid: The UUID of the characteristic
        properties: The actions that are permitted on the characteristic
        handle: The transport handle of the characteristic value.
        instance: Index among the earlier characteristics of the same
            service that share this uuid.
    """

    kind = 'characteristic'

    def __init__(self, uuid: UUID, properties: CharacteristicProperties, handle: int, instance: int = 0):
        self.uuid = uuid
        self.properties = properties
        self.handle = handle
        self.instance = instance
        self.descriptors = []  # type: List[GattDescriptor]
        self.service = None  # type: Optional[GattService]

        self.value = None  # type: Optional[bytes]
        self.subscription = None  # type: Optional[str]

    @property
    def client_config(self) -> Optional[GattDescriptor]:
        """The client characteristic configuration descriptor, if there is one."""

        for desc in self.descriptors:
            if desc.uuid == AttributeType.CLIENT_CONFIG:
                return desc

        return None

    @property
    def subscribed(self) -> bool:
        """Whether notifications or indications are currently enabled."""

        return self.subscription is not None

    def can_subscribe(self, kind: str = "notify") -> bool:
        """Check whether subscriptions to this charactistic are possible.

        Args:
            kind: Either notify or indicate to check the corresponding type
                of subscription.

        Returns:
            Whether that kind of subscription is possible.

            Indications and notifications can be controlled independently.
        """

        if self.client_config is None:
            return False

        if kind == 'notify':
            return self.properties.notify

        if kind == 'indicate':
            return self.properties.indicate

        raise UnsupportedOperationError("Unknown subscription type: %s" % kind)

    def find_descriptor(self, uuid: UUIDLike, instance: Optional[int] = None) -> GattDescriptor:
        """Find a descriptor of this characteristic by uuid.

        Raises:
            NotFoundError: No matching descriptor exists.
        """

        uuid = normalize_uuid(uuid)
        for desc in self.descriptors:
            if desc.uuid == uuid and (instance is None or desc.instance == instance):
                return desc

        raise NotFoundError("Descriptor %s was not in characteristic %s" % (uuid, self.uuid))

    def __repr__(self):
        return "<GattCharacteristic %s#%d handle=0x%04x %r>" % (self.uuid, self.instance, self.handle,
                                                               self.properties)


class GattService:
    """Representation of a Bluetooth Service inside a GATT table."""

    kind = 'service'

    def __init__(self, uuid: UUID, handle: int = 0, end_handle: int = 0xFFFF, instance: int = 0):
        self.uuid = uuid
        self.handle = handle
        self.end_handle = end_handle
        self.instance = instance
        self.characteristics = []  # type: List[GattCharacteristic]

    def find_char(self, uuid: UUIDLike, instance: Optional[int] = None) -> GattCharacteristic:
        """Find a characteristic of this service by uuid.

        Raises:
            NotFoundError: No matching characteristic exists.
        """

        uuid = normalize_uuid(uuid)
        for char in self.characteristics:
            if char.uuid == uuid and (instance is None or char.instance == instance):
                return char

        raise NotFoundError("Characteristic %s was not in service %s" % (uuid, self.uuid))

    def __repr__(self):
        return "<GattService %s#%d handles=0x%04x-0x%04x>" % (self.uuid, self.instance, self.handle,
                                                              self.end_handle)


GattAttribute = Union[GattService, GattCharacteristic, GattDescriptor]


class GattTable:
    """Representation of a remote GATT server's table of services/characteristics.

    Attributes are kept in the order they were discovered, which is always
    ascending handle order.
    """

    def __init__(self, services: Optional[List[GattService]] = None):
        if services is None:
            services = []

        self.services = services
        self.frozen = False
        self._handles = {}  # type: Dict[int, GattAttribute]

    def add_service(self, service: GattService):
        """Append a service to the table before it is frozen."""

        if self.frozen:
            raise InternalError("Attempted to modify a frozen GATT table")

        self.services.append(service)

    def freeze(self):
        """Index every attribute and lock the structure of the table."""

        handles = {}
        for attr in self.attributes():
            handles[attr.handle] = attr

        self._handles = handles
        self.frozen = True

    def attributes(self) -> Iterator[GattAttribute]:
        """Iterate over every service, characteristic and descriptor in discovery order."""

        for service in self.services:
            yield service

            for char in service.characteristics:
                yield char
                yield from char.descriptors

    def characteristics(self) -> Iterator[GattCharacteristic]:
        """Iterate over every characteristic in discovery order."""

        for service in self.services:
            yield from service.characteristics

    def find_service(self, uuid: UUIDLike, instance: Optional[int] = None) -> GattService:
        """Find a service inside the peripheral's gatt table.

        Args:
            uuid: The UUID to lookup
            instance: The instance index to pick when the peripheral exposes
                more than one service with this uuid.  If not given, the
                first service in discovery order is returned.

        Raises:
            NotFoundError: The desired service was not found.
        """

        uuid = normalize_uuid(uuid)
        for service in self.services:
            if service.uuid == uuid and (instance is None or service.instance == instance):
                return service

        raise NotFoundError("Service %s was not in GATT table" % uuid)

    def find_char(self, uuid: UUIDLike, service: Union[GattService, UUIDLike, None] = None,
                  instance: Optional[int] = None) -> GattCharacteristic:
        """Find a characteristic inside the peripheral's gatt table.

        Raises:
            NotFoundError: The desired characteristic was not found.
        """

        for attr in self.find_all(uuid, service):
            if isinstance(attr, GattCharacteristic) and (instance is None or attr.instance == instance):
                return attr

        raise NotFoundError("Characteristic %s was not in GATT table" % normalize_uuid(uuid))

    def find(self, uuid: UUIDLike, service: Union[GattService, UUIDLike, None] = None,
             instance: Optional[int] = None) -> GattAttribute:
        """Find the first service, characteristic or descriptor with a uuid.

        Args:
            uuid: The UUID to look for, as a string, UUID object or 16-bit alias.
            service: Optionally restrict the search to one service, either
                the service object itself or its uuid (first instance).
            instance: Only match attributes with this instance index.

        Raises:
            NotFoundError: No attribute matched.
        """

        for attr in self.find_all(uuid, service):
            if instance is None or attr.instance == instance:
                return attr

        raise NotFoundError("Attribute %s was not in GATT table" % normalize_uuid(uuid))

    def find_all(self, uuid: UUIDLike, service: Union[GattService, UUIDLike, None] = None) -> List[GattAttribute]:
        """Return every attribute with a given uuid in discovery order."""

        uuid = normalize_uuid(uuid)

        if service is None:
            candidates = self.attributes()
        else:
            if not isinstance(service, GattService):
                service = self.find_service(service)

            candidates = _iter_service(service)

        return [attr for attr in candidates if attr.uuid == uuid]

    def lookup_handle(self, handle: int) -> Optional[GattAttribute]:
        """Find the attribute that owns a transport handle."""

        if not self.frozen:
            for attr in self.attributes():
                if attr.handle == handle:
                    return attr

            return None

        return self._handles.get(handle)

    def owns(self, attr: GattAttribute) -> bool:
        """Check if an attribute object belongs to this exact table."""

        return self.lookup_handle(attr.handle) is attr

    def __iter__(self):
        return iter(self.services)

    def __len__(self):
        return len(self.services)


def _iter_service(service):
    for char in service.characteristics:
        yield char
        yield from char.descriptors
