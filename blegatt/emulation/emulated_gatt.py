"""Emulated Gatt database."""

import uuid
from typing import Dict, List, Optional
from ..interface import AttributeRecord, CharacteristicProperties
from ..interface.errors import MissingHandleError
from ..defines import AttributeType, ClientConfig, normalize_uuid, UUIDLike


class EmulatedAttribute:
    """One attribute of an emulated GATT server with its current value."""

    def __init__(self, kind: str, uuid: uuid.UUID, value: bytes = b'',
                 properties: Optional[CharacteristicProperties] = None):
        self.kind = kind
        self.uuid = uuid
        self.value = bytes(value)
        self.properties = properties
        self.handle = 0
        self.descriptors = []  # type: List[EmulatedAttribute]

    @property
    def client_config(self) -> Optional['EmulatedAttribute']:
        for desc in self.descriptors:
            if desc.uuid == AttributeType.CLIENT_CONFIG:
                return desc

        return None

    @property
    def notifying(self) -> bool:
        config = self.client_config
        return config is not None and config.value != ClientConfig.DISABLED


class _EmulatedService:
    def __init__(self, uuid: uuid.UUID):
        self.uuid = uuid
        self.handle = 0
        self.end_handle = 0
        self.characteristics = []  # type: List[EmulatedAttribute]


class EmulatedGattTable:
    """Internal support class for creating a valid GATT table.

    This class ensures that GATT services and characteristics are laid out in
    a contiguous handle space as would be the case in an actual bluetooth
    device.  Every characteristic takes a declaration handle followed by its
    value handle and then one handle per descriptor.
    """

    def __init__(self):
        self.services = []  # type: List[_EmulatedService]
        self._handles = {}  # type: Dict[int, EmulatedAttribute]

    def add_service(self, service_uuid: UUIDLike) -> _EmulatedService:
        """Append a service, even if one with the same uuid already exists."""

        service = _EmulatedService(normalize_uuid(service_uuid))
        self.services.append(service)
        return service

    def quick_add(self, service_uuid: UUIDLike, char_uuid: UUIDLike, value: bytes = b'',
                  **kwargs) -> EmulatedAttribute:
        """Quickly add a new characteristic to this emulated gatt table.

        If the given service does not exist, it is added first.  If there are
        several services with the uuid, the characteristic joins the last one.  A client
        configuration descriptor is added automatically to characteristics
        that can notify or indicate.  After making changes to the gatt table,
        you must call ``update_handles`` to assign valid handle numbers to all
        of the attributes in the table.
        """

        service_uuid = normalize_uuid(service_uuid)

        service = None
        for existing in self.services:
            if existing.uuid == service_uuid:
                service = existing

        if service is None:
            service = self.add_service(service_uuid)

        props = CharacteristicProperties(**kwargs)
        char = EmulatedAttribute(AttributeRecord.CHARACTERISTIC, normalize_uuid(char_uuid), value, props)

        if props.notify or props.indicate:
            char.descriptors.append(EmulatedAttribute(AttributeRecord.DESCRIPTOR, AttributeType.CLIENT_CONFIG,
                                                      ClientConfig.DISABLED))

        service.characteristics.append(char)
        return char

    def add_descriptor(self, char: EmulatedAttribute, desc_uuid: UUIDLike, value: bytes = b'') -> EmulatedAttribute:
        desc = EmulatedAttribute(AttributeRecord.DESCRIPTOR, normalize_uuid(desc_uuid), value)
        char.descriptors.append(desc)
        return desc

    def update_handles(self):
        """Recalculate the handle number of all attributes."""

        self._handles = {}
        handle = 1

        for service in self.services:
            service.handle = handle
            handle += 1

            for char in service.characteristics:
                # The declaration handle precedes the value handle
                char.handle = handle + 1
                self._handles[char.handle] = char
                handle += 2

                for desc in char.descriptors:
                    desc.handle = handle
                    self._handles[handle] = desc
                    handle += 1

            service.end_handle = handle - 1

    def records(self) -> List[AttributeRecord]:
        """The flat attribute table as a transport reports it."""

        records = []
        for service in self.services:
            records.append(AttributeRecord(AttributeRecord.SERVICE, service.handle, service.uuid,
                                           end_handle=service.end_handle))

            for char in service.characteristics:
                records.append(AttributeRecord(AttributeRecord.CHARACTERISTIC, char.handle, char.uuid,
                                               properties=char.properties.int_value))

                for desc in char.descriptors:
                    records.append(AttributeRecord(AttributeRecord.DESCRIPTOR, desc.handle, desc.uuid))

        return records

    def lookup_handle(self, handle: int) -> EmulatedAttribute:
        if handle not in self._handles:
            raise MissingHandleError(handle)

        return self._handles[handle]

    def find_char(self, char_uuid: UUIDLike) -> EmulatedAttribute:
        char_uuid = normalize_uuid(char_uuid)

        for service in self.services:
            for char in service.characteristics:
                if char.uuid == char_uuid:
                    return char

        raise KeyError("Characteristic %s was not in GATT table" % char_uuid)

    def reset_subscriptions(self):
        for service in self.services:
            for char in service.characteristics:
                config = char.client_config
                if config is not None:
                    config.value = ClientConfig.DISABLED
