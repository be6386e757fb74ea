"""GATT discovery: turning a transport's attribute table into a GattTable."""

import asyncio
import logging
from typing import List, Optional
from ..interface import (AbstractTransport, AttributeRecord, CharacteristicProperties, GattCharacteristic,
                         GattDescriptor, GattService, GattTable)
from ..interface.errors import DiscoveryTimeoutError, ServiceDiscoveryFailedError, TransportError
from .session import ConnectionSession


class GattCatalog:
    """Discovers and caches the GATT table of connected peripherals.

    The table handed out by ``discover()`` is frozen: its services,
    characteristics and descriptors never change for the lifetime of the
    connection session.  A new table is built on every reconnection.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)

    async def discover(self, transport: AbstractTransport, session: ConnectionSession,
                       timeout: Optional[float] = None) -> GattTable:
        """Enumerate and materialize the full GATT table of a link.

        Raises:
            ServiceDiscoveryFailedError: The link was lost during discovery,
                the transport failed or it reported a malformed table.
            DiscoveryTimeoutError: Discovery did not finish in time.
        """

        async with session.lock:
            op = asyncio.ensure_future(transport.attribute_table(session.link))

            try:
                done, _pending = await asyncio.wait([op, session.lost], timeout=timeout,
                                                    return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not op.done():
                    op.cancel()

        if op not in done:
            if session.lost.done():
                raise ServiceDiscoveryFailedError("Link to %s lost during service discovery" % session.address,
                                                  session.address)

            raise DiscoveryTimeoutError(session.address, timeout)

        try:
            records = op.result()
        except TransportError as err:
            raise ServiceDiscoveryFailedError("Error enumerating attributes of %s: %s" % (session.address, err),
                                              session.address) from err

        table = build_table(records, session.address)
        table.freeze()

        self._logger.debug("Discovered %d services on %s", len(table), session.address)
        return table


def build_table(records: List[AttributeRecord], conn_string: Optional[str] = None) -> GattTable:
    """Materialize a flat attribute table into a GattTable.

    Raises:
        ServiceDiscoveryFailedError: The records are out of order or an
            attribute does not belong to a parent.
    """

    table = GattTable()
    service = None  # type: Optional[GattService]
    char = None  # type: Optional[GattCharacteristic]
    last_handle = 0

    for record in records:
        if record.handle <= last_handle:
            raise ServiceDiscoveryFailedError("Attribute handle 0x%04x out of order" % record.handle, conn_string)

        last_handle = record.handle

        if service is not None and record.kind != AttributeRecord.SERVICE and record.handle > service.end_handle:
            raise ServiceDiscoveryFailedError("Attribute 0x%04x lies outside of service %s"
                                              % (record.handle, service.uuid), conn_string)

        if record.kind == AttributeRecord.SERVICE:
            instance = sum(1 for x in table.services if x.uuid == record.uuid)
            end_handle = record.end_handle if record.end_handle is not None else 0xFFFF
            service = GattService(record.uuid, record.handle, end_handle, instance)
            table.add_service(service)
            char = None
        elif record.kind == AttributeRecord.CHARACTERISTIC:
            if service is None:
                raise ServiceDiscoveryFailedError("Characteristic %s is not part of a service" % record.uuid,
                                                  conn_string)

            instance = sum(1 for x in service.characteristics if x.uuid == record.uuid)
            char = GattCharacteristic(record.uuid, CharacteristicProperties.from_int(record.properties),
                                      record.handle, instance)
            char.service = service
            service.characteristics.append(char)
        elif record.kind == AttributeRecord.DESCRIPTOR:
            if char is None:
                raise ServiceDiscoveryFailedError("Descriptor %s is not part of a characteristic" % record.uuid,
                                                  conn_string)

            instance = sum(1 for x in char.descriptors if x.uuid == record.uuid)
            desc = GattDescriptor(record.uuid, record.handle, instance)
            desc.characteristic = char
            char.descriptors.append(desc)
        else:
            raise ServiceDiscoveryFailedError("Unknown attribute kind %r" % record.kind, conn_string)

    return table
