"""An AbstractTransport backed by the cross platform bleak library.

Bleak works in terms of characteristics rather than raw attribute writes, so
writes to a client configuration descriptor are translated into
``start_notify()`` and ``stop_notify()`` calls on the owning characteristic.
"""

import asyncio
import itertools
import logging
from typing import Dict, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError
from typedargs.exceptions import ArgumentError

from ..defines import AdvertisementType, AttributeType, ClientConfig, normalize_address, normalize_uuid
from ..interface import AdapterState, AttributeRecord, BLEAdvertisement, CharacteristicProperties, messages
from ..interface.errors import DisconnectionError, GattError, NotConnectedError, TransportError
from ..utilities.async_tools import OperationManager


_BLEAK_PROPERTIES = {
    'broadcast': 'broadcast',
    'read': 'read',
    'write-without-response': 'write_no_response',
    'write': 'write',
    'notify': 'notify',
    'indicate': 'indicate',
    'authenticated-signed-writes': 'write_authenticated',
    'extended-properties': 'extended'
}


class _BleakLink:
    def __init__(self, address: str, client: BleakClient):
        self.address = address
        self.client = client
        self.closing = False
        self.characteristics = {}  # type: Dict[int, object]
        self.configs = {}  # type: Dict[int, object]


class BleakTransport:
    """Bluetooth transport using the host's native stack through bleak.

    Args:
        adapter: Optional adapter name passed through to bleak, e.g. ``hci0``.
        max_attribute_length: The largest value the engine may write.
    """

    def __init__(self, adapter: Optional[str] = None, max_attribute_length: int = 512):
        self.events = OperationManager()
        self.adapter = adapter
        self.max_attribute_length = max_attribute_length

        self._scanner = None  # type: Optional[BleakScanner]
        self._links = {}  # type: Dict[int, _BleakLink]
        self._link_ids = itertools.count(1)
        self._logger = logging.getLogger(__name__)

    async def start(self):
        self.events.attach(asyncio.get_running_loop())

    async def stop(self):
        await self.scan_stop()

        for link in list(self._links):
            try:
                await self.link_disconnect(link)
            except TransportError:
                self._logger.warning("Error closing link %d during shutdown", link, exc_info=True)

    async def state(self) -> AdapterState:
        return AdapterState(self.adapter or 'default', discovering=self._scanner is not None,
                            max_connections=8, max_attribute_length=self.max_attribute_length)

    async def scan_start(self, filter_hint=None):
        if self._scanner is not None:
            return

        kwargs = {}
        if self.adapter is not None:
            kwargs['adapter'] = self.adapter

        if filter_hint is not None and filter_hint.uuids:
            kwargs['service_uuids'] = [str(x) for x in filter_hint.uuids]

        scanner = BleakScanner(detection_callback=self._on_detection, **kwargs)

        try:
            await scanner.start()
        except BleakError as err:
            raise TransportError("Could not start scanning: %s" % err) from err

        self._scanner = scanner
        self.events.queue_message_threadsafe(messages.ScanningStarted())

    async def scan_stop(self):
        scanner = self._scanner
        if scanner is None:
            return

        self._scanner = None

        try:
            await scanner.stop()
        except BleakError as err:
            raise TransportError("Could not stop scanning: %s" % err) from err
        finally:
            self.events.queue_message_threadsafe(messages.ScanningStopped())

    async def link_connect(self, address: str, address_type: str) -> int:
        address = normalize_address(address)
        link = next(self._link_ids)

        kwargs = {}
        if self.adapter is not None:
            kwargs['adapter'] = self.adapter

        client = BleakClient(address, disconnected_callback=lambda _client: self._on_disconnected(link), **kwargs)
        self._links[link] = _BleakLink(address, client)

        try:
            await client.connect()
        except BleakError as err:
            self._links.pop(link, None)
            raise TransportError("Could not connect: %s" % err, address) from err
        except:
            self._links.pop(link, None)
            raise

        return link

    async def link_disconnect(self, link: int):
        info = self._require(link, 'disconnect')
        info.closing = True

        try:
            await info.client.disconnect()
        except BleakError as err:
            raise TransportError("Could not disconnect: %s" % err, info.address) from err
        finally:
            self._links.pop(link, None)

    async def attribute_table(self, link: int) -> List[AttributeRecord]:
        info = self._require(link, 'discover services')

        records = []
        for service in info.client.services:
            service_records = []

            for char in service.characteristics:
                info.characteristics[char.handle] = char
                service_records.append(AttributeRecord(AttributeRecord.CHARACTERISTIC, char.handle,
                                                       normalize_uuid(char.uuid),
                                                       properties=_convert_properties(char.properties)))

                for desc in char.descriptors:
                    if normalize_uuid(desc.uuid) == AttributeType.CLIENT_CONFIG:
                        info.configs[desc.handle] = char

                    service_records.append(AttributeRecord(AttributeRecord.DESCRIPTOR, desc.handle,
                                                           normalize_uuid(desc.uuid)))

            end_handle = max([service.handle] + [x.handle for x in service_records])
            records.append(AttributeRecord(AttributeRecord.SERVICE, service.handle, normalize_uuid(service.uuid),
                                           end_handle=end_handle))
            records.extend(service_records)

        return records

    async def attribute_read(self, link: int, handle: int) -> bytes:
        info = self._require(link, 'read')

        try:
            if handle in info.characteristics:
                value = await info.client.read_gatt_char(info.characteristics[handle])
            else:
                value = await info.client.read_gatt_descriptor(handle)
        except BleakError as err:
            raise GattError("Read of handle 0x%04x failed: %s" % (handle, err), info.address) from err

        return bytes(value)

    async def attribute_write(self, link: int, handle: int, value: bytes, ack_required: bool):
        info = self._require(link, 'write')

        try:
            if handle in info.configs:
                await self._configure(link, info, info.configs[handle], value)
            elif handle in info.characteristics:
                await info.client.write_gatt_char(info.characteristics[handle], value, response=ack_required)
            else:
                await info.client.write_gatt_descriptor(handle, value)
        except BleakError as err:
            raise GattError("Write of handle 0x%04x failed: %s" % (handle, err), info.address) from err

    async def link_pair(self, link: int):
        info = self._require(link, 'pair')

        try:
            await info.client.pair()
        except BleakError as err:
            raise GattError("Pairing failed: %s" % err, info.address) from err
        except NotImplementedError as err:
            raise GattError("Pairing is not supported on this platform", info.address) from err

    async def link_cancel_pairing(self, link: int):
        # bleak has no cancel primitive, cancelling the pair() call aborts it
        self._logger.debug("Cancelling pairing on link %d", link)

    async def _configure(self, link, info, char, value):
        if bytes(value) == ClientConfig.DISABLED:
            await info.client.stop_notify(char)
            return

        def _on_notification(_sender, data):
            self.events.queue_message_threadsafe(messages.ValueChanged(link, char.handle, bytes(data)))

        await info.client.start_notify(char, _on_notification)

    def _require(self, link, operation) -> _BleakLink:
        info = self._links.get(link)
        if info is None:
            raise NotConnectedError(operation, str(link))

        return info

    def _on_disconnected(self, link):
        info = self._links.get(link)
        if info is None or info.closing:
            return

        self._links.pop(link, None)
        self._logger.info("Link %d to %s was lost", link, info.address)
        self.events.queue_message_threadsafe(messages.LinkLost(link, DisconnectionError.REMOTE_DISCONNECT))

    def _on_detection(self, device, advertisement_data):
        try:
            address = normalize_address(device.address)
        except ArgumentError:
            self._logger.debug("Ignoring advertisement from non MAC address %s", device.address)
            return

        service_data = {normalize_uuid(key): bytes(value) for key, value in advertisement_data.service_data.items()}
        manufacturer_data = {key: bytes(value) for key, value in advertisement_data.manufacturer_data.items()}

        advert = BLEAdvertisement(address, AdvertisementType.CONNECTABLE, advertisement_data.rssi,
                                  local_name=advertisement_data.local_name,
                                  service_uuids=advertisement_data.service_uuids,
                                  manufacturer_data=manufacturer_data, service_data=service_data,
                                  tx_power=advertisement_data.tx_power)

        self.events.queue_message_threadsafe(messages.AdvertisementSeen(advert))


def _convert_properties(names) -> int:
    flags = {_BLEAK_PROPERTIES[name]: True for name in names if name in _BLEAK_PROPERTIES}
    return CharacteristicProperties(**flags).int_value
