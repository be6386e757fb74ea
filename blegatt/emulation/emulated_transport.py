"""A transport that emulates a BLE radio and the peripherals around it.

The purpose of this class is to exercise the GATT engine against scripted
peripherals without any hardware.  It functions as a complete reference
implementation of ``AbstractTransport``.
"""

import asyncio
import itertools
import logging
from typing import Dict, Iterable, Optional
from typing_extensions import TypedDict
from ..defines import MAX_ATTRIBUTE_LENGTH, normalize_address
from ..interface import AdapterState, AttributeRecord, BLEAdvertisement, messages
from ..interface.errors import (DisconnectionError, EarlyDisconnectError, GattError, NotConnectedError,
                                PairingCancelledError, ValueTooLongError)
from ..utilities.async_tools import OperationManager
from .emulated_gatt import EmulatedAttribute
from .emulated_peripheral import EmulatedPeripheral


EmulatedTransportOptions = TypedDict('EmulatedTransportOptions', {
    'advertisement_rate': float,
    'max_attribute_length': int,
    'connect_delay': float
}, total=False)

DEFAULT_TRANSPORT_OPTIONS = {
    'advertisement_rate': 0.1,
    'max_attribute_length': MAX_ATTRIBUTE_LENGTH,
    'connect_delay': 0.0
}  #type: EmulatedTransportOptions


class _EmulatedRadioChannel:
    def __init__(self, transport: 'EmulatedTransport'):
        self._transport = transport

    async def notify(self, peripheral: EmulatedPeripheral, char: EmulatedAttribute, value: bytes):
        link = self._transport.link_of(peripheral.address)
        if link is None:
            raise NotConnectedError('notify', peripheral.address)

        self._transport.events.queue_message_threadsafe(messages.ValueChanged(link, char.handle, value))

    async def disconnect(self, peripheral: EmulatedPeripheral, reason: int):
        self._transport.drop_link(peripheral.address, reason)

    async def update_advertisement(self, advertisement: BLEAdvertisement):
        self._transport._latest_advertisements[advertisement.sender] = advertisement
        self._transport._send_advertisement(advertisement)


class EmulatedTransport:
    """Emulated BLE radio implementation.

    This class can be loaded with EmulatedPeripheral objects and will
    provide access to them using normal ble operations.

    Args:
        peripherals: The devices within range of the radio.
        options: Advertisement rate, link delays and limits.
        adapter_id: The identifier reported in the adapter state.
    """

    def __init__(self, peripherals: Iterable[EmulatedPeripheral], options: Optional[EmulatedTransportOptions] = None,
                 *, adapter_id: str = 'emulated0'):
        self.peripherals = {periph.address: periph for periph in peripherals}  #type: Dict[str, EmulatedPeripheral]
        self.links = {}  #type: Dict[int, EmulatedPeripheral]
        self.events = OperationManager()
        self.adapter_id = adapter_id

        self._options = options
        self._logger = logging.getLogger(__name__)

        self._scanning = False
        self._advertisement_task = None
        self._latest_advertisements = {}  #type: Dict[str, BLEAdvertisement]
        self._link_ids = itertools.count(1)
        self._pairing = {}  #type: Dict[int, asyncio.Future]

    async def start(self):
        started = []

        try:
            channel = _EmulatedRadioChannel(self)
            for periph in self.peripherals.values():
                await periph.start(channel)
                started.append(periph)
        except:
            self._logger.warning("Error starting emulated transport", exc_info=True)
            for periph in started:
                await periph.stop()

            raise

        self._advertisement_task = asyncio.ensure_future(self._advertiser())

    async def stop(self):
        if self._advertisement_task is not None:
            self._advertisement_task.cancel()
            await self._advertisement_task
            self._advertisement_task = None

        for link in list(self.links):
            self._close(link)

        for periph in self.peripherals.values():
            await periph.stop()

    async def state(self) -> AdapterState:
        return AdapterState(self.adapter_id, powered=True, discovering=self._scanning, max_connections=8,
                            max_attribute_length=_pick('max_attribute_length', self._options))

    async def scan_start(self, filter_hint=None):
        """Begin scanning.

        For ease of testing, all advertisements are sent immediately before
        this method finishes as well as being sent periodically.
        """

        if not self._scanning:
            self._scanning = True
            self.events.queue_message_threadsafe(messages.ScanningStarted())

        self._send_all_advertisements()

    async def scan_stop(self):
        if not self._scanning:
            return

        self._scanning = False
        self.events.queue_message_threadsafe(messages.ScanningStopped())

    async def link_connect(self, address: str, address_type: str) -> int:
        """Connect to an emulated peripheral.

        Like a real radio, connecting to a device that is not in range or not
        connectable never completes; the caller is expected to time out.
        """

        address = normalize_address(address)
        delay = _pick('connect_delay', self._options)

        periph = self.peripherals.get(address)
        if periph is None or not periph.connectable or periph.connected:
            self._logger.warning("Attempted to connect to device %s that is not connectable, waiting for cancel",
                                 address)
            await asyncio.Event().wait()

        await asyncio.sleep(delay + periph.connect_delay)

        if periph.fail_connect:
            raise EarlyDisconnectError(address)

        link = next(self._link_ids)
        self.links[link] = periph
        periph.connected = True

        self._logger.debug("Emulated link %d to %s established", link, address)
        return link

    async def link_disconnect(self, link: int):
        self._require(link, 'disconnect')
        self._close(link)

    async def attribute_table(self, link: int):
        periph = self._require(link, 'discover services')
        await asyncio.sleep(periph.response_delay)

        if periph.drop_during_discovery:
            self.drop_link(periph.address, DisconnectionError.SUPERVISION_TIMEOUT)
            raise DisconnectionError.from_reason(periph.address, DisconnectionError.SUPERVISION_TIMEOUT)

        return periph.gatt_table.records()

    async def attribute_read(self, link: int, handle: int) -> bytes:
        periph = self._require(link, 'read')
        await asyncio.sleep(periph.response_delay)

        attr = periph.gatt_table.lookup_handle(handle)
        if attr.kind == AttributeRecord.CHARACTERISTIC and not attr.properties.read:
            raise GattError("Read not permitted on handle 0x%04x" % handle, periph.address)

        return attr.value

    async def attribute_write(self, link: int, handle: int, value: bytes, ack_required: bool):
        periph = self._require(link, 'write')

        max_length = _pick('max_attribute_length', self._options)
        if len(value) > max_length:
            raise ValueTooLongError(len(value), max_length, periph.address)

        attr = periph.gatt_table.lookup_handle(handle)
        if attr.kind == AttributeRecord.CHARACTERISTIC:
            props = attr.properties
            allowed = (props.write or props.write_authenticated) if ack_required else props.write_no_response
            if not allowed:
                raise GattError("Write not permitted on handle 0x%04x" % handle, periph.address)

        if ack_required:
            await asyncio.sleep(periph.response_delay)

        await periph.handle_write(attr, value)

    async def link_pair(self, link: int):
        periph = self._require(link, 'pair')

        if not periph.pairable:
            raise GattError("Pairing rejected by %s" % periph.address, periph.address)

        cancelled = asyncio.get_running_loop().create_future()
        self._pairing[link] = cancelled

        try:
            await asyncio.wait([cancelled], timeout=periph.pairing_delay)
        finally:
            self._pairing.pop(link, None)

        if cancelled.done():
            raise PairingCancelledError("Pairing with %s was cancelled" % periph.address, periph.address)

        periph.paired = True

    async def link_cancel_pairing(self, link: int):
        cancelled = self._pairing.get(link)
        if cancelled is not None and not cancelled.done():
            cancelled.set_result(None)

    def link_of(self, address: str) -> Optional[int]:
        """Find the link handle of a connected peripheral."""

        address = normalize_address(address)
        for link, periph in self.links.items():
            if periph.address == address:
                return link

        return None

    def drop_link(self, address: str, reason: int = DisconnectionError.REMOTE_DISCONNECT):
        """Simulate the peripheral or the radio dropping a link."""

        link = self.link_of(address)
        if link is None:
            raise NotConnectedError('drop link', address)

        self._close(link)
        self.events.queue_message_threadsafe(messages.LinkLost(link, reason))

    def _close(self, link):
        periph = self.links.pop(link)
        periph.connected = False
        periph.gatt_table.reset_subscriptions()

        cancelled = self._pairing.get(link)
        if cancelled is not None and not cancelled.done():
            cancelled.set_result(None)

    def _require(self, link, operation) -> EmulatedPeripheral:
        periph = self.links.get(link)
        if periph is None:
            raise NotConnectedError(operation, str(link))

        return periph

    def _send_all_advertisements(self):
        if not self._scanning:
            return

        for advert in self._latest_advertisements.values():
            self._send_advertisement(advert)

    def _send_advertisement(self, advert: BLEAdvertisement):
        if not self._scanning:
            return

        periph = self.peripherals.get(advert.sender)
        if periph is not None and periph.connected:
            return

        self.events.queue_message_threadsafe(messages.AdvertisementSeen(advert))

    async def _advertiser(self):
        sleep_time = _pick('advertisement_rate', self._options)

        self._logger.debug("Starting emulated advertisement task with %.0fms interval", sleep_time * 1000.0)

        while True:
            try:
                await asyncio.sleep(sleep_time)
                self._send_all_advertisements()
            except asyncio.CancelledError:
                break
            except:
                self._logger.exception("Error eaten in background periodic advertiser routine")


def _pick(key: str, options: Optional[EmulatedTransportOptions]):
    """Helper function to get specified or default options."""

    if options is not None and key in options:
        return options.get(key)

    return DEFAULT_TRANSPORT_OPTIONS.get(key)
