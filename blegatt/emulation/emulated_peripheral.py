"""A scriptable BLE peripheral that lives entirely in memory."""

import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional
from typing_extensions import Protocol
from ..defines import AddressType, AdvertisementType, GAPAdFlags, UUIDLike, normalize_address, normalize_uuid
from ..interface import BLEAdvertisement
from ..interface.advertisement import build_payload
from ..interface.errors import DisconnectionError, NotConnectedError
from .emulated_gatt import EmulatedAttribute, EmulatedGattTable


WriteHook = Callable[[EmulatedAttribute, bytes], Optional[Awaitable[None]]]


class EmulatedPeripheralChannel(Protocol):
    """Required operations that a peripheral needs from the radio it is attached to."""

    async def notify(self, peripheral: 'EmulatedPeripheral', char: EmulatedAttribute, value: bytes):
        """Send a notification or indication to the connected central."""

    async def disconnect(self, peripheral: 'EmulatedPeripheral', reason: int):
        """Drop the link to the connected central."""

    async def update_advertisement(self, advertisement: BLEAdvertisement):
        """Replace the advertisement data that is being sent."""


class EmulatedPeripheral:
    """A peripheral that an EmulatedTransport can scan for and connect to.

    The GATT table is filled in with ``gatt_table.quick_add()`` before the
    transport is started.  Several knobs allow tests to script failures:

    - ``connectable``: if False, connection attempts never complete.
    - ``fail_connect``: if True, connection attempts fail with an early disconnect.
    - ``connect_delay``: extra seconds a connection attempt takes.
    - ``drop_during_discovery``: the link drops when the table is requested.
    - ``response_delay``: seconds every read or write takes.
    - ``pairable`` / ``pairing_delay``: how pairing requests are answered.

    Args:
        address: The device address.
        name: The advertised local name.
        services: Service uuids to advertise.  The GATT table is independent.
        rssi: The signal strength reported with advertisements.
        address_type: Either public or random.
        appearance: Optional GAP appearance code to advertise.
        tx_power: Optional tx power level to advertise.
        manufacturer_data: Optional manufacturer data keyed by company id.
    """

    def __init__(self, address: str, name: Optional[str] = None, services: Iterable[UUIDLike] = (), *,
                 rssi: int = -50, address_type: str = AddressType.PUBLIC, appearance: Optional[int] = None,
                 tx_power: Optional[int] = None, manufacturer_data: Optional[Dict[int, bytes]] = None):
        self.address = normalize_address(address)
        self.name = name
        self.services = [normalize_uuid(x) for x in services]
        self.rssi = rssi
        self.address_type = address_type
        self.appearance = appearance
        self.tx_power = tx_power
        self.manufacturer_data = manufacturer_data

        self.gatt_table = EmulatedGattTable()

        self.connectable = True
        self.fail_connect = False
        self.connect_delay = 0.0
        self.drop_during_discovery = False
        self.response_delay = 0.0
        self.pairable = True
        self.pairing_delay = 0.0

        self.connected = False
        self.paired = False

        self._channel = None  # type: Optional[EmulatedPeripheralChannel]
        self._hooks = {}  # type: Dict[EmulatedAttribute, WriteHook]
        self._logger = logging.getLogger(__name__)

    async def start(self, channel: EmulatedPeripheralChannel):
        """Attach this peripheral to a radio and start advertising."""

        self.gatt_table.update_handles()
        self._channel = channel
        await channel.update_advertisement(self.advertisement())

    async def stop(self):
        self._channel = None

    def advertisement(self) -> BLEAdvertisement:
        """Build the advertisement this peripheral currently sends."""

        flags = GAPAdFlags.LE_GENERAL_DISC_MODE | GAPAdFlags.BR_EDR_NOT_SUPPORTED
        payload = build_payload(self.name, self.services, self.manufacturer_data, self.tx_power, self.appearance,
                                flags)

        kind = AdvertisementType.CONNECTABLE if self.connectable else AdvertisementType.NONCONNECTABLE
        return BLEAdvertisement(self.address, kind, self.rssi, payload, address_type=self.address_type)

    def on_write(self, char_uuid: UUIDLike, hook: WriteHook):
        """Call hook(characteristic, value) after every write to a characteristic."""

        char = self.gatt_table.find_char(char_uuid)
        self._hooks[char] = hook

    def set_value(self, char_uuid: UUIDLike, value: bytes):
        """Change a characteristic value without notifying."""

        self.gatt_table.find_char(char_uuid).value = bytes(value)

    async def handle_write(self, attr: EmulatedAttribute, value: bytes):
        """Process a write from the central to one of our attributes."""

        attr.value = bytes(value)
        self._logger.debug("Wrote value %r to handle %d of %s", value, attr.handle, self.address)

        hook = self._hooks.get(attr)
        if hook is None:
            return

        result = hook(attr, attr.value)
        if result is not None:
            await result

    async def notify(self, char_uuid: UUIDLike, value: bytes):
        """Update a characteristic and push it to the central if it subscribed.

        Returns:
            bool: Whether a notification was actually sent.
        """

        char = self.gatt_table.find_char(char_uuid)
        char.value = bytes(value)

        if not self.connected or not char.notifying:
            return False

        await self._channel.notify(self, char, char.value)
        return True

    async def disconnect(self, reason: int = DisconnectionError.REMOTE_DISCONNECT):
        """Drop the link from the peripheral side."""

        if not self.connected:
            raise NotConnectedError('disconnect', self.address)

        await self._channel.disconnect(self, reason)

    async def update_advertisement(self):
        """Push a new advertisement after changing name, services or rssi."""

        if self._channel is not None:
            await self._channel.update_advertisement(self.advertisement())
