"""The registry's view of one remote peripheral and filters over it."""

import time
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID
from ..defines import AddressType, normalize_address, normalize_uuid, UUIDLike
from .advertisement import BLEAdvertisement


# GAP appearance categories (upper 10 bits) mapped to freedesktop icon names
_APPEARANCE_ICONS = {
    0x01: 'phone',
    0x02: 'computer',
    0x05: 'video-display',
    0x0a: 'multimedia-player',
    0x0b: 'scanner',
}

_HID_ICONS = {
    0x01: 'input-keyboard',
    0x02: 'input-mouse',
    0x03: 'input-gaming',
    0x04: 'input-gaming',
    0x05: 'input-tablet',
    0x08: 'scanner',
}


class BLEDevice:
    """A peripheral that has been seen by, or explicitly looked up on, an adapter.

    Devices are created by the DeviceRegistry and updated from every
    advertisement received from them.  The connection state machine owns the
    ``connected`` flag and the pairing flow owns ``paired``; ``paired`` is not
    reset by a disconnection.

    Args:
        address: The device address in any accepted format.
        address_type: Either public or random.
        adapter: The identifier of the adapter that owns this device.
    """

    def __init__(self, address: str, address_type: str = AddressType.PUBLIC, adapter: Optional[str] = None):
        self.address = normalize_address(address)
        self.address_type = address_type
        self.adapter = adapter

        self.name = None  # type: Optional[str]
        self.bluetooth_class = None  # type: Optional[int]
        self.appearance = None  # type: Optional[int]
        self.rssi = None  # type: Optional[int]
        self.tx_power = None  # type: Optional[int]
        self.modalias = None  # type: Optional[str]
        self.services = set()  # type: Set[UUID]
        self.manufacturer_data = {}  # type: Dict[int, bytes]
        self.service_data = {}  # type: Dict[UUID, bytes]

        self.paired = False
        self.trusted = False
        self.blocked = False
        self.legacy_pairing = False
        self.connected = False

        self.last_seen = None  # type: Optional[float]
        self._alias = None  # type: Optional[str]
        self._icon = None  # type: Optional[str]

    @property
    def alias(self) -> str:
        """The display name of the device.

        When no alias has been set this falls back to the advertised name
        and then to the address with dashes in place of colons.
        """

        if self._alias:
            return self._alias

        if self.name:
            return self.name

        return self.address.replace(':', '-')

    @alias.setter
    def alias(self, value: Optional[str]):
        self._alias = value or None

    @property
    def icon(self) -> Optional[str]:
        """An icon name derived from the appearance code unless one was set."""

        if self._icon is not None:
            return self._icon

        if self.appearance is None:
            return None

        category = self.appearance >> 6
        if category == 0x0f:
            return _HID_ICONS.get(self.appearance & 0x3f, 'input-keyboard')

        return _APPEARANCE_ICONS.get(category)

    @icon.setter
    def icon(self, value: Optional[str]):
        self._icon = value

    @property
    def uuids(self) -> List[str]:
        """The advertised service uuids in canonical string form."""

        return sorted(str(x) for x in self.services)

    def update_from_advertisement(self, advert: BLEAdvertisement, seen_at: Optional[float] = None):
        """Merge the non-empty fields of an advertisement into this device.

        Fields that are present replace the previously known values; missing
        or empty fields never erase anything.
        """

        if seen_at is None:
            seen_at = time.monotonic()

        self.last_seen = seen_at

        if advert.address_type:
            self.address_type = advert.address_type

        if advert.local_name:
            self.name = advert.local_name

        if advert.rssi is not None:
            self.rssi = advert.rssi

        if advert.tx_power is not None:
            self.tx_power = advert.tx_power

        if advert.appearance is not None:
            self.appearance = advert.appearance

        if len(advert.services) > 0:
            self.services = set(advert.services)

        if len(advert.manufacturers) > 0:
            self.manufacturer_data.update(advert.manufacturers)

        if len(advert.all_service_data) > 0:
            self.service_data.update(advert.all_service_data)

    def __repr__(self):
        return "<BLEDevice %s (%s) rssi=%s connected=%s>" % (self.address, self.alias, self.rssi, self.connected)


class DiscoveryFilter:
    """Criteria a device or advertisement must meet.

    Every criterion that is left as None always matches.  The uuid criterion
    matches if any one of the given uuids is advertised.

    Args:
        address: Exact device address, compared in canonical form.
        name: Exact advertised name, not a substring.
        uuids: Service uuids, any of which must be advertised.
        rssi_threshold: Minimum signal strength in dBm.
    """

    def __init__(self, address: Optional[str] = None, name: Optional[str] = None,
                 uuids: Optional[Iterable[UUIDLike]] = None, rssi_threshold: Optional[int] = None):
        self.address = normalize_address(address) if address is not None else None
        self.name = name
        self.uuids = frozenset(normalize_uuid(x) for x in uuids) if uuids else None
        self.rssi_threshold = rssi_threshold

    @property
    def empty(self) -> bool:
        return self.address is None and self.name is None and self.uuids is None and self.rssi_threshold is None

    def matches_device(self, device: BLEDevice) -> bool:
        """Check a registry entry against this filter."""

        return self._matches(device.address, device.name, device.services, device.rssi)

    def matches_advertisement(self, advert: BLEAdvertisement) -> bool:
        """Check a single advertisement against this filter."""

        return self._matches(advert.sender, advert.local_name, advert.services, advert.rssi)

    def _matches(self, address, name, services, rssi):
        if self.address is not None and address != self.address:
            return False

        if self.name is not None and name != self.name:
            return False

        if self.uuids is not None and self.uuids.isdisjoint(services):
            return False

        if self.rssi_threshold is not None and (rssi is None or rssi < self.rssi_threshold):
            return False

        return True

    def __repr__(self):
        return "DiscoveryFilter(address=%r, name=%r, uuids=%r, rssi_threshold=%r)" % (
            self.address, self.name, self.uuids, self.rssi_threshold)
