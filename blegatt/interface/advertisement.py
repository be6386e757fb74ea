"""Generic wrapper around a Bluetooth Advertisement including optional scan response data.

All bluetooth advertisements are divided into typed fields.

The ``BLEAdvertisement`` class implements decoders for the field types that
the device registry cares about: names, service uuid lists, manufacturer and
service data, tx power, appearance and flags.  Host stacks that only hand out
already decoded fields can pass them in directly as overrides, in which case
the raw payload may be empty.
"""

from typing import Optional, Set, Dict, Iterable
import uuid
import struct
from ..defines import AdElementType, AddressType, compact_uuid, expand_uuid, normalize_address, normalize_uuid


class BLEAdvertisement:
    """Data class for a Bluetooth 4.0+ advertisement packet.

    If the advertisement contains a scan response packet, that is included as
    well in the same BLEAdvertisement class.  Convience parsing is performed
    so that individual data fields inside the advertisement can be checked and
    iterated over.

    Args:
        sender: The MAC address of the device sending this advertisement
        kind: The BLE defined advertisement packet type
        rssi: The RSSI signal strength of the received packet, in dBm
        advert: The raw advertisement data contents
        scan_response: If there was a scan request performed, the scan response contents.
        address_type: Either public or random.
        local_name: Already decoded local name, takes precedence over the payload.
        service_uuids: Already decoded service uuids, takes precedence over the payload.
        manufacturer_data: Already decoded manufacturer data keyed by company id.
        service_data: Already decoded service data keyed by service uuid.
        tx_power: Already decoded tx power level in dBm.
    """

    def __init__(self, sender: str, kind: int, rssi: Optional[int], advert: bytes = b'',
                 scan_response: Optional[bytes] = None, address_type: str = AddressType.PUBLIC, *,
                 local_name: Optional[str] = None, service_uuids: Optional[Iterable] = None,
                 manufacturer_data: Optional[Dict[int, bytes]] = None,
                 service_data: Optional[Dict[uuid.UUID, bytes]] = None, tx_power: Optional[int] = None):
        self.sender = normalize_address(sender)
        self.address_type = address_type
        self.rssi = rssi
        self.advertisement = advert
        self.scan_response = scan_response
        self.kind = kind
        self._elements = None  # type: Optional[Dict[int, bytes]]
        self._services = None  # type: Optional[Set[uuid.UUID]]

        self._local_name = local_name
        self._tx_power = tx_power
        self._manufacturers = dict(manufacturer_data) if manufacturer_data is not None else None
        self._service_data = None  # type: Optional[Dict[uuid.UUID, bytes]]

        if service_uuids is not None:
            self._services = set(normalize_uuid(x) for x in service_uuids)

        if service_data is not None:
            self._service_data = {normalize_uuid(key): value for key, value in service_data.items()}

    @property
    def elements(self) -> Dict[int, bytes]:
        """The parsed bluetooth ad elements in the advertisement."""

        if self._elements is None:
            self._elements = {}
            for ad_type, contents in self._iter_elements():
                if ad_type not in self._elements:
                    self._elements[ad_type] = contents
                else:
                    extra_content = _prepare_join(ad_type, contents)
                    if extra_content is not None:
                        self._elements[ad_type] += extra_content

        return self._elements

    @property
    def services(self) -> Set[uuid.UUID]:
        """Return the list of services mentioned in the advertisement."""

        if self._services is None:
            self._services = set(_extract_services(self.elements))

        return self._services

    @property
    def local_name(self) -> Optional[str]:
        """The complete local name, or the shortened one if that is all there is."""

        if self._local_name is not None:
            return self._local_name

        raw = self.elements.get(AdElementType.COMPLETE_LOCAL_NAME)
        if raw is None:
            raw = self.elements.get(AdElementType.SHORTENED_LOCAL_NAME)

        if not raw:
            return None

        return raw.decode('utf-8', errors='replace')

    @property
    def tx_power(self) -> Optional[int]:
        """The advertised transmit power level in dBm."""

        if self._tx_power is not None:
            return self._tx_power

        raw = self.elements.get(AdElementType.TX_POWER_LEVEL)
        if raw is None or len(raw) != 1:
            return None

        return struct.unpack("<b", raw)[0]

    @property
    def appearance(self) -> Optional[int]:
        """The 16-bit GAP appearance code."""

        raw = self.elements.get(AdElementType.APPEARANCE)
        if raw is None or len(raw) != 2:
            return None

        return struct.unpack("<H", raw)[0]

    @property
    def flags(self) -> int:
        """The GAP flags byte, 0 if not present."""

        raw = self.elements.get(AdElementType.FLAGS)
        if not raw:
            return 0

        return raw[0]

    @property
    def manufacturers(self) -> Dict[int, bytes]:
        """All manufacturer specific data keyed by 16-bit company identifier."""

        if self._manufacturers is None:
            self._manufacturers = {}
            for ad_type, contents in self._iter_elements():
                if ad_type != AdElementType.MANUFACTURER_DATA or len(contents) < 2:
                    continue

                manu_id, = struct.unpack_from("<H", contents)
                self._manufacturers[manu_id] = contents[2:]

        return self._manufacturers

    @property
    def all_service_data(self) -> Dict[uuid.UUID, bytes]:
        """All service data elements keyed by the expanded service uuid."""

        if self._service_data is None:
            self._service_data = {}
            for ad_type, contents in self._iter_elements():
                size = _SERVICE_DATA_SIZES.get(ad_type)
                if size is None or len(contents) < size:
                    continue

                self._service_data[expand_uuid(contents[:size])] = contents[size:]

        return self._service_data

    def contains_service(self, service_uuid: uuid.UUID) -> bool:
        """Check if this advertisement includes a specific service UUID.

        This can be used to see if the device is compatible with a given
        profile. Note that service uuids can be encoded as either 2, 4 or 16
        byte objects, they are all expanded before being compared.

        Args:
            service_uuid: The UUID to check for.
        """

        return normalize_uuid(service_uuid) in self.services

    def service_data(self, service_uuid: uuid.UUID) -> Optional[bytes]:
        """Check if this advertisement includes service data for a specific service."""

        return self.all_service_data.get(normalize_uuid(service_uuid))

    def manufacturer_data(self, manufacturer: int) -> Optional[bytes]:
        """Fetch the manufacturer data from a specific manufacturer.

        If the given manufacturer is not present, None is returned.
        """

        return self.manufacturers.get(manufacturer)

    def _iter_elements(self):
        """Iterate over all ad elements inside an advertisement.

        All bluetooth advertisements are composed of a list of typed elements.
        This method lets you iterate over the elements that you care about,
        by type.

        Yields:
            The ad elements with their types and data.
        """

        yield from _iter_elements(self.advertisement)

        if self.scan_response is not None:
            yield from _iter_elements(self.scan_response)

    def __repr__(self):
        return "<BLEAdvertisement %s rssi=%s name=%r>" % (self.sender, self.rssi, self.local_name)


def build_payload(local_name: Optional[str] = None, services: Iterable[uuid.UUID] = (),
                  manufacturer_data: Optional[Dict[int, bytes]] = None, tx_power: Optional[int] = None,
                  appearance: Optional[int] = None, flags: Optional[int] = None) -> bytes:
    """Encode advertisement fields into a raw ad element payload.

    16-bit, 32-bit and 128-bit uuids are each packed into their own complete
    uuid list element using their most compact representation.
    """

    elements = []

    if flags is not None:
        elements.append((AdElementType.FLAGS, bytes([flags])))

    by_size = {2: b'', 4: b'', 16: b''}
    for service in services:
        packed = compact_uuid(normalize_uuid(service))
        by_size[len(packed)] += packed

    for size, ad_type in ((2, AdElementType.COMPLETE_UUID_16_LIST), (4, AdElementType.COMPLETE_UUID_32_LIST),
                          (16, AdElementType.COMPLETE_UUID_128_LIST)):
        if len(by_size[size]) > 0:
            elements.append((ad_type, by_size[size]))

    if local_name is not None:
        elements.append((AdElementType.COMPLETE_LOCAL_NAME, local_name.encode('utf-8')))

    if tx_power is not None:
        elements.append((AdElementType.TX_POWER_LEVEL, struct.pack("<b", tx_power)))

    if appearance is not None:
        elements.append((AdElementType.APPEARANCE, struct.pack("<H", appearance)))

    if manufacturer_data is not None:
        for manu_id, data in manufacturer_data.items():
            elements.append((AdElementType.MANUFACTURER_DATA, struct.pack("<H", manu_id) + data))

    return b''.join(bytes([len(contents) + 1, int(ad_type)]) + contents for ad_type, contents in elements)


_SERVICE_ELEMENTS = {
    # AD element type: size of each UUID, is it an array?
    AdElementType.INCOMPLETE_UUID_16_LIST: (2, True),
    AdElementType.COMPLETE_UUID_16_LIST: (2, True),
    AdElementType.INCOMPLETE_UUID_32_LIST: (4, True),
    AdElementType.COMPLETE_UUID_32_LIST: (4, True),
    AdElementType.INCOMPLETE_UUID_128_LIST: (16, True),
    AdElementType.COMPLETE_UUID_128_LIST: (16, True),
    AdElementType.SERVICE_DATA_UUID_16: (2, False),
    AdElementType.SERVICE_DATA_UUID_32: (4, False),
    AdElementType.SERVICE_DATA_UUID_128: (16, False)
}

_SERVICE_NAMES = frozenset(_SERVICE_ELEMENTS)

_SERVICE_DATA_SIZES = {
    AdElementType.SERVICE_DATA_UUID_16: 2,
    AdElementType.SERVICE_DATA_UUID_32: 4,
    AdElementType.SERVICE_DATA_UUID_128: 16
}


def _extract_services(elements):
    for ad_type, contents in elements.items():
        if ad_type not in _SERVICE_NAMES:
            continue

        size, is_list = _SERVICE_ELEMENTS[ad_type]

        for compressed_service in _iter_chunks(contents, size, is_list):
            yield expand_uuid(compressed_service)


def _iter_chunks(contents, size, allow_many=True):
    """Iterate over fixed size chunks of an array."""

    for i in range(0, len(contents), size):
        chunk = contents[i:i + size]
        if len(chunk) != size:
            return

        yield chunk

        if not allow_many:
            return


def _iter_elements(data: bytes):
    i = 0

    while i < len(data):
        length = data[i]

        if length == 0:
            return

        # Truncated elements are dropped along with anything after them
        end = i + length + 1
        if end > len(data):
            return

        ad_type = data[i + 1]
        element = data[i + 2:end]

        try:
            ad_type = AdElementType(ad_type)
        except ValueError:
            pass

        yield ad_type, element

        i = end


# Map of joinable AD types and the prefix discard length for each one
_JOINABLE_AD_TYPES = {
    AdElementType.INCOMPLETE_UUID_16_LIST: 0,
    AdElementType.COMPLETE_UUID_16_LIST: 0,
    AdElementType.INCOMPLETE_UUID_32_LIST: 0,
    AdElementType.COMPLETE_UUID_32_LIST: 0,
    AdElementType.INCOMPLETE_UUID_128_LIST: 0,
    AdElementType.COMPLETE_UUID_128_LIST: 0,
    AdElementType.MANUFACTURER_DATA: 2
}


def _prepare_join(ad_type, contents):
    """Strip redundant information from an ad element for concatenation.

    For example, manufacturer data starts with a 2 byte manufacturer id.
    When joining two adjacent manufacturer data elements, the second id
    should be stripped.  UUID lists from the advertisement and the scan
    response are simply appended.

    Not all ad elements are allowed to have multiple copies in a single
    advertisement, so those are discarded if found.
    """

    join_size = _JOINABLE_AD_TYPES.get(ad_type)
    if join_size is None:
        return None

    return contents[join_size:]
