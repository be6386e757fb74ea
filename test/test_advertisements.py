"""Tests of advertisement parsing and the device model built from it."""

import pytest
from blegatt.defines import AdvertisementType, AddressType, GAPAdFlags, expand_uuid
from blegatt.interface import BLEAdvertisement, BLEDevice, DiscoveryFilter
from blegatt.interface.advertisement import build_payload

TI_TEMPERATURE = "f000aa00-0451-4000-b000-000000000000"


def _advert(address="aa:bb:cc:dd:ee:ff", rssi=-60, **kwargs):
    payload = build_payload(**kwargs)
    return BLEAdvertisement(address, AdvertisementType.CONNECTABLE, rssi, payload)


def test_parse_built_payload():
    advert = _advert(local_name="SensorTag", services=[0x180f, TI_TEMPERATURE], tx_power=-4, appearance=0x0040,
                     manufacturer_data={0x000d: b'\x01\x02'},
                     flags=GAPAdFlags.LE_GENERAL_DISC_MODE | GAPAdFlags.BR_EDR_NOT_SUPPORTED)

    assert advert.sender == "AA:BB:CC:DD:EE:FF"
    assert advert.local_name == "SensorTag"
    assert advert.tx_power == -4
    assert advert.appearance == 0x0040
    assert advert.flags == GAPAdFlags.LE_GENERAL_DISC_MODE | GAPAdFlags.BR_EDR_NOT_SUPPORTED
    assert advert.manufacturer_data(0x000d) == b'\x01\x02'
    assert advert.manufacturer_data(0x004c) is None

    assert advert.contains_service(0x180f)
    assert advert.contains_service(TI_TEMPERATURE)
    assert not advert.contains_service(0x1809)


def test_scan_response_is_merged():
    advert = BLEAdvertisement("AA:BB:CC:DD:EE:FF", AdvertisementType.SCANNABLE, -50,
                              build_payload(services=[0x180f]), build_payload(local_name="Later"))

    assert advert.local_name == "Later"
    assert advert.services == {expand_uuid(uint16=0x180f)}


def test_service_data():
    payload = bytes([6, 0x16, 0x0f, 0x18, 0x64, 0x00, 0x01])
    advert = BLEAdvertisement("AA:BB:CC:DD:EE:FF", AdvertisementType.NONCONNECTABLE, -50, payload)

    assert advert.service_data(0x180f) == b'\x64\x00\x01'
    assert advert.contains_service(0x180f)


def test_malformed_payload():
    """A truncated element must not raise, it is just ignored."""

    advert = BLEAdvertisement("AA:BB:CC:DD:EE:FF", AdvertisementType.CONNECTABLE, -50, bytes([10, 0x09, 0x41]))
    assert advert.local_name is None
    assert advert.services == set()


def test_explicit_fields():
    """Host stacks that already parsed the advertisement pass fields directly."""

    advert = BLEAdvertisement("AA:BB:CC:DD:EE:FF", AdvertisementType.CONNECTABLE, -50, local_name="Direct",
                              service_uuids=["180f"], service_data={"180f": b'\x10'}, tx_power=3)

    assert advert.local_name == "Direct"
    assert advert.tx_power == 3
    assert advert.contains_service(0x180f)
    assert advert.service_data(0x180f) == b'\x10'


def test_device_merge_never_reverts():
    """Later advertisements replace fields but empty ones never erase them."""

    device = BLEDevice("aa:bb:cc:dd:ee:ff")
    device.update_from_advertisement(_advert(local_name="First", services=[0x180f], rssi=-80), seen_at=1.0)
    device.update_from_advertisement(_advert(rssi=-40), seen_at=2.0)

    assert device.name == "First"
    assert device.rssi == -40
    assert device.uuids == ["0000180f-0000-1000-8000-00805f9b34fb"]
    assert device.last_seen == 2.0

    device.update_from_advertisement(_advert(local_name="Second", rssi=-50), seen_at=3.0)
    assert device.name == "Second"


def test_device_alias_and_icon():
    device = BLEDevice("AA:BB:CC:DD:EE:FF", AddressType.RANDOM, adapter="hci0")
    assert device.alias == "AA-BB-CC-DD-EE-FF"

    device.name = "Tag"
    assert device.alias == "Tag"

    device.alias = "Kitchen"
    assert device.alias == "Kitchen"

    device.alias = ""
    assert device.alias == "Tag"

    assert device.icon is None
    device.appearance = 0x03c2
    assert device.icon == "input-mouse"
    device.appearance = 0x0040
    assert device.icon == "phone"


def test_discovery_filter():
    advert = _advert(local_name="SensorTag", services=[0x180f, TI_TEMPERATURE], rssi=-60)

    assert DiscoveryFilter().empty
    assert DiscoveryFilter().matches_advertisement(advert)
    assert DiscoveryFilter(name="SensorTag").matches_advertisement(advert)
    assert not DiscoveryFilter(name="Sensor").matches_advertisement(advert)
    assert DiscoveryFilter(address="aa-bb-cc-dd-ee-ff").matches_advertisement(advert)

    assert DiscoveryFilter(uuids=[0x1809, TI_TEMPERATURE]).matches_advertisement(advert)
    assert not DiscoveryFilter(uuids=[0x1809]).matches_advertisement(advert)
    assert DiscoveryFilter(uuids=[]).uuids is None

    assert DiscoveryFilter(rssi_threshold=-70).matches_advertisement(advert)
    assert not DiscoveryFilter(rssi_threshold=-50).matches_advertisement(advert)


@pytest.mark.parametrize("name", ["", None])
def test_empty_name_never_matches_name_filter(name):
    advert = _advert(local_name=name)
    assert not DiscoveryFilter(name="SensorTag").matches_advertisement(advert)
