"""Tests of the device registry."""

import asyncio
import pytest
from typedargs.exceptions import ArgumentError
from blegatt.core import DeviceRegistry
from blegatt.defines import AdvertisementType, AddressType
from blegatt.interface import BLEAdvertisement
from blegatt.interface.advertisement import build_payload
from blegatt.interface.errors import NotFoundError


def _advert(address, name=None, services=(), rssi=-60):
    return BLEAdvertisement(address, AdvertisementType.CONNECTABLE, rssi,
                            build_payload(local_name=name, services=services))


def test_observe_creates_and_updates():
    registry = DeviceRegistry("hci0")

    first = registry.observe(_advert("aa:bb:cc:dd:ee:ff", "Tag", rssi=-80), seen_at=1.0)
    second = registry.observe(_advert("AA:BB:CC:DD:EE:FF", rssi=-30), seen_at=2.0)

    assert first is second
    assert len(registry) == 1
    assert "aa-bb-cc-dd-ee-ff" in registry
    assert first.name == "Tag"
    assert first.rssi == -30
    assert first.adapter == "hci0"


def test_observe_order_independent():
    """Applying the same advertisements in any order converges on the last values seen."""

    adverts = [_advert("AA:BB:CC:DD:EE:FF", "One", [0x180f], -70), _advert("AA:BB:CC:DD:EE:FF", rssi=-50),
               _advert("AA:BB:CC:DD:EE:FF", "Two", rssi=-40)]

    forward = DeviceRegistry()
    for advert in adverts:
        forward.observe(advert)

    device = forward.get("AA:BB:CC:DD:EE:FF")
    assert device.name == "Two"
    assert device.rssi == -40
    assert device.uuids == ["0000180f-0000-1000-8000-00805f9b34fb"]


def test_devices_in_first_seen_order():
    registry = DeviceRegistry()
    registry.observe(_advert("00:00:00:00:00:02"))
    registry.observe(_advert("00:00:00:00:00:01"))
    registry.observe(_advert("00:00:00:00:00:02"))

    assert [x.address for x in registry.devices()] == ["00:00:00:00:00:02", "00:00:00:00:00:01"]


def test_lookup_creates_unseen_device():
    registry = DeviceRegistry()

    device = registry.lookup("11:22:33:44:55:66", AddressType.RANDOM)
    assert device.address_type == AddressType.RANDOM
    assert device.last_seen is None
    assert registry.lookup("11-22-33-44-55-66") is device

    # Never seen advertising so never expired
    assert registry.expire(0.0, now=1000.0) == []

    with pytest.raises(ArgumentError):
        registry.lookup("not an address")


def test_find_immediate(loop):
    registry = DeviceRegistry()

    with pytest.raises(NotFoundError):
        loop.run_coroutine(registry.find(name="Tag", timeout=0))

    registry.observe(_advert("AA:BB:CC:DD:EE:FF", "Tag", [0x180f]))

    device = loop.run_coroutine(registry.find(name="Tag", timeout=0))
    assert device.address == "AA:BB:CC:DD:EE:FF"

    device = loop.run_coroutine(registry.find(uuid="180f", timeout=0))
    assert device.address == "AA:BB:CC:DD:EE:FF"

    with pytest.raises(NotFoundError):
        loop.run_coroutine(registry.find(name="Tag", uuid=0x1809, timeout=0))

    with pytest.raises(ArgumentError):
        loop.run_coroutine(registry.find(name="Tag", timeout=-1))


def test_find_waits_for_device(loop):
    registry = DeviceRegistry()

    async def _scenario():
        waiter = asyncio.ensure_future(registry.find(address="aa:bb:cc:dd:ee:ff", timeout=1.0))
        await asyncio.sleep(0.01)

        registry.observe(_advert("11:11:11:11:11:11"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        registry.observe(_advert("AA:BB:CC:DD:EE:FF"))
        return await waiter

    device = loop.run_coroutine(_scenario())
    assert device.address == "AA:BB:CC:DD:EE:FF"
    assert registry._waiters == []


def test_find_timeout(loop):
    registry = DeviceRegistry()

    with pytest.raises(NotFoundError):
        loop.run_coroutine(registry.find(name="Missing", timeout=0.05))

    assert registry._waiters == []


def test_evict_and_expire():
    registry = DeviceRegistry()
    registry.observe(_advert("00:00:00:00:00:01"), seen_at=10.0)
    registry.observe(_advert("00:00:00:00:00:02"), seen_at=100.0)
    connected = registry.observe(_advert("00:00:00:00:00:03"), seen_at=10.0)
    connected.connected = True

    assert registry.expire(50.0, now=110.0) == ["00:00:00:00:00:01"]
    assert len(registry) == 2

    assert not registry.evict("00:00:00:00:00:03")
    assert not registry.evict("00:00:00:00:00:09")
    assert registry.evict("00:00:00:00:00:02")

    registry.observe(_advert("00:00:00:00:00:04"))
    registry.reset()
    assert [x.address for x in registry.devices()] == ["00:00:00:00:00:03"]
