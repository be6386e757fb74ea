"""Tests of the discovery controller against the emulated transport."""

import asyncio
import pytest
from blegatt.interface import DiscoveryFilter
from blegatt.interface.errors import NotFoundError, TransportError


def _scan(loop, client, device_filter=None, duration=0.1):
    async def _run():
        session = await client.start_discovery(device_filter)
        await asyncio.sleep(duration)
        return session

    return loop.run_coroutine(_run())


def test_discovery_populates_registry(loop, client):
    session = _scan(loop, client)

    assert session.active
    assert client.discovery.running
    assert session.advertisements >= 2

    names = sorted(x.name for x in client.devices())
    assert names == ["SensorTag", "Thermo"]

    loop.run_coroutine(client.stop_discovery())
    assert not session.active
    assert not client.discovery.running

    # Stopping never clears what was found
    assert len(client.devices()) == 2


def test_filtered_discovery(loop, client):
    session = _scan(loop, client, DiscoveryFilter(uuids=[0x1809]))
    loop.run_coroutine(session.stop())

    assert [x.name for x in client.devices()] == ["Thermo"]


def test_rssi_threshold(loop, client):
    _scan(loop, client, DiscoveryFilter(rssi_threshold=-60))
    loop.run_coroutine(client.stop_discovery())

    assert [x.name for x in client.devices()] == ["SensorTag"]


def test_start_is_idempotent(loop, client, transport):
    events = []
    transport.events.every_match(events.append, event="scanning_started")
    transport.events.every_match(events.append, event="scanning_stopped")

    first = _scan(loop, client, DiscoveryFilter(name="SensorTag"), duration=0.01)
    second = _scan(loop, client, DiscoveryFilter(name="Thermo"), duration=0.01)

    assert first is second
    assert second.filter.name == "SensorTag"

    loop.run_coroutine(client.stop_discovery())
    loop.run_coroutine(client.stop_discovery())
    loop.run_coroutine(asyncio.sleep(0.02))

    assert [x.event for x in events] == ["scanning_started", "scanning_stopped"]


def test_session_context_manager(loop, client):
    async def _run():
        async with await client.start_discovery() as session:
            await asyncio.sleep(0.01)
            assert client.discovery.running

        return session

    session = loop.run_coroutine(_run())
    assert not session.active
    assert not client.discovery.running


def test_transport_ends_scan(loop, client, transport):
    session = _scan(loop, client, duration=0.01)

    loop.run_coroutine(transport.scan_stop())
    loop.run_coroutine(asyncio.sleep(0.02))

    assert not session.active
    assert not client.discovery.running


def test_scan_start_failure(loop, client, transport):
    async def _broken(_filter=None):
        raise TransportError("radio is off")

    transport.scan_start = _broken

    with pytest.raises(TransportError):
        loop.run_coroutine(client.start_discovery())

    assert not client.discovery.running


def test_find_device(loop, client):
    async def _run():
        await client.start_discovery()

        try:
            return await client.find_device(name="Thermo", timeout=1.0)
        finally:
            await client.stop_discovery()

    device = loop.run_coroutine(_run())
    assert device.address == "11:22:33:44:55:66"
    assert device.rssi == -70

    with pytest.raises(NotFoundError):
        loop.run_coroutine(client.find_device(name="Nobody", timeout=0.05))


def test_ignores_connected_advertisers(loop, client):
    """Peripherals stop advertising while connected."""

    loop.run_coroutine(client.connect("AA:BB:CC:DD:EE:FF"))

    _scan(loop, client)
    loop.run_coroutine(client.stop_discovery())

    advertised = [x.name for x in client.devices() if x.last_seen is not None]
    assert advertised == ["Thermo"]
