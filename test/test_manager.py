"""Tests of the blocking BluetoothManager facade."""

import queue
import pytest
from blegatt import BluetoothManager
from blegatt.emulation import EmulatedTransport, build_sensortag
from blegatt.emulation.sensortag import TEMPERATURE_DATA, TEMPERATURE_CONFIG
from blegatt.interface import DiscoveryFilter
from blegatt.interface.errors import NotFoundError
from blegatt.utilities.async_tools import BackgroundEventLoop
from conftest import build_thermometer


@pytest.fixture(scope="function")
def manager():
    loop = BackgroundEventLoop()
    transport = EmulatedTransport([build_sensortag(), build_thermometer()], dict(advertisement_rate=0.05))

    with BluetoothManager(transport, dict(io_timeout=0.5), loop=loop) as manager:
        yield manager

    loop.stop()


def test_find_and_read(manager):
    assert manager.start_discovery()

    sensor = manager.find(name="SensorTag", timeout=1.0)
    manager.stop_discovery()

    assert sensor.address == "AA:BB:CC:DD:EE:FF"
    assert sensor.name == "SensorTag"
    assert not sensor.connected

    sensor.connect()
    assert sensor.connected
    assert sensor.device.connected

    sensor.write(TEMPERATURE_CONFIG, b'\x01')
    assert sensor.read(sensor.find(TEMPERATURE_DATA)) == b'\x00\x01\x00\x02'

    sensor.disconnect()
    assert not sensor.connected


def test_find_missing(manager):
    manager.start_discovery(DiscoveryFilter(uuids=[0x1809]))

    with pytest.raises(NotFoundError):
        manager.find(name="SensorTag", timeout=0.1)

    assert [x.name for x in manager.devices()] == ["Thermo"]


def test_subscribe_and_poll(manager):
    thermo = manager.device("11:22:33:44:55:66")
    thermo.connect()

    values = queue.Queue()
    thermo.subscribe(0x2a19, lambda char, value: values.put(('notify', value)))

    poller = thermo.poll(0x2a1d, 0.02, lambda char, value: values.put(('poll', value)))
    assert values.get(timeout=1.0) == ('poll', b'\x02')
    poller.cancel()

    thermo.unsubscribe(0x2a19)
    thermo.disconnect()


def test_start_stop_idempotent(manager):
    manager.start()
    manager.stop()
    manager.stop()
    manager.start()
