"""Shared fixtures for blegatt tests."""

import pytest
from blegatt import GattClient
from blegatt.emulation import EmulatedPeripheral, EmulatedTransport, build_sensortag
from blegatt.utilities.async_tools import BackgroundEventLoop


@pytest.fixture(scope="module")
def loop():
    """A clean background event loop."""

    loop = BackgroundEventLoop()
    yield loop
    loop.stop()


def build_thermometer(address="11:22:33:44:55:66"):
    """A peripheral with a duplicated service and an indicate-only characteristic."""

    periph = EmulatedPeripheral(address, "Thermo", services=[0x1809], rssi=-70)

    table = periph.gatt_table
    table.quick_add(0x1809, 0x2a1c, b'\x00\x00\x00\x00', read=True, indicate=True)
    table.quick_add(0x1809, 0x2a1d, b'\x02', read=True)
    table.quick_add(0x1809, 0x2a21, b'\x0a\x00', read=True, write=True, write_no_response=True)

    table.add_service(0x1809)
    table.quick_add(0x1809, 0x2a1c, b'\x01\x00\x00\x00', read=True)

    table.quick_add(0x180a, 0x2a29, b'Acme', read=True)
    table.quick_add(0x180a, 0x2a2a, write_no_response=True)

    char = table.quick_add(0x180f, 0x2a19, b'\x64', read=True, notify=True)
    table.add_descriptor(char, 0x2901, b'Battery')

    return periph


@pytest.fixture(scope="function")
def sensortag():
    return build_sensortag()


@pytest.fixture(scope="function")
def thermometer():
    return build_thermometer()


@pytest.fixture(scope="function")
def transport(loop, sensortag, thermometer):
    """An emulated radio with a sensortag and a thermometer in range."""

    transport = EmulatedTransport([sensortag, thermometer], dict(advertisement_rate=0.05))
    yield transport


@pytest.fixture(scope="function")
def client(loop, transport):
    """A started GattClient on the emulated transport with short timeouts."""

    client = GattClient(transport, dict(connect_timeout=1.0, io_timeout=0.5, discovery_timeout=1.0,
                                        pairing_timeout=1.0, disconnect_timeout=0.5))
    loop.run_coroutine(client.start())

    yield client

    loop.run_coroutine(client.stop())
