"""Tests of GATT table discovery and lookup."""

import pytest
from typedargs.exceptions import InternalError
from blegatt.core import GattCatalog, ConnectionSession, build_table
from blegatt.defines import AttributeType, normalize_uuid
from blegatt.interface import AttributeRecord, GattService
from blegatt.interface.errors import (DiscoveryTimeoutError, ConnectTimeoutError, NotFoundError,
                                      ServiceDiscoveryFailedError)

THERMO = "11:22:33:44:55:66"


def _records():
    return [
        AttributeRecord(AttributeRecord.SERVICE, 1, normalize_uuid(0x180f), end_handle=5),
        AttributeRecord(AttributeRecord.CHARACTERISTIC, 3, normalize_uuid(0x2a19), properties=0x12),
        AttributeRecord(AttributeRecord.DESCRIPTOR, 4, AttributeType.CLIENT_CONFIG),
        AttributeRecord(AttributeRecord.DESCRIPTOR, 5, normalize_uuid(0x2901)),
        AttributeRecord(AttributeRecord.SERVICE, 6, normalize_uuid(0x180f), end_handle=8),
        AttributeRecord(AttributeRecord.CHARACTERISTIC, 8, normalize_uuid(0x2a19), properties=0x02),
    ]


def test_build_table():
    table = build_table(_records())

    assert len(table) == 2
    first, second = table.services
    assert (first.instance, second.instance) == (0, 1)

    char = first.characteristics[0]
    assert char.properties.read and char.properties.notify and not char.properties.write
    assert char.client_config.handle == 4
    assert char.can_subscribe('notify')
    assert not char.can_subscribe('indicate')
    assert char.service is first
    assert char.descriptors[1].characteristic is char

    assert not second.characteristics[0].can_subscribe('notify')


def test_build_table_rejects_malformed():
    records = _records()
    records[1], records[2] = records[2], records[1]
    with pytest.raises(ServiceDiscoveryFailedError):
        build_table(records)

    with pytest.raises(ServiceDiscoveryFailedError):
        build_table(_records()[1:])

    orphan = [AttributeRecord(AttributeRecord.SERVICE, 1, normalize_uuid(0x180f), end_handle=2),
              AttributeRecord(AttributeRecord.DESCRIPTOR, 2, AttributeType.CLIENT_CONFIG)]
    with pytest.raises(ServiceDiscoveryFailedError):
        build_table(orphan)

    outside = [AttributeRecord(AttributeRecord.SERVICE, 1, normalize_uuid(0x180f), end_handle=2),
               AttributeRecord(AttributeRecord.CHARACTERISTIC, 3, normalize_uuid(0x2a19), properties=0x02)]
    with pytest.raises(ServiceDiscoveryFailedError):
        build_table(outside)


def test_table_lookup():
    table = build_table(_records())
    table.freeze()

    assert table.find_service(0x180f).instance == 0
    assert table.find_service("180f", instance=1).handle == 6
    assert table.find_char(0x2a19).handle == 3
    assert table.find_char(0x2a19, service=table.services[1]).handle == 8
    assert table.find_char(0x2a19, instance=0, service=table.find_service(0x180f, 1)).handle == 8
    assert [x.handle for x in table.find_all(0x2a19)] == [3, 8]
    assert table.find(0x2902).handle == 4
    assert table.find(0x2901, service=0x180f).handle == 5
    assert table.services[0].characteristics[0].find_descriptor(0x2901).handle == 5
    assert table.lookup_handle(8) is table.services[1].characteristics[0]
    assert table.lookup_handle(7) is None

    with pytest.raises(NotFoundError):
        table.find_service(0x1809)

    with pytest.raises(NotFoundError):
        table.find_char(0x2a00)

    with pytest.raises(NotFoundError):
        table.find(0x2a19, instance=2)


def test_frozen_table():
    table = build_table(_records())
    table.freeze()

    with pytest.raises(InternalError):
        table.add_service(GattService(normalize_uuid(0x1800)))


def test_catalog_from_emulated_device(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))
    table = periph.services

    assert table.frozen
    assert [str(x.uuid)[4:8] for x in table] == ["1809", "1809", "180a", "180f"]

    temps = table.find_all(0x1809)
    assert [x.instance for x in temps] == [0, 1]
    assert table.find_char(0x2a1c, service=temps[1]).handle == 11

    battery = table.find_char(0x2a19)
    assert [str(x.uuid)[4:8] for x in battery.descriptors] == ["2902", "2901"]

    # Every characteristic reported by the peer is in the table
    assert len(list(table.characteristics())) == 7


def test_catalog_fresh_after_reconnect(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))
    first = periph.services
    loop.run_coroutine(periph.disconnect())

    assert periph.services is None

    loop.run_coroutine(periph.connect())
    second = periph.services

    assert second is not first
    assert second.find_char(0x2a19) is not first.find_char(0x2a19)


def test_discovery_link_loss(loop, client, thermometer):
    thermometer.drop_during_discovery = True

    with pytest.raises(ServiceDiscoveryFailedError):
        loop.run_coroutine(client.connect(THERMO))

    periph = client.peripheral(THERMO)
    assert periph.services is None
    assert not periph.device.connected


def test_discovery_timeout(loop, transport, thermometer):
    """The catalog reports its own deadline separately from the connection deadline."""

    thermometer.response_delay = 0.2

    async def _discover():
        await transport.start()

        try:
            link = await transport.link_connect(THERMO, 'public')
            session = ConnectionSession(THERMO, link)
            return await GattCatalog().discover(transport, session, timeout=0.05)
        finally:
            await transport.stop()

    with pytest.raises(DiscoveryTimeoutError) as excinfo:
        loop.run_coroutine(_discover())

    assert isinstance(excinfo.value, ConnectTimeoutError)
