"""Tests of attribute reads, writes, subscriptions and polling."""

import asyncio
import pytest
from typedargs.exceptions import ArgumentError
from blegatt.defines import ClientConfig
from blegatt.emulation.sensortag import TEMPERATURE_DATA, TEMPERATURE_CONFIG
from blegatt.interface.errors import (DisconnectionError, InvalidStateError, NotConnectedError, NotPermittedError,
                                      NotSupportedError, ReadTimeoutError, TransportError, ValueTooLongError,
                                      WriteTimeoutError)

SENSORTAG = "AA:BB:CC:DD:EE:FF"
THERMO = "11:22:33:44:55:66"


@pytest.fixture(scope="function")
def writes(transport):
    """Record every attribute write that reaches the radio."""

    seen = []
    original = transport.attribute_write

    async def _recording_write(link, handle, value, ack_required):
        seen.append((handle, value, ack_required))
        await original(link, handle, value, ack_required)

    transport.attribute_write = _recording_write
    return seen


def test_read_caches_value(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))

    char = periph.find(0x2a29)
    assert char.value is None

    value = loop.run_coroutine(periph.read(char))
    assert value == b'Acme'
    assert char.value == b'Acme'

    assert loop.run_coroutine(periph.read(0x2901)) == b'Battery'


def test_read_not_permitted(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))

    with pytest.raises(NotPermittedError):
        loop.run_coroutine(periph.read(0x2a2a))


def test_write_modes(loop, client, thermometer, writes):
    periph = loop.run_coroutine(client.connect(THERMO))
    char = periph.find(0x2a21)

    loop.run_coroutine(periph.write(char, b'\x01\x02'))
    loop.run_coroutine(periph.write(char, b'\x03\x04', with_response=True))
    loop.run_coroutine(periph.write(0x2a2a, b'\x05'))

    assert writes == [(8, b'\x01\x02', False), (8, b'\x03\x04', True), (16, b'\x05', False)]
    assert thermometer.gatt_table.find_char(0x2a21).value == b'\x03\x04'

    with pytest.raises(NotPermittedError):
        loop.run_coroutine(periph.write(0x2a2a, b'\x05', with_response=True))

    with pytest.raises(NotPermittedError):
        loop.run_coroutine(periph.write(0x2a29, b'Other'))

    with pytest.raises(NotPermittedError):
        loop.run_coroutine(periph.write(periph.find(0x180f), b'\x00'))


def test_oversized_write(loop, client, writes):
    """Values longer than the radio allows are rejected, never truncated."""

    periph = loop.run_coroutine(client.connect(THERMO))

    loop.run_coroutine(periph.write(0x2a21, bytes(512)))

    with pytest.raises(ValueTooLongError) as excinfo:
        loop.run_coroutine(periph.write(0x2a21, bytes(513)))

    assert isinstance(excinfo.value, TransportError)
    assert len(writes) == 1


def test_io_timeouts(loop, client, thermometer):
    periph = loop.run_coroutine(client.connect(THERMO))
    thermometer.response_delay = 0.3

    with pytest.raises(ReadTimeoutError):
        loop.run_coroutine(periph.read(0x2a29, timeout=0.05))

    with pytest.raises(WriteTimeoutError):
        loop.run_coroutine(periph.write(0x2a21, b'\x00\x00', with_response=True, timeout=0.05))

    with pytest.raises(ArgumentError):
        loop.run_coroutine(periph.read(0x2a29, timeout=-1))

    # The link is still usable after a timeout
    thermometer.response_delay = 0.0
    assert loop.run_coroutine(periph.read(0x2a29)) == b'Acme'
    assert periph.connected


def test_requests_are_serialized(loop, client, thermometer):
    """Only one request is outstanding per link at any time."""

    periph = loop.run_coroutine(client.connect(THERMO))
    thermometer.response_delay = 0.02

    async def _many():
        return await asyncio.gather(*[periph.read(0x2a29) for _i in range(5)])

    start = loop.get_loop().time()
    assert loop.run_coroutine(_many()) == [b'Acme'] * 5
    assert loop.get_loop().time() - start >= 0.09


def test_link_loss_fails_in_flight_request(loop, client, transport, thermometer):
    periph = loop.run_coroutine(client.connect(THERMO))
    thermometer.response_delay = 0.3

    async def _read_and_drop():
        read = asyncio.ensure_future(periph.read(0x2a29, timeout=5.0))
        await asyncio.sleep(0.05)
        transport.drop_link(THERMO)
        return await read

    with pytest.raises(DisconnectionError) as excinfo:
        loop.run_coroutine(_read_and_drop())

    assert excinfo.value.reason == DisconnectionError.REMOTE_DISCONNECT

    loop.run_coroutine(asyncio.sleep(0.02))
    assert not periph.connected

    with pytest.raises(NotConnectedError):
        loop.run_coroutine(periph.read(0x2a29))


def test_stale_attribute(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))
    old = periph.find(0x2a29)

    loop.run_coroutine(periph.disconnect())
    loop.run_coroutine(periph.connect())

    with pytest.raises(InvalidStateError):
        loop.run_coroutine(periph.read(old))

    assert loop.run_coroutine(periph.read(0x2a29)) == b'Acme'


def test_notifications(loop, client, sensortag):
    periph = loop.run_coroutine(client.connect(SENSORTAG))
    data = periph.find(TEMPERATURE_DATA)

    first = []
    second = []

    async def _async_listener(char, value):
        await asyncio.sleep(0)
        second.append((char, value))

    loop.run_coroutine(periph.subscribe(data, lambda char, value: first.append(value)))
    loop.run_coroutine(periph.subscribe(data, _async_listener))

    assert data.subscription == 'notify'
    assert sensortag.gatt_table.find_char(TEMPERATURE_DATA).notifying

    loop.run_coroutine(periph.write(TEMPERATURE_CONFIG, b'\x01'))
    loop.run_coroutine(sensortag.notify(TEMPERATURE_DATA, b'\x10\x00\x20\x00'))
    loop.run_coroutine(asyncio.sleep(0.05))

    assert first == [b'\x00\x01\x00\x02', b'\x10\x00\x20\x00']
    assert [x[1] for x in second] == first
    assert second[0][0] is data
    assert data.value == b'\x10\x00\x20\x00'


def test_unsubscribe(loop, client, sensortag, writes):
    periph = loop.run_coroutine(client.connect(SENSORTAG))
    data = periph.find(TEMPERATURE_DATA)
    config = data.client_config

    values = []
    listener1 = values.append
    listener2 = lambda char, value: values.append(value)

    loop.run_coroutine(periph.subscribe(data, lambda char, value: listener1(value)))
    loop.run_coroutine(periph.subscribe(data, listener2))
    assert writes == [(config.handle, ClientConfig.NOTIFY, True)]

    loop.run_coroutine(periph.unsubscribe(data, listener2))
    assert len(writes) == 1
    assert data.subscribed

    loop.run_coroutine(periph.unsubscribe(data))
    assert writes[-1] == (config.handle, ClientConfig.DISABLED, True)
    assert not data.subscribed
    assert not sensortag.gatt_table.find_char(TEMPERATURE_DATA).notifying

    # Never fails when nothing is subscribed
    loop.run_coroutine(periph.unsubscribe(data))
    loop.run_coroutine(periph.unsubscribe(data, listener2))
    assert len(writes) == 2

    assert not loop.run_coroutine(sensortag.notify(TEMPERATURE_DATA, b'\x01\x00\x01\x00'))


def test_unsubscribe_while_enabling(loop, client, thermometer, writes):
    """Removing the only listener while notifications are being enabled disables them again."""

    periph = loop.run_coroutine(client.connect(THERMO))
    battery = periph.find(0x2a19)
    config = battery.client_config

    values = []
    thermometer.response_delay = 0.1

    async def _subscribe_and_cancel():
        enabling = asyncio.ensure_future(periph.subscribe(battery, values.append))
        await asyncio.sleep(0.02)

        await periph.unsubscribe(battery, values.append)
        await enabling

    loop.run_coroutine(_subscribe_and_cancel())

    assert writes == [(config.handle, ClientConfig.NOTIFY, True), (config.handle, ClientConfig.DISABLED, True)]
    assert not battery.subscribed
    assert periph.machine.session.subscriptions == {}

    thermometer.response_delay = 0.0
    assert not loop.run_coroutine(thermometer.notify(0x2a19, b'\x32'))
    assert values == []


def test_indicate_only(loop, client, thermometer, writes):
    periph = loop.run_coroutine(client.connect(THERMO))
    char = periph.find(0x2a1c)

    loop.run_coroutine(periph.subscribe(char, lambda char, value: None))

    assert char.subscription == 'indicate'
    assert writes == [(char.client_config.handle, ClientConfig.INDICATE, True)]


def test_subscribe_not_supported(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))

    with pytest.raises(NotSupportedError) as excinfo:
        loop.run_coroutine(periph.subscribe(0x2a1d, lambda char, value: None))

    assert isinstance(excinfo.value, NotPermittedError)


def test_subscribe_failure_is_clean(loop, client, thermometer):
    periph = loop.run_coroutine(client.connect(THERMO))
    battery = periph.find(0x2a19)
    thermometer.response_delay = 0.3

    with pytest.raises(WriteTimeoutError):
        loop.run_coroutine(periph.subscribe(battery, lambda char, value: None, timeout=0.05))

    assert not battery.subscribed
    assert periph.machine.session.subscriptions == {}

    thermometer.response_delay = 0.0
    loop.run_coroutine(periph.subscribe(battery, lambda char, value: None))
    assert battery.subscribed


def test_concurrent_subscribe_writes_once(loop, client, writes):
    periph = loop.run_coroutine(client.connect(THERMO))
    battery = periph.find(0x2a19)

    async def _both():
        await asyncio.gather(periph.subscribe(battery, lambda char, value: None),
                             periph.subscribe(battery, lambda char, value: None))

    loop.run_coroutine(_both())
    assert len(writes) == 1


def test_listener_errors_are_contained(loop, client, thermometer):
    periph = loop.run_coroutine(client.connect(THERMO))
    values = []

    def _broken(_char, _value):
        raise ValueError("broken listener")

    loop.run_coroutine(periph.subscribe(0x2a19, _broken))
    loop.run_coroutine(periph.subscribe(0x2a19, lambda char, value: values.append(value)))

    loop.run_coroutine(thermometer.notify(0x2a19, b'\x50'))
    loop.run_coroutine(thermometer.notify(0x2a19, b'\x4f'))
    loop.run_coroutine(asyncio.sleep(0.05))

    assert values == [b'\x50', b'\x4f']


def test_slow_listener_is_isolated(loop, client, sensortag, thermometer):
    """A slow listener only delays values of its own characteristic."""

    tag = loop.run_coroutine(client.connect(SENSORTAG))
    thermo = loop.run_coroutine(client.connect(THERMO))
    received = []

    async def _slow(_char, value):
        await asyncio.sleep(0.2)
        received.append(('slow', value))

    loop.run_coroutine(tag.subscribe(TEMPERATURE_DATA, _slow))
    loop.run_coroutine(thermo.subscribe(0x2a19, lambda char, value: received.append(('fast', value))))

    async def _push():
        await sensortag.notify(TEMPERATURE_DATA, b'\x01\x00\x01\x00')
        await sensortag.notify(TEMPERATURE_DATA, b'\x02\x00\x02\x00')
        await thermometer.notify(0x2a19, b'\x10')
        await asyncio.sleep(0.1)
        snapshot = list(received)
        await asyncio.sleep(0.4)
        return snapshot

    snapshot = loop.run_coroutine(_push())
    assert snapshot == [('fast', b'\x10')]
    assert received == [('fast', b'\x10'), ('slow', b'\x01\x00\x01\x00'), ('slow', b'\x02\x00\x02\x00')]


def test_disconnect_clears_subscriptions(loop, client, sensortag):
    """Subscriptions never survive a session and values are not replayed."""

    periph = loop.run_coroutine(client.connect(SENSORTAG))
    values = []

    loop.run_coroutine(periph.subscribe(TEMPERATURE_DATA, lambda char, value: values.append(value)))
    loop.run_coroutine(sensortag.notify(TEMPERATURE_DATA, b'\x01\x00\x01\x00'))
    loop.run_coroutine(asyncio.sleep(0.02))

    loop.run_coroutine(periph.disconnect())
    assert not sensortag.gatt_table.find_char(TEMPERATURE_DATA).notifying

    loop.run_coroutine(periph.connect())
    data = periph.find(TEMPERATURE_DATA)
    assert not data.subscribed

    later = []
    loop.run_coroutine(periph.subscribe(data, lambda char, value: later.append(value)))
    loop.run_coroutine(asyncio.sleep(0.02))
    assert later == []

    loop.run_coroutine(sensortag.notify(TEMPERATURE_DATA, b'\x02\x00\x02\x00'))
    loop.run_coroutine(asyncio.sleep(0.02))

    assert later == [b'\x02\x00\x02\x00']
    assert values == [b'\x01\x00\x01\x00']


def test_poll(loop, client, thermometer):
    periph = loop.run_coroutine(client.connect(THERMO))
    values = []

    poller = loop.run_coroutine(_start_poll(periph, 0x2a1d, 0.02, lambda char, value: values.append(value)))
    loop.run_coroutine(asyncio.sleep(0.05))
    thermometer.set_value(0x2a1d, b'\x03')
    loop.run_coroutine(asyncio.sleep(0.05))

    loop.run_coroutine(_cancel(poller))
    count = len(values)
    loop.run_coroutine(asyncio.sleep(0.05))

    assert len(values) == count
    assert values[0] == b'\x02'
    assert values[-1] == b'\x03'
    assert not poller.running


def test_poll_stops_on_disconnect(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))

    poller = loop.run_coroutine(_start_poll(periph, 0x2a1d, 0.01, lambda char, value: None))
    assert poller.running

    loop.run_coroutine(periph.disconnect())
    loop.run_coroutine(asyncio.sleep(0.02))

    assert not poller.running


def test_poll_rejects_bad_arguments(loop, client):
    periph = loop.run_coroutine(client.connect(THERMO))

    with pytest.raises(ArgumentError):
        loop.run_coroutine(_start_poll(periph, 0x2a1d, 0, lambda char, value: None))

    with pytest.raises(NotPermittedError):
        loop.run_coroutine(_start_poll(periph, 0x2a2a, 1.0, lambda char, value: None))


async def _start_poll(periph, char, interval, listener):
    return periph.poll(char, interval, listener)


async def _cancel(poller):
    poller.cancel()
    await asyncio.sleep(0)
