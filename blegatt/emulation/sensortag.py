"""An emulated TI SensorTag with only its IR temperature service.

The temperature service exposes three characteristics:

- ``f000aa01``: the raw reading, two little endian int16 values (object
  temperature followed by ambient temperature) in units of 1/128 degree C.
- ``f000aa02``: configuration, writing 0x01 starts a measurement.
- ``f000aa03``: the measurement period in units of 10 ms.
"""

import struct
from ..defines import AttributeType
from .emulated_gatt import EmulatedAttribute
from .emulated_peripheral import EmulatedPeripheral

TEMPERATURE_SERVICE = "f000aa00-0451-4000-b000-000000000000"
TEMPERATURE_DATA = "f000aa01-0451-4000-b000-000000000000"
TEMPERATURE_CONFIG = "f000aa02-0451-4000-b000-000000000000"
TEMPERATURE_PERIOD = "f000aa03-0451-4000-b000-000000000000"

GENERIC_ACCESS_SERVICE = 0x1800


def decode_temperature(value: bytes):
    """Convert a raw reading into (object, ambient) degrees Celsius."""

    obj, amb = struct.unpack("<hh", value[:4])
    return obj / 128.0, amb / 128.0


def build_sensortag(address: str = "AA:BB:CC:DD:EE:FF", name: str = "SensorTag",
                    object_raw: int = 0x0100, ambient_raw: int = 0x0200) -> EmulatedPeripheral:
    """Create a SensorTag that measures fixed temperatures once enabled.

    Until a measurement is started the data characteristic reads as zeros.
    Writing 0x01 to the configuration characteristic latches the reading and
    pushes a notification if the central subscribed.
    """

    periph = EmulatedPeripheral(address, name, services=[TEMPERATURE_SERVICE])

    table = periph.gatt_table
    table.quick_add(GENERIC_ACCESS_SERVICE, AttributeType.DEVICE_NAME, name.encode('utf-8'), read=True)
    table.quick_add(TEMPERATURE_SERVICE, TEMPERATURE_DATA, bytes(4), read=True, notify=True)
    table.quick_add(TEMPERATURE_SERVICE, TEMPERATURE_CONFIG, b'\x00', read=True, write=True)
    table.quick_add(TEMPERATURE_SERVICE, TEMPERATURE_PERIOD, b'\x64', read=True, write=True)

    async def _on_config(_char: EmulatedAttribute, value: bytes):
        if value[:1] != b'\x01':
            return

        await periph.notify(TEMPERATURE_DATA, struct.pack("<hh", object_raw, ambient_raw))

    periph.on_write(TEMPERATURE_CONFIG, _on_config)
    return periph
