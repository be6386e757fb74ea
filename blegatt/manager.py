"""A blocking facade over GattClient for scripts.

All coroutines run on a BackgroundEventLoop, by default the process wide
``SharedLoop``.  Listener callbacks passed to ``SyncDevice.subscribe`` and
``SyncDevice.poll`` are invoked on that loop's thread, so they must not call
back into the blocking API.
"""

import logging
from typing import List, Optional
from .defines import UUIDLike
from .core import GattClient, GattClientOptions, Peripheral
from .core.attribute_io import Listener
from .interface import AbstractTransport, BLEDevice, DiscoveryFilter, GattAttribute
from .utilities.async_tools import BackgroundEventLoop, SharedLoop


class SyncDevice:
    """Blocking access to one peripheral."""

    def __init__(self, peripheral: Peripheral, loop: BackgroundEventLoop):
        self.peripheral = peripheral
        self._loop = loop

    @property
    def address(self) -> str:
        return self.peripheral.address

    @property
    def name(self) -> Optional[str]:
        return self.peripheral.device.name

    @property
    def connected(self) -> bool:
        return self.peripheral.connected

    @property
    def device(self) -> BLEDevice:
        return self.peripheral.device

    def connect(self, timeout: Optional[float] = None):
        self._loop.run_coroutine(self.peripheral.connect(timeout))

    def disconnect(self, timeout: Optional[float] = None):
        self._loop.run_coroutine(self.peripheral.disconnect(timeout))

    def pair(self, timeout: Optional[float] = None):
        self._loop.run_coroutine(self.peripheral.pair(timeout))

    def find(self, uuid: UUIDLike, service=None) -> GattAttribute:
        return self.peripheral.find(uuid, service)

    def read(self, attr, timeout: Optional[float] = None) -> bytes:
        return self._loop.run_coroutine(self.peripheral.read(attr, timeout))

    def write(self, attr, value: bytes, timeout: Optional[float] = None, with_response: Optional[bool] = None):
        self._loop.run_coroutine(self.peripheral.write(attr, value, timeout, with_response))

    def subscribe(self, char, listener: Listener, timeout: Optional[float] = None):
        self._loop.run_coroutine(self.peripheral.subscribe(char, listener, timeout))

    def unsubscribe(self, char, listener: Optional[Listener] = None, timeout: Optional[float] = None):
        self._loop.run_coroutine(self.peripheral.unsubscribe(char, listener, timeout))

    def poll(self, char, interval: float, listener: Listener):
        """Start polling a characteristic, returning an object with a ``cancel()`` method."""

        return self._loop.run_coroutine(self._start_poll(char, interval, listener))

    async def _start_poll(self, char, interval, listener):
        return self.peripheral.poll(char, interval, listener)

    def __repr__(self):
        return "<SyncDevice %s name=%r>" % (self.address, self.name)


class BluetoothManager:
    """Blocking entry point for scanning and connecting to devices.

    Args:
        transport: The radio to use.  If not given, the bleak transport is
            created, which requires the optional ``bleak`` dependency.
        options: GattClient options.
        loop: The background loop to run the engine on.
    """

    def __init__(self, transport: Optional[AbstractTransport] = None, options: Optional[GattClientOptions] = None,
                 loop: BackgroundEventLoop = SharedLoop):
        if transport is None:
            from .transports.bleak_transport import BleakTransport
            transport = BleakTransport()

        self.client = GattClient(transport, options)
        self._loop = loop
        self._started = False
        self._logger = logging.getLogger(__name__)

    def start(self):
        if self._started:
            return

        self._loop.run_coroutine(self.client.start())
        self._started = True

    def stop(self):
        if not self._started:
            return

        self._started = False
        self._loop.run_coroutine(self.client.stop())

    def start_discovery(self, device_filter: Optional[DiscoveryFilter] = None) -> bool:
        """Begin discovering devices, starting the manager if needed.

        Returns:
            bool: True once discovery is running.
        """

        self.start()
        session = self._loop.run_coroutine(self.client.start_discovery(device_filter))
        return session.active

    def stop_discovery(self):
        self._loop.run_coroutine(self.client.stop_discovery())

    def find(self, name: Optional[str] = None, address: Optional[str] = None, service: Optional[UUIDLike] = None,
             timeout: Optional[float] = None) -> SyncDevice:
        """Wait for a device matching every given criterion.

        Raises:
            NotFoundError: No matching device was seen before the timeout.
        """

        device = self._loop.run_coroutine(self.client.find_device(address, name, service, timeout))
        self._logger.debug("Found device %s", device.address)
        return self.device(device)

    def device(self, device) -> SyncDevice:
        """Get a blocking handle for a device object or address."""

        return SyncDevice(self.client.peripheral(device), self._loop)

    def devices(self) -> List[BLEDevice]:
        return self.client.devices()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
