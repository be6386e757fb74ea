"""The GATT client that ties the engine to one transport."""

import asyncio
import logging
from typing import Dict, List, Optional, Union
from ..defines import AddressType, UUIDLike, normalize_address
from ..interface import AbstractTransport, AdapterState, BLEDevice, ConnectionState, DiscoveryFilter, messages
from ..interface.errors import BluetoothError, InvalidStateError
from ..utilities.async_tools import OperationManager
from .attribute_io import AttributeIO
from .catalog import GattCatalog
from .connection import ConnectionStateMachine
from .discovery import DiscoveryController, DiscoverySession
from .options import GattClientOptions, check_timeout, pick
from .peripheral import Peripheral
from .registry import DeviceRegistry


class GattClient:
    """A BLE central built on top of an AbstractTransport.

    The client owns the device registry, the discovery controller and one
    connection state machine per peripheral it has been asked about.  It
    routes the link events of its transport to the right state machine and
    notifications to the attribute engine.

    Higher level events (``LinkUp``, ``ServicesResolved``, ``StateChanged``
    and ``DeviceDisconnected``) are published on ``events``.

    Args:
        transport: The radio to use.  The client starts and stops it.
        options: Timeout configuration, see ``options.DEFAULT_CLIENT_OPTIONS``.
        adapter_id: Name reported as the owning adapter of devices.  If not
            given, the transport's adapter identifier is used.
    """

    def __init__(self, transport: AbstractTransport, options: Optional[GattClientOptions] = None,
                 adapter_id: Optional[str] = None):
        self.transport = transport
        self.events = OperationManager()
        self.registry = DeviceRegistry(adapter_id)
        self.discovery = DiscoveryController(transport, self.registry)
        self.catalog = GattCatalog()
        self.io = AttributeIO(transport, options)
        self.adapter = None  # type: Optional[AdapterState]

        self._options = options
        self._peripherals = {}  # type: Dict[str, Peripheral]
        self._handles = []
        self._expire_task = None
        self._logger = logging.getLogger(__name__)

    async def start(self):
        """Start the transport and begin routing its events."""

        await self.transport.start()

        self.adapter = await self.transport.state()
        if self.registry.adapter is None:
            self.registry.adapter = self.adapter.identifier

        self.io.max_attribute_length = self.adapter.max_attribute_length

        self._handles = [
            self.transport.events.every_match(self._on_link_lost, event="link_lost"),
            self.transport.events.every_match(self._on_value_changed, event="value_changed")
        ]

        ttl = pick('device_ttl', self._options)
        if ttl:
            self._expire_task = asyncio.ensure_future(self._expirer(ttl))

        self._logger.debug("Started GATT client on adapter %s", self.adapter.identifier)

    async def stop(self):
        """Stop discovery, disconnect every device and stop the transport."""

        if self._expire_task is not None:
            self._expire_task.cancel()
            await asyncio.gather(self._expire_task, return_exceptions=True)
            self._expire_task = None

        await self.discovery.stop()

        for periph in list(self._peripherals.values()):
            try:
                await periph.disconnect()
            except BluetoothError:
                self._logger.warning("Error disconnecting %s during shutdown", periph.address, exc_info=True)

        for handle in self._handles:
            self.transport.events.remove_waiter(handle)

        self._handles = []
        await self.transport.stop()

    async def state(self) -> AdapterState:
        """Query the current state of the adapter."""

        self.adapter = await self.transport.state()
        return self.adapter

    async def start_discovery(self, device_filter: Optional[DiscoveryFilter] = None) -> DiscoverySession:
        return await self.discovery.start(device_filter)

    async def stop_discovery(self):
        await self.discovery.stop()

    async def find_device(self, address: Optional[str] = None, name: Optional[str] = None,
                          uuid: Optional[UUIDLike] = None, timeout: Optional[float] = None) -> BLEDevice:
        """Wait for a device matching every given criterion to be discovered.

        Raises:
            NotFoundError: No matching device was seen in time.
        """

        timeout = check_timeout(timeout, 'discovery_timeout', self._options)
        return await self.registry.find(address, name, uuid, timeout)

    def devices(self) -> List[BLEDevice]:
        return self.registry.devices()

    def peripheral(self, device: Union[BLEDevice, str], address_type: str = AddressType.PUBLIC) -> Peripheral:
        """Get the handle for a device, creating a registry entry if needed."""

        if isinstance(device, BLEDevice):
            address = device.address
            address_type = device.address_type
        else:
            address = normalize_address(device)

        periph = self._peripherals.get(address)
        if periph is None:
            entry = self.registry.lookup(address, address_type)
            machine = ConnectionStateMachine(entry, self.transport, self.catalog, self.io, self.events,
                                             self._options)
            periph = Peripheral(machine, self.io)
            self._peripherals[address] = periph

        return periph

    async def connect(self, device: Union[BLEDevice, str], timeout: Optional[float] = None) -> Peripheral:
        """Connect to a device and return its handle once its services are known."""

        periph = self.peripheral(device)
        await periph.connect(timeout)
        return periph

    def evict(self, address: str) -> bool:
        """Forget a device whose connection state machine is DISCONNECTED."""

        address = normalize_address(address)

        periph = self._peripherals.get(address)
        if periph is not None and periph.state != ConnectionState.DISCONNECTED:
            return False

        if not self.registry.evict(address):
            return False

        self._peripherals.pop(address, None)
        return True

    def expire(self, ttl: Optional[float] = None) -> List[str]:
        """Forget every idle device not seen for ttl seconds.

        Devices whose connection state machine is not DISCONNECTED are kept.
        """

        if ttl is None:
            ttl = pick('device_ttl', self._options)

        if ttl is None:
            raise InvalidStateError("No device ttl configured")

        busy = {address for address, periph in self._peripherals.items()
                if periph.state != ConnectionState.DISCONNECTED}

        evicted = self.registry.expire(ttl, keep=busy)
        for address in evicted:
            self._peripherals.pop(address, None)

        return evicted

    async def _expirer(self, ttl):
        while True:
            await asyncio.sleep(ttl / 4.0)

            try:
                self.expire(ttl)
            except Exception:  #pylint:disable=broad-except;Background periodic task
                self._logger.exception("Error eaten in background device expiry routine")

    def _find_owner(self, link):
        for periph in self._peripherals.values():
            if periph.machine.owns_link(link):
                return periph.machine

        return None

    def _on_link_lost(self, event: messages.LinkLost):
        machine = self._find_owner(event.link)
        if machine is None:
            self._logger.debug("Ignoring link loss on unknown link %r", event.link)
            return

        machine.handle_link_lost(event.link, event.reason)

    def _on_value_changed(self, event: messages.ValueChanged):
        machine = self._find_owner(event.link)
        if machine is None:
            return

        self.io.dispatch(machine.session, event.handle, event.value)
