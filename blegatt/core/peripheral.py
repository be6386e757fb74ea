"""A convenience handle bundling everything that can be done with one device."""

from typing import List, Optional, Union
from ..defines import UUIDLike
from ..interface import (BLEDevice, ConnectionState, GattAttribute, GattCharacteristic, GattService, GattTable,
                         GattDescriptor)
from ..interface.errors import NotConnectedError, NotPermittedError
from .attribute_io import AttributeIO, Listener, Poller
from .connection import ConnectionStateMachine, StateListener


AttributeRef = Union[GattAttribute, UUIDLike]


class Peripheral:
    """One remote device as seen by a GattClient.

    Attribute arguments may be given either as objects taken from the
    current GATT table or as uuids, which are resolved to the first matching
    attribute in discovery order.

    Args:
        machine: The device's connection state machine.
        io: The engine used for attribute access.
    """

    def __init__(self, machine: ConnectionStateMachine, io: AttributeIO):
        self.machine = machine
        self._io = io

    @property
    def device(self) -> BLEDevice:
        return self.machine.device

    @property
    def address(self) -> str:
        return self.machine.address

    @property
    def state(self) -> ConnectionState:
        return self.machine.state

    @property
    def connected(self) -> bool:
        return self.machine.state == ConnectionState.CONNECTED

    @property
    def services(self) -> Optional[GattTable]:
        """The GATT table while connected, otherwise None."""

        return self.machine.table

    async def connect(self, timeout: Optional[float] = None) -> GattTable:
        return await self.machine.connect(timeout)

    async def disconnect(self, timeout: Optional[float] = None):
        await self.machine.disconnect(timeout)

    async def pair(self, timeout: Optional[float] = None):
        await self.machine.pair(timeout)

    async def cancel_pairing(self):
        await self.machine.cancel_pairing()

    def connect_profile(self, uuid: UUIDLike):
        self.machine.connect_profile(uuid)

    def disconnect_profile(self, uuid: UUIDLike):
        self.machine.disconnect_profile(uuid)

    def profile_connected(self, uuid: UUIDLike) -> bool:
        return self.machine.profile_connected(uuid)

    def add_state_listener(self, listener: StateListener):
        self.machine.add_state_listener(listener)

    def remove_state_listener(self, listener: StateListener):
        self.machine.remove_state_listener(listener)

    def find(self, uuid: UUIDLike, service=None, instance: Optional[int] = None) -> GattAttribute:
        """Look up a service, characteristic or descriptor in the current table."""

        return self._table('find').find(uuid, service, instance)

    def find_all(self, uuid: UUIDLike, service=None) -> List[GattAttribute]:
        return self._table('find').find_all(uuid, service)

    async def read(self, attr: AttributeRef, timeout: Optional[float] = None) -> bytes:
        """Read a characteristic or descriptor."""

        session = self._session('read')
        return await self._io.read(session, self._resolve(attr, 'read'), timeout)

    async def write(self, attr: AttributeRef, value: bytes, timeout: Optional[float] = None,
                    with_response: Optional[bool] = None):
        """Write a characteristic or descriptor."""

        session = self._session('write')
        await self._io.write(session, self._resolve(attr, 'write'), value, timeout, with_response)

    async def subscribe(self, char: AttributeRef, listener: Listener, timeout: Optional[float] = None):
        """Call listener(characteristic, value) for every notification or indication."""

        session = self._session('subscribe')
        await self._io.subscribe(session, self._resolve_char(char, 'subscribe'), listener, timeout)

    async def unsubscribe(self, char: AttributeRef, listener: Optional[Listener] = None,
                          timeout: Optional[float] = None):
        """Stop delivering values to a listener.  Never fails if not subscribed."""

        session = self.machine.session
        if session is None or session.table is None:
            return

        if not isinstance(char, GattCharacteristic):
            char = session.table.find_char(char)

        await self._io.unsubscribe(session, char, listener, timeout)

    def poll(self, char: AttributeRef, interval: float, listener: Listener) -> Poller:
        """Periodically read a characteristic that cannot be subscribed to."""

        session = self._session('poll')
        return self._io.poll(session, self._resolve_char(char, 'poll'), interval, listener)

    def _session(self, operation):
        if self.machine.state != ConnectionState.CONNECTED:
            raise NotConnectedError(operation, self.address)

        return self.machine.session

    def _table(self, operation):
        return self._session(operation).table

    def _resolve(self, attr, operation):
        if isinstance(attr, (GattCharacteristic, GattDescriptor)):
            return attr

        if isinstance(attr, GattService):
            raise NotPermittedError("Cannot %s a service declaration" % operation, self.address)

        found = self._table(operation).find(attr)
        if isinstance(found, GattService):
            return self._table(operation).find_char(attr)

        return found

    def _resolve_char(self, char, operation):
        if isinstance(char, GattCharacteristic):
            return char

        return self._table(operation).find_char(char)

    def __repr__(self):
        return "<Peripheral %s %s>" % (self.address, self.state.name)
