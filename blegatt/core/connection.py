"""The per-device connection state machine.

Each peripheral has one ConnectionStateMachine that moves between
DISCONNECTED, CONNECTING, CONNECTED and DISCONNECTING.  ``connect()``
resolves once the GATT table has been discovered; observers that need to
know earlier can wait for the ``LinkUp`` event that is published as soon as
the transport link exists.

Connecting, disconnecting and pairing each run as a single background task
that concurrent callers join, so two callers asking to connect at the same
time share one transport session and see the same outcome.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Hashable, List, Optional
from uuid import UUID
from ..defines import UUIDLike, normalize_uuid
from ..interface import AbstractTransport, BLEDevice, ConnectionState, GattTable, messages
from ..interface.errors import (AlreadyInProgressError, BluetoothError, ConnectTimeoutError, DisconnectionError,
                                DisconnectTimeoutError, InvalidStateError, LocalDisconnectError,
                                PairingCancelledError, PairingTimeoutError, ServiceDiscoveryFailedError,
                                TransportError)
from ..utilities.async_tools import OperationManager
from .attribute_io import AttributeIO
from .catalog import GattCatalog
from .options import GattClientOptions, check_timeout, pick
from .session import ConnectionSession


StateListener = Callable[[BLEDevice, ConnectionState, ConnectionState], None]


class ConnectionStateMachine:
    """Governs the connection lifecycle of one peripheral.

    Args:
        device: The registry entry of the peripheral.
        transport: The radio to connect with.
        catalog: Used to discover the GATT table after link up.
        io: Notified when sessions end so it can drop subscriptions.
        events: Where LinkUp, ServicesResolved, StateChanged and
            DeviceDisconnected events are published.
        options: Timeout configuration.
    """

    def __init__(self, device: BLEDevice, transport: AbstractTransport, catalog: GattCatalog, io: AttributeIO,
                 events: OperationManager, options: Optional[GattClientOptions] = None):
        self.device = device
        self.state = ConnectionState.DISCONNECTED
        self.session = None  # type: Optional[ConnectionSession]
        self.profiles = {}  # type: Dict[UUID, bool]

        self._transport = transport
        self._catalog = catalog
        self._io = io
        self._events = events
        self._options = options
        self._logger = logging.getLogger(__name__)

        self._connect_task = None  # type: Optional[asyncio.Task]
        self._disconnect_task = None  # type: Optional[asyncio.Task]
        self._pair_task = None  # type: Optional[asyncio.Task]
        self._pair_cancelled = False
        self._listeners = []  # type: List[StateListener]

    @property
    def address(self) -> str:
        return self.device.address

    @property
    def table(self) -> Optional[GattTable]:
        """The GATT table of the current session, once it is usable."""

        if self.state != ConnectionState.CONNECTED:
            return None

        return self.session.table

    def owns_link(self, link: Hashable) -> bool:
        """Whether a transport link handle belongs to this device's session."""

        return self.session is not None and self.session.link == link

    def add_state_listener(self, listener: StateListener):
        """Call listener(device, old_state, new_state) on every transition."""

        self._listeners.append(listener)

    def remove_state_listener(self, listener: StateListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def connect(self, timeout: Optional[float] = None) -> GattTable:
        """Connect to the device and discover its GATT table.

        If a connection attempt is already underway, this call joins it
        and sees its outcome; the attempt keeps the timeout it started with.
        If the device is already connected the current table is returned.

        Raises:
            AlreadyInProgressError: The device is disconnecting.
            ConnectTimeoutError: The link or discovery did not finish in time.
            ServiceDiscoveryFailedError: The GATT table could not be discovered.
            TransportError: The transport could not establish the link.
        """

        if self.state == ConnectionState.CONNECTED:
            return self.session.table

        if self.state == ConnectionState.DISCONNECTING:
            raise AlreadyInProgressError("Cannot connect to %s while it is disconnecting" % self.address,
                                         self.address)

        if self.state == ConnectionState.DISCONNECTED:
            timeout = check_timeout(timeout, 'connect_timeout', self._options)
            self._set_state(ConnectionState.CONNECTING)
            self._connect_task = asyncio.ensure_future(self._connect(timeout))
        else:
            self._logger.debug("Joining in-flight connection attempt to %s", self.address)

        return await asyncio.shield(self._connect_task)

    async def disconnect(self, timeout: Optional[float] = None):
        """Disconnect from the device.

        Disconnecting an already disconnected device does nothing.  If a
        connection attempt is in flight it is allowed to finish first.  The
        device always ends up DISCONNECTED, even if the transport reports an
        error, which is raised afterwards.

        Raises:
            DisconnectTimeoutError: The transport did not confirm in time.
            TransportError: The transport reported an error.
        """

        if self.state == ConnectionState.CONNECTING:
            try:
                await asyncio.shield(self._connect_task)
            except BluetoothError:
                return

        if self.state == ConnectionState.DISCONNECTED:
            return

        if self.state == ConnectionState.CONNECTED:
            timeout = check_timeout(timeout, 'disconnect_timeout', self._options)
            self._set_state(ConnectionState.DISCONNECTING)
            self._disconnect_task = asyncio.ensure_future(self._disconnect(timeout))

        await asyncio.shield(self._disconnect_task)

    async def pair(self, timeout: Optional[float] = None):
        """Pair with the device over the current link.

        Pairing is possible once the link is up, while CONNECTING or
        CONNECTED.  A second call while pairing joins the first.

        Raises:
            InvalidStateError: There is no link.
            PairingTimeoutError: Pairing did not finish in time.
            PairingCancelledError: cancel_pairing() was called.
        """

        session = self.session
        if session is None or session.closed or self.state not in (ConnectionState.CONNECTING,
                                                                     ConnectionState.CONNECTED):
            raise InvalidStateError("Cannot pair with %s, there is no link" % self.address)

        if self._pair_task is None:
            timeout = check_timeout(timeout, 'pairing_timeout', self._options)
            self._pair_cancelled = False
            self._pair_task = asyncio.ensure_future(self._pair(session, timeout))

        await asyncio.shield(self._pair_task)

    async def cancel_pairing(self):
        """Abort an outstanding pairing exchange, doing nothing if there is none."""

        task = self._pair_task
        session = self.session
        if task is None or task.done() or session is None:
            return

        self._pair_cancelled = True

        try:
            await self._transport.link_cancel_pairing(session.link)
        finally:
            task.cancel()

        try:
            await task
        except BluetoothError:
            pass

    def connect_profile(self, uuid: UUIDLike):
        """Mark a discovered service as an active profile.

        Raises:
            InvalidStateError: The device is not connected.
            NotFoundError: The device has no such service.
        """

        service = self._require_service(uuid, 'connect profile')
        self.profiles[service.uuid] = True

    def disconnect_profile(self, uuid: UUIDLike):
        """Clear the active flag of a profile."""

        service = self._require_service(uuid, 'disconnect profile')
        self.profiles[service.uuid] = False

    def profile_connected(self, uuid: UUIDLike) -> bool:
        return self.profiles.get(normalize_uuid(uuid), False)

    def handle_link_lost(self, link: Hashable, reason: int):
        """React to the transport reporting that a link dropped."""

        session = self.session
        if session is None or session.link != link:
            return

        error = DisconnectionError.from_reason(self.address, reason)
        self._logger.info("Lost link to %s: %s", self.address, error.message)
        session.close(error)

        # A connect attempt notices through the session and cleans up itself,
        # a local disconnect is already tearing the session down.
        if self.state != ConnectionState.CONNECTED:
            return

        self._set_state(ConnectionState.DISCONNECTING)
        self._finish_session(expected=False, error=error)

    async def _connect(self, timeout):
        start = time.monotonic()

        try:
            table = await asyncio.wait_for(self._establish(), timeout)
            if self.session is None or self.session.closed:
                raise ServiceDiscoveryFailedError("Link to %s lost during service discovery" % self.address,
                                                  self.address)
        except asyncio.TimeoutError:
            await self._abort_attempt()
            raise ConnectTimeoutError(self.address, timeout) from None
        except BaseException:
            await self._abort_attempt()
            raise
        finally:
            self._connect_task = None

        self.device.connected = True
        self._set_state(ConnectionState.CONNECTED)
        self._events.queue_message_threadsafe(messages.ServicesResolved(self.address, table))

        self._logger.info("Connected to %s in %.3f seconds", self.address, time.monotonic() - start)
        return table

    async def _establish(self):
        link = await self._transport.link_connect(self.address, self.device.address_type)

        session = ConnectionSession(self.address, link)
        self.session = session
        self._logger.debug("Link up to %s (link=%r), discovering services", self.address, link)
        self._events.queue_message_threadsafe(messages.LinkUp(self.address, link))

        table = await self._catalog.discover(self._transport, session, pick('discovery_timeout', self._options))
        if session.closed:
            raise ServiceDiscoveryFailedError("Link to %s lost during service discovery" % self.address,
                                              self.address)

        session.table = table
        return table

    async def _abort_attempt(self):
        session = self.session
        self.session = None

        if session is not None:
            if not session.closed:
                session.close(LocalDisconnectError(self.address))
                await self._close_link(session.link)

            self._io.invalidate(session)

        self._cancel_pairing_task()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _disconnect(self, timeout):
        session = self.session
        error = LocalDisconnectError(self.address)
        session.close(error)

        failure = None
        try:
            await asyncio.wait_for(self._transport.link_disconnect(session.link), timeout)
        except asyncio.TimeoutError:
            failure = DisconnectTimeoutError(self.address, timeout)
        except TransportError as err:
            failure = err
        finally:
            self._disconnect_task = None
            self._finish_session(expected=True, error=None)

        if failure is not None:
            raise failure

    def _finish_session(self, expected, error):
        session = self.session
        self.session = None

        if session is not None:
            self._io.invalidate(session)

        self._cancel_pairing_task()
        self.profiles = {}
        self.device.connected = False
        self._set_state(ConnectionState.DISCONNECTED)
        self._events.queue_message_threadsafe(messages.DeviceDisconnected(self.address, expected, error))

    async def _close_link(self, link):
        try:
            await asyncio.wait_for(self._transport.link_disconnect(link),
                                   pick('disconnect_timeout', self._options))
        except (asyncio.TimeoutError, BluetoothError):
            self._logger.warning("Error closing link to %s after failed connection attempt", self.address,
                                 exc_info=True)

    async def _pair(self, session, timeout):
        op = asyncio.ensure_future(self._transport.link_pair(session.link))

        try:
            done, _pending = await asyncio.wait([op, session.lost], timeout=timeout,
                                                return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            if self._pair_cancelled:
                raise PairingCancelledError("Pairing with %s was cancelled" % self.address, self.address) from None

            if session.closed:
                error = session.error
                raise DisconnectionError(error.message, self.address, error.reason) from None

            raise
        finally:
            if not op.done():
                op.cancel()

            self._pair_task = None

        if op in done:
            op.result()
            self.device.paired = True
            self._logger.info("Paired with %s", self.address)
            return

        if session.closed:
            error = session.error
            raise DisconnectionError(error.message, self.address, error.reason)

        raise PairingTimeoutError(self.address, timeout)

    def _cancel_pairing_task(self):
        if self._pair_task is not None and not self._pair_task.done():
            self._pair_task.cancel()

    def _require_service(self, uuid, operation):
        if self.state != ConnectionState.CONNECTED:
            raise InvalidStateError("Cannot %s on %s, it is not connected" % (operation, self.address))

        return self.session.table.find_service(uuid)

    def _set_state(self, new_state):
        old_state = self.state
        if old_state == new_state:
            return

        self.state = new_state
        self._logger.debug("%s: %s -> %s", self.address, old_state.name, new_state.name)
        self._events.queue_message_threadsafe(messages.StateChanged(self.address, old_state, new_state))

        for listener in list(self._listeners):
            try:
                listener(self.device, old_state, new_state)
            except Exception:  #pylint:disable=broad-except;Listener errors must not break the state machine
                self._logger.exception("Error in state listener %s for %s", listener, self.address)
