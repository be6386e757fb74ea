"""Attribute reads, writes and notification delivery over live links.

Every transport request made on a link goes through ``_run()``, which takes
the link's lock so that only one attribute protocol transaction is
outstanding per connection, races the request against the loss of the link
and maps deadline expiry to the appropriate typed timeout.

Notifications and polled values are handed to listeners by a
``_DeliveryQueue`` per characteristic.  Each queue has its own task, so a
slow listener delays further values of its own characteristic and nothing
else.
"""

import asyncio
import inspect
import logging
from typing import Callable, List, Optional, Union
from typedargs.exceptions import ArgumentError
from ..defines import ClientConfig, MAX_ATTRIBUTE_LENGTH
from ..interface import AbstractTransport, GattCharacteristic, GattDescriptor
from ..interface.errors import (DisconnectionError, InvalidStateError, NotConnectedError, NotPermittedError,
                                NotSupportedError, ReadTimeoutError, TimeoutExpiredError, TransportError,
                                ValueTooLongError, WriteTimeoutError)
from .options import GattClientOptions, check_timeout
from .session import ConnectionSession


Listener = Callable[[GattCharacteristic, bytes], object]
IOAttribute = Union[GattCharacteristic, GattDescriptor]


class _DeliveryQueue:
    """Hands values of one characteristic to its listeners strictly in order."""

    def __init__(self, characteristic: GattCharacteristic):
        self.characteristic = characteristic
        self.listeners = []  # type: List[Listener]

        self._queue = asyncio.Queue()
        self._logger = logging.getLogger(__name__)
        self._task = asyncio.ensure_future(self._deliver())

    def push(self, value: bytes):
        self._queue.put_nowait(value)

    def stop(self):
        self._task.cancel()

    async def _deliver(self):
        while True:
            value = await self._queue.get()

            for listener in list(self.listeners):
                try:
                    result = listener(self.characteristic, value)
                    if inspect.isawaitable(result):
                        await result
                except Exception:  #pylint:disable=broad-except;Listener errors must not stop delivery
                    self._logger.exception("Error in listener %s for characteristic %s", listener,
                                           self.characteristic.uuid)


class _Subscription:
    def __init__(self, characteristic: GattCharacteristic, kind: str):
        self.characteristic = characteristic
        self.kind = kind
        self.ready = asyncio.get_running_loop().create_future()
        self.delivery = _DeliveryQueue(characteristic)


class Poller:
    """A periodic read of a characteristic feeding a listener.

    Pollers stop on their own when the link goes away and can be stopped
    early with ``cancel()``.
    """

    def __init__(self, io: 'AttributeIO', session: ConnectionSession, characteristic: GattCharacteristic,
                 interval: float, listener: Listener):
        self.characteristic = characteristic
        self.interval = interval

        self._io = io
        self._session = session
        self._logger = logging.getLogger(__name__)
        self._delivery = _DeliveryQueue(characteristic)
        self._delivery.listeners.append(listener)
        self._task = asyncio.ensure_future(self._poll())

    @property
    def running(self) -> bool:
        return not self._task.done()

    def cancel(self):
        """Stop polling."""

        self._task.cancel()
        self._delivery.stop()

    async def _poll(self):
        try:
            while True:
                try:
                    value = await self._io.read(self._session, self.characteristic)
                    self._delivery.push(value)
                except TimeoutExpiredError:
                    self._logger.warning("Timeout polling %s on %s", self.characteristic.uuid,
                                         self._session.address)
                except TransportError:
                    if self._session.closed:
                        self._logger.debug("Stopping poll of %s, link closed", self.characteristic.uuid)
                        return

                    self._logger.warning("Error polling %s on %s", self.characteristic.uuid,
                                         self._session.address, exc_info=True)
                except Exception:  #pylint:disable=broad-except;Background task, nobody to raise to
                    self._logger.exception("Stopping poll of %s after unexpected error", self.characteristic.uuid)
                    return

                await asyncio.sleep(self.interval)
        finally:
            self._delivery.stop()
            if self in self._session.polls:
                self._session.polls.remove(self)


class AttributeIO:
    """Executes attribute reads and writes and routes notifications.

    Args:
        transport: The radio that owns the links.
        options: Timeout configuration.
        max_attribute_length: The longest value the transport accepts.
    """

    def __init__(self, transport: AbstractTransport, options: Optional[GattClientOptions] = None,
                 max_attribute_length: int = MAX_ATTRIBUTE_LENGTH):
        self.max_attribute_length = max_attribute_length

        self._transport = transport
        self._options = options
        self._logger = logging.getLogger(__name__)

    async def read(self, session: ConnectionSession, attr: IOAttribute, timeout: Optional[float] = None) -> bytes:
        """Read the value of a characteristic or descriptor.

        The value is cached on the attribute.

        Raises:
            NotPermittedError: The characteristic is not readable.
            ReadTimeoutError: No response arrived before the timeout.
            TransportError: The link or radio failed.
        """

        timeout = check_timeout(timeout, 'io_timeout', self._options)
        self._check(session, attr, 'read')

        if isinstance(attr, GattCharacteristic) and not attr.properties.read:
            raise NotPermittedError("Characteristic %s is not readable" % attr.uuid, session.address)

        value = await self._run(session, 'read', ReadTimeoutError, timeout,
                                self._transport.attribute_read, session.link, attr.handle)

        value = bytes(value)
        attr.value = value
        return value

    async def write(self, session: ConnectionSession, attr: IOAttribute, value: bytes,
                    timeout: Optional[float] = None, with_response: Optional[bool] = None):
        """Write the value of a characteristic or descriptor.

        If ``with_response`` is None, characteristics that support it are
        written without response and everything else is written with an
        acknowledgment.  Values are never truncated.

        Raises:
            NotPermittedError: The requested kind of write is not supported.
            ValueTooLongError: The value is longer than the transport allows.
            WriteTimeoutError: No acknowledgment arrived before the timeout.
            TransportError: The link or radio failed.
        """

        timeout = check_timeout(timeout, 'io_timeout', self._options)
        self._check(session, attr, 'write')

        value = bytes(value)
        if len(value) > self.max_attribute_length:
            raise ValueTooLongError(len(value), self.max_attribute_length, session.address)

        ack_required = True
        if isinstance(attr, GattCharacteristic):
            ack_required = _pick_write_mode(attr, with_response, session.address)

        await self._run(session, 'write', WriteTimeoutError, timeout,
                        self._transport.attribute_write, session.link, attr.handle, value, ack_required)

    async def subscribe(self, session: ConnectionSession, char: GattCharacteristic, listener: Listener,
                        timeout: Optional[float] = None):
        """Register a listener for notifications or indications.

        The first listener on a characteristic enables notifications on the
        peer, or indications if notifications are not supported.

        Raises:
            NotSupportedError: The characteristic supports neither.
        """

        timeout = check_timeout(timeout, 'io_timeout', self._options)
        self._check(session, char, 'subscribe')

        if not (char.properties.notify or char.properties.indicate):
            raise NotSupportedError("Characteristic %s supports neither notify nor indicate" % char.uuid,
                                    session.address)

        config = char.client_config
        if config is None:
            raise NotSupportedError("Characteristic %s has no client configuration descriptor" % char.uuid,
                                    session.address)

        sub = session.subscriptions.get(char.handle)
        if sub is not None:
            await asyncio.shield(sub.ready)
            sub.delivery.listeners.append(listener)
            return

        kind = 'notify' if char.properties.notify else 'indicate'
        sub = _Subscription(char, kind)
        sub.delivery.listeners.append(listener)
        session.subscriptions[char.handle] = sub

        config_value = ClientConfig.NOTIFY if kind == 'notify' else ClientConfig.INDICATE
        try:
            await self._run(session, 'subscribe', WriteTimeoutError, timeout,
                            self._transport.attribute_write, session.link, config.handle, config_value, True)
        except BaseException as err:
            if session.subscriptions.get(char.handle) is sub:
                del session.subscriptions[char.handle]

            sub.delivery.stop()
            if isinstance(err, Exception):
                sub.ready.set_exception(err)
                sub.ready.exception()
            else:
                sub.ready.cancel()

            raise

        config.value = config_value
        char.subscription = kind
        sub.ready.set_result(None)

        self._logger.debug("Enabled %s on %s (%s)", kind, char.uuid, session.address)

    async def unsubscribe(self, session: ConnectionSession, char: GattCharacteristic,
                          listener: Optional[Listener] = None, timeout: Optional[float] = None):
        """Remove a listener, or all listeners if none is given.

        Removing the last listener disables notifications on the peer.  This
        is a no-op if the listener is not subscribed or the link is gone.
        A subscription that is still being enabled is waited for first.
        """

        timeout = check_timeout(timeout, 'io_timeout', self._options)

        sub = session.subscriptions.get(char.handle)
        if sub is None or sub.characteristic is not char:
            return

        if not sub.ready.done():
            await asyncio.wait([sub.ready])

            # A failed subscribe has already removed itself
            if session.subscriptions.get(char.handle) is not sub:
                return

        listeners = sub.delivery.listeners
        if listener is None:
            listeners.clear()
        elif listener in listeners:
            listeners.remove(listener)
        else:
            return

        if len(listeners) > 0:
            return

        del session.subscriptions[char.handle]
        sub.delivery.stop()
        char.subscription = None

        if session.closed:
            return

        config = char.client_config
        await self._run(session, 'unsubscribe', WriteTimeoutError, timeout,
                        self._transport.attribute_write, session.link, config.handle, ClientConfig.DISABLED, True)
        config.value = ClientConfig.DISABLED

        self._logger.debug("Disabled %s on %s (%s)", sub.kind, char.uuid, session.address)

    def poll(self, session: ConnectionSession, char: GattCharacteristic, interval: float,
             listener: Listener) -> Poller:
        """Periodically read a characteristic and feed the values to a listener.

        This is the fallback for characteristics that cannot be subscribed to.
        """

        self._check(session, char, 'poll')

        if not char.properties.read:
            raise NotPermittedError("Characteristic %s is not readable" % char.uuid, session.address)

        if interval <= 0:
            raise ArgumentError("Polling interval must be positive", interval=interval)

        poller = Poller(self, session, char, interval, listener)
        session.polls.append(poller)
        return poller

    def dispatch(self, session: ConnectionSession, handle: int, value: bytes):
        """Route an unsolicited value change to its subscription."""

        sub = session.subscriptions.get(handle)
        if sub is None:
            self._logger.debug("Dropping value for unsubscribed handle 0x%04x on %s", handle, session.address)
            return

        value = bytes(value)
        sub.characteristic.value = value
        sub.delivery.push(value)

    def invalidate(self, session: ConnectionSession):
        """Drop every subscription and poll of a session that has ended."""

        for sub in session.subscriptions.values():
            sub.delivery.stop()
            sub.characteristic.subscription = None

        session.subscriptions.clear()

        for poller in list(session.polls):
            poller.cancel()

        session.polls.clear()

    @staticmethod
    def _check(session, attr, operation):
        if session.closed:
            raise NotConnectedError(operation, session.address)

        if session.table is None or not session.table.owns(attr):
            raise InvalidStateError("Attribute %r does not belong to the current connection of %s"
                                    % (attr, session.address))

    async def _run(self, session, operation, timeout_error, timeout, func, *args):
        if session.closed:
            raise NotConnectedError(operation, session.address)

        try:
            return await asyncio.wait_for(self._run_locked(session, func, *args), timeout)
        except asyncio.TimeoutError:
            raise timeout_error(session.address, timeout) from None

    @staticmethod
    async def _run_locked(session, func, *args):
        async with session.lock:
            if session.closed:
                raise _lost_error(session)

            op = asyncio.ensure_future(func(*args))

            try:
                done, _pending = await asyncio.wait([op, session.lost], return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not op.done():
                    op.cancel()

            if op in done:
                return op.result()

            raise _lost_error(session)


def _lost_error(session):
    error = session.error
    return DisconnectionError(error.message, session.address, error.reason)


def _pick_write_mode(char, with_response, conn_string) -> bool:
    props = char.properties
    acked = props.write or props.write_authenticated

    if with_response is None:
        if props.write_no_response:
            return False

        if not acked:
            raise NotPermittedError("Characteristic %s is not writable" % char.uuid, conn_string)

        return True

    if with_response and not acked:
        raise NotPermittedError("Characteristic %s does not support acknowledged writes" % char.uuid, conn_string)

    if not with_response and not props.write_no_response:
        raise NotPermittedError("Characteristic %s does not support writes without response" % char.uuid,
                                conn_string)

    return with_response
