"""Exceptions that can be thrown from BLE operations.

Every failure surfaced by blegatt derives from ``BluetoothError``.  Errors that
concern one particular remote device derive from ``LinkError`` and carry the
canonical address of that device as ``connection_string``.
"""

from typing import Optional


class BluetoothError(Exception):
    """Base exception for all bluetooth related errors."""

    def __init__(self, message):
        super(BluetoothError, self).__init__(message)
        self.message = message


class UnsupportedOperationError(BluetoothError):
    """Operations that the underlying bluetooth transport doesn't support."""


class InvalidStateError(BluetoothError):
    """Operation was requested when the adapter or device was in an invalid state to respond."""


class NotFoundError(BluetoothError):
    """A device, service, characteristic or descriptor lookup failed."""


class LinkError(BluetoothError):
    """Errors that are specific to a single remote device."""

    def __init__(self, message: str, conn_string: Optional[str] = None):
        super(LinkError, self).__init__(message)
        self.connection_string = conn_string


class AlreadyInProgressError(LinkError):
    """A connection operation conflicts with one that is already underway."""


class NotPermittedError(LinkError):
    """The attribute does not have the capability needed for the requested operation."""


class NotSupportedError(NotPermittedError):
    """The characteristic supports neither notifications nor indications."""


class ServiceDiscoveryFailedError(LinkError):
    """The GATT table of a peripheral could not be fully discovered.

    Any partially discovered table is discarded when this is raised.
    """


class TimeoutExpiredError(LinkError):
    """A connect, read, write, discovery or pairing operation exceeded its deadline."""

    operation = "operation"

    def __init__(self, conn_string: Optional[str], timeout: Optional[float] = None, message: Optional[str] = None):
        if message is None:
            message = "Timeout during %s with %s" % (self.operation, conn_string)
            if timeout is not None:
                message += " after %.3f seconds" % timeout

        super(TimeoutExpiredError, self).__init__(message, conn_string)
        self.timeout = timeout


class ConnectTimeoutError(TimeoutExpiredError):
    """The transport link or GATT discovery did not finish in time."""

    operation = "connect"


class DisconnectTimeoutError(TimeoutExpiredError):
    """The transport did not confirm a local disconnection in time."""

    operation = "disconnect"


class DiscoveryTimeoutError(ConnectTimeoutError):
    """GATT discovery did not finish in time.

    Discovery is part of connecting, so this is also a ConnectTimeoutError.
    """

    operation = "service discovery"


class ReadTimeoutError(TimeoutExpiredError):
    """No read response arrived in time."""

    operation = "read"


class WriteTimeoutError(TimeoutExpiredError):
    """No write response arrived in time."""

    operation = "write"


class PairingTimeoutError(TimeoutExpiredError):
    """The pairing exchange did not finish in time."""

    operation = "pairing"


class PairingCancelledError(LinkError):
    """The pairing exchange was aborted with cancel_pairing()."""


class TransportError(LinkError):
    """The underlying radio or link failed.

    These errors are never retried by blegatt.
    """


class NotConnectedError(TransportError):
    """An operation that requires a live link was attempted without one."""

    def __init__(self, operation: str, conn_string: Optional[str]):
        super(NotConnectedError, self).__init__("Cannot %s, %s is not connected" % (operation, conn_string),
                                                conn_string)
        self.operation = operation


class ValueTooLongError(TransportError):
    """A value was longer than the transport's maximum attribute length."""

    def __init__(self, length: int, max_length: int, conn_string: Optional[str] = None):
        super(ValueTooLongError, self).__init__("Attribute value of %d bytes exceeds maximum of %d bytes"
                                                % (length, max_length), conn_string)
        self.length = length
        self.max_length = max_length


class GattError(TransportError):
    """The peer rejected an attribute protocol request.

    The message will provide more information on what the issue was.
    """


class InvalidHandleError(GattError):
    """There was a generic error with an operation on a specific gatt handle."""

    def __init__(self, message: str, handle: int, conn_string: Optional[str] = None):
        super(InvalidHandleError, self).__init__(message, conn_string)
        self.handle = handle


class MissingHandleError(InvalidHandleError):
    """An operation was attempted on a gatt handle that did not exist."""

    def __init__(self, handle: int, conn_string: Optional[str] = None):
        super(MissingHandleError, self).__init__("Handle 0x%02x did not exist" % handle, handle, conn_string)


class DisconnectionError(TransportError):
    """Error raised when a remote device is disconnected."""

    LOCAL_DISCONNECT = 1
    EARLY_DISCONNECT = 2
    SUPERVISION_TIMEOUT = 3
    REMOTE_DISCONNECT = 4
    UNKNOWN_ERROR = -1

    def __init__(self, message: str, conn_string: Optional[str], reason: int = UNKNOWN_ERROR):
        super(DisconnectionError, self).__init__(message, conn_string)
        self.reason = reason

    @classmethod
    def from_reason(cls, conn_string: Optional[str], reason: int) -> 'DisconnectionError':
        """Build the most specific disconnection error for a reason code."""

        if reason == cls.LOCAL_DISCONNECT:
            return LocalDisconnectError(conn_string)
        if reason == cls.EARLY_DISCONNECT:
            return EarlyDisconnectError(conn_string)
        if reason == cls.SUPERVISION_TIMEOUT:
            return SupervisionTimeoutError(conn_string)
        if reason == cls.REMOTE_DISCONNECT:
            return DisconnectionError("Remote device %s terminated the connection" % conn_string,
                                      conn_string, reason)

        return DisconnectionError("Connection to %s lost (reason %d)" % (conn_string, reason), conn_string, reason)


class EarlyDisconnectError(DisconnectionError):
    """Disconnection error due to a failed connection attempt.

    The bluetooth standard specifies that after a connection attempt is made,
    it is optimistically assumed to work.  However if the next packet sent
    does not succeed then the connection attempt is abandoned with an
    EarlyDisconnect error."""

    def __init__(self, conn_string: Optional[str]):
        super(EarlyDisconnectError, self).__init__("Early disconnect from %s" % conn_string,
                                                   conn_string, DisconnectionError.EARLY_DISCONNECT)


class LocalDisconnectError(DisconnectionError):
    """Disconnection because the user requested it."""

    def __init__(self, conn_string: Optional[str]):
        super(LocalDisconnectError, self).__init__("Locally initiated disconnect from %s" % conn_string,
                                                   conn_string, DisconnectionError.LOCAL_DISCONNECT)


class SupervisionTimeoutError(DisconnectionError):
    """Disconnection because the remote device did not respond quickly enough.

    The link supervision timeout is configured for each connection and is the
    maximum time that a remote device can go without communicating
    successfully with its peer.
    """

    def __init__(self, conn_string: Optional[str]):
        super(SupervisionTimeoutError, self).__init__("Supervision timeout on link to %s" % conn_string,
                                                      conn_string, DisconnectionError.SUPERVISION_TIMEOUT)
