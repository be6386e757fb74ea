"""Tunable timeouts and limits of the GATT engine.

Options are passed around as a partial ``GattClientOptions`` dictionary and
every key that is missing falls back to ``DEFAULT_CLIENT_OPTIONS``.  All
durations are in seconds.
"""

from typing import Optional
from typing_extensions import TypedDict
from typedargs.exceptions import ArgumentError


GattClientOptions = TypedDict('GattClientOptions', {
    'connect_timeout': float,
    'disconnect_timeout': float,
    'discovery_timeout': float,
    'io_timeout': float,
    'pairing_timeout': float,
    'device_ttl': float
}, total=False)

DEFAULT_CLIENT_OPTIONS = {
    'connect_timeout': 10.0,
    'disconnect_timeout': 5.0,
    'discovery_timeout': 10.0,
    'io_timeout': 5.0,
    'pairing_timeout': 10.0,
    'device_ttl': 300.0
}  #type: GattClientOptions


def pick(key: str, options: Optional[GattClientOptions]):
    """Helper function to get specified or default options."""

    if options is not None and key in options:
        return options.get(key)

    return DEFAULT_CLIENT_OPTIONS.get(key)


def check_timeout(timeout: Optional[float], key: str, options: Optional[GattClientOptions]) -> float:
    """Resolve an optional caller timeout against the configured default.

    Raises:
        ArgumentError: The timeout is negative.
    """

    if timeout is None:
        timeout = pick(key, options)

    if timeout < 0:
        raise ArgumentError("Timeouts cannot be negative", timeout=timeout)

    return timeout
