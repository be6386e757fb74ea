"""The set of peripherals an adapter knows about."""

import asyncio
import logging
import time
from typing import Collection, Dict, List, Optional, Tuple
from typedargs.exceptions import ArgumentError
from ..defines import AddressType, normalize_address, UUIDLike
from ..interface import BLEAdvertisement, BLEDevice, DiscoveryFilter
from ..interface.errors import NotFoundError


class DeviceRegistry:
    """Tracks discovered peripherals by address.

    Every advertisement that passes the active discovery filter is merged
    into the registry with ``observe()``.  Callers waiting in ``find()`` are
    woken as soon as a device matching their filter appears.  Devices are
    kept in the order they were first seen, which is the order ``find()``
    and ``devices()`` report them in.

    Connected devices are never removed, whether by ``evict()``, ``expire()``
    or ``reset()``.

    Args:
        adapter: The identifier of the adapter that owns these devices.
    """

    def __init__(self, adapter: Optional[str] = None):
        self.adapter = adapter

        self._devices = {}  # type: Dict[str, BLEDevice]
        self._waiters = []  # type: List[Tuple[DiscoveryFilter, asyncio.Future]]
        self._logger = logging.getLogger(__name__)

    def observe(self, advert: BLEAdvertisement, seen_at: Optional[float] = None) -> BLEDevice:
        """Create or update a device from an advertisement."""

        device = self._devices.get(advert.sender)
        if device is None:
            device = BLEDevice(advert.sender, advert.address_type, adapter=self.adapter)
            self._devices[device.address] = device
            self._logger.debug("New device %s seen (name=%r, rssi=%s)", device.address,
                               advert.local_name, advert.rssi)

        device.update_from_advertisement(advert, seen_at)
        self._wake(device)
        return device

    def lookup(self, address: str, address_type: str = AddressType.PUBLIC) -> BLEDevice:
        """Get a device by address, creating an entry for it if it is unknown.

        Devices created here have never been seen advertising so they are
        not subject to ``expire()`` until they are.
        """

        address = normalize_address(address)

        device = self._devices.get(address)
        if device is None:
            device = BLEDevice(address, address_type, adapter=self.adapter)
            self._devices[address] = device
            self._wake(device)

        return device

    def get(self, address: str) -> Optional[BLEDevice]:
        """Get a known device by address or None."""

        return self._devices.get(normalize_address(address))

    def devices(self) -> List[BLEDevice]:
        """All known devices in the order they were first seen."""

        return list(self._devices.values())

    def match(self, device_filter: DiscoveryFilter) -> Optional[BLEDevice]:
        """Return the first known device matching a filter, or None."""

        for device in self._devices.values():
            if device_filter.matches_device(device):
                return device

        return None

    async def find(self, address: Optional[str] = None, name: Optional[str] = None,
                   uuid: Optional[UUIDLike] = None, timeout: Optional[float] = None) -> BLEDevice:
        """Wait for a device matching every given criterion.

        Args:
            address: Exact device address.
            name: Exact advertised name.
            uuid: A service uuid the device must advertise.
            timeout: How long to wait.  0 never suspends and None waits forever.

        Raises:
            NotFoundError: No matching device appeared before the timeout.
        """

        if timeout is not None and timeout < 0:
            raise ArgumentError("Timeouts cannot be negative", timeout=timeout)

        device_filter = DiscoveryFilter(address=address, name=name, uuids=[uuid] if uuid is not None else None)

        device = self.match(device_filter)
        if device is not None:
            return device

        if timeout == 0:
            raise NotFoundError("No device matching %r" % device_filter)

        waiter = (device_filter, asyncio.get_running_loop().create_future())
        self._waiters.append(waiter)

        try:
            return await asyncio.wait_for(waiter[1], timeout)
        except asyncio.TimeoutError:
            raise NotFoundError("No device matching %r after %s seconds" % (device_filter, timeout)) from None
        finally:
            self._waiters.remove(waiter)

    def evict(self, address: str) -> bool:
        """Forget a device.

        Returns:
            Whether the device was removed.  Unknown and connected devices
            are left alone.
        """

        address = normalize_address(address)

        device = self._devices.get(address)
        if device is None or device.connected:
            return False

        del self._devices[address]
        self._logger.debug("Evicted device %s", address)
        return True

    def expire(self, ttl: float, now: Optional[float] = None, keep: Collection[str] = ()) -> List[str]:
        """Evict every disconnected device not seen for more than ttl seconds.

        Addresses in ``keep`` are never evicted, whatever their age.

        Returns:
            The addresses that were evicted.
        """

        if now is None:
            now = time.monotonic()

        stale = [device.address for device in self._devices.values()
                 if not device.connected and device.address not in keep and device.last_seen is not None
                 and now - device.last_seen > ttl]

        for address in stale:
            del self._devices[address]

        if len(stale) > 0:
            self._logger.debug("Expired %d devices not seen in %.1f seconds", len(stale), ttl)

        return stale

    def reset(self):
        """Forget every device that is not connected."""

        self._devices = {address: device for address, device in self._devices.items() if device.connected}

    def __contains__(self, address):
        return self.get(address) is not None

    def __len__(self):
        return len(self._devices)

    def _wake(self, device):
        for device_filter, future in self._waiters:
            if not future.done() and device_filter.matches_device(device):
                future.set_result(device)
