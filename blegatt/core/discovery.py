"""Control of scanning and the flow of advertisements into the registry."""

import logging
import time
from typing import Optional
from ..interface import AbstractTransport, DiscoveryFilter, messages
from .registry import DeviceRegistry


class DiscoverySession:
    """An explicit handle on one period of scanning.

    Sessions are returned by ``DiscoveryController.start()``.  They can be
    used as an async context manager that stops scanning on exit.

    Attributes:
        filter: The filter advertisements must pass to reach the registry.
        started_at: Monotonic time scanning started.
        advertisements: Number of advertisements forwarded to the registry.
        active: False once the session has ended.
    """

    def __init__(self, controller: 'DiscoveryController', device_filter: Optional[DiscoveryFilter]):
        self.filter = device_filter
        self.started_at = time.monotonic()
        self.advertisements = 0
        self.active = True

        self._controller = controller

    async def stop(self):
        """Stop scanning if this session is still the active one."""

        if self.active:
            await self._controller.stop()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    def __repr__(self):
        return "<DiscoverySession active=%s filter=%r adverts=%d>" % (self.active, self.filter,
                                                                     self.advertisements)


class DiscoveryController:
    """Starts and stops scanning on a transport and feeds the registry.

    There is one controller per GattClient.  Starting and stopping are both
    idempotent and neither ever clears the registry.

    Args:
        transport: The radio to scan with.
        registry: Where accepted advertisements are recorded.
    """

    def __init__(self, transport: AbstractTransport, registry: DeviceRegistry):
        self._transport = transport
        self._registry = registry
        self._session = None  # type: Optional[DiscoverySession]
        self._handles = []
        self._logger = logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[DiscoverySession]:
        return self._session

    async def start(self, device_filter: Optional[DiscoveryFilter] = None) -> DiscoverySession:
        """Begin scanning.

        If scanning is already running the current session is returned and
        its filter is left unchanged.
        """

        if self._session is not None:
            if device_filter is not None:
                self._logger.debug("Discovery already running, ignoring new filter %r", device_filter)

            return self._session

        session = DiscoverySession(self, device_filter)
        self._session = session
        self._handles = [
            self._transport.events.every_match(self._on_advertisement, event="advertisement"),
            self._transport.events.every_match(self._on_scanning_stopped, event="scanning_stopped")
        ]

        try:
            await self._transport.scan_start(device_filter)
        except:
            self._end_session()
            raise

        self._logger.debug("Started discovery with filter %r", device_filter)
        return session

    async def stop(self):
        """Stop scanning, doing nothing if scanning is not running."""

        if self._session is None:
            return

        self._end_session()
        await self._transport.scan_stop()
        self._logger.debug("Stopped discovery")

    def _end_session(self):
        if self._session is not None:
            self._session.active = False
            self._session = None

        for handle in self._handles:
            self._transport.events.remove_waiter(handle)

        self._handles = []

    def _on_advertisement(self, event: messages.AdvertisementSeen):
        session = self._session
        if session is None:
            return

        if session.filter is not None and not session.filter.matches_advertisement(event.advertisement):
            return

        session.advertisements += 1
        self._registry.observe(event.advertisement)

    def _on_scanning_stopped(self, _event):
        if self._session is not None:
            self._logger.info("Transport stopped scanning on its own, ending discovery session")
            self._end_session()
