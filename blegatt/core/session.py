"""State shared by everything that uses one live link."""

import asyncio
from typing import Dict, Hashable, List, Optional
from ..interface import GattTable
from ..interface.errors import DisconnectionError


class ConnectionSession:
    """One connection to one peripheral, from link up to link down.

    The session owns the per-link lock that serializes every attribute
    protocol request and the ``lost`` future that resolves with a
    DisconnectionError once the link is gone.  Anything racing a transport
    call against ``lost`` notices a disconnection immediately.

    Args:
        address: The peripheral address.
        link: The transport's handle for the link.
    """

    def __init__(self, address: str, link: Hashable):
        self.address = address
        self.link = link
        self.table = None  # type: Optional[GattTable]
        self.lock = asyncio.Lock()
        self.lost = asyncio.get_running_loop().create_future()

        self.subscriptions = {}  # type: Dict[int, object]
        self.polls = []  # type: List[object]

    @property
    def closed(self) -> bool:
        return self.lost.done()

    def close(self, error: DisconnectionError):
        """Mark the link as gone, failing anything waiting on it."""

        if not self.lost.done():
            self.lost.set_result(error)

    @property
    def error(self) -> Optional[DisconnectionError]:
        """The reason the session ended, if it has."""

        if not self.lost.done():
            return None

        return self.lost.result()

    def __repr__(self):
        return "<ConnectionSession %s link=%r closed=%s>" % (self.address, self.link, self.closed)
