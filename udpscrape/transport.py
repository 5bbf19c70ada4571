"""Connected datagram channel on top of asyncio.

The protocol object only queues what the event loop hands it: inbound
datagrams, transport errors (such as ICMP port unreachable) and connection
loss. The channel turns that queue into an awaitable ``receive`` with a
deadline.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Union

logger = logging.getLogger(__name__)

_ERROR_CHANNEL_CLOSED = "UDP channel is closed"

_Item = Union[bytes, Exception]


class TrackerDatagramProtocol(asyncio.DatagramProtocol):
    """UDP protocol handler for tracker communication."""

    def __init__(self) -> None:
        """Initialize UDP protocol handler."""
        self.queue: asyncio.Queue[_Item] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Handle incoming UDP datagram."""
        self.queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        """Handle UDP error."""
        logger.debug("UDP error: %s", exc)
        self.queue.put_nowait(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        """Wake up any pending reader once the transport is gone."""
        if exc is not None:
            self.queue.put_nowait(exc)


class DatagramChannel:
    """A UDP socket connected to a single tracker address."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        protocol: TrackerDatagramProtocol,
    ):
        self._transport = transport
        self._protocol = protocol

    @property
    def remote_address(self) -> tuple[str, int] | None:
        return self._transport.get_extra_info("peername")

    def send(self, data: bytes) -> int:
        """Write one datagram and return the number of bytes handed over."""
        if self._transport.is_closing():
            raise ConnectionError(_ERROR_CHANNEL_CLOSED)
        self._transport.sendto(data)
        return len(data)

    async def receive(self, timeout: float) -> bytes:
        """Wait up to ``timeout`` seconds for the next datagram.

        Raises:
            asyncio.TimeoutError: if nothing arrives in time
            OSError: if the transport reported an error

        """
        item = await asyncio.wait_for(self._protocol.queue.get(), timeout=timeout)
        if isinstance(item, Exception):
            raise item
        return item

    def discard_pending(self) -> int:
        """Drop queued datagrams left over from earlier requests."""
        dropped = 0
        queue = self._protocol.queue
        while not queue.empty():
            item = queue.get_nowait()
            if isinstance(item, Exception):
                continue
            dropped += 1
        if dropped:
            logger.debug("Discarded %d stale datagram(s)", dropped)
        return dropped

    def is_closing(self) -> bool:
        return self._transport.is_closing()

    def close(self) -> None:
        if not self._transport.is_closing():
            self._transport.close()


async def open_channel(host: str, port: int) -> DatagramChannel:
    """Resolve ``host`` and open a UDP socket connected to it.

    DNS and socket errors propagate unchanged.
    """
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        TrackerDatagramProtocol,
        remote_addr=(host, port),
    )
    logger.debug("Opened UDP channel to %s:%d", host, port)
    return DatagramChannel(transport, protocol)
