"""Minimal UDP tracker server (BEP 15) for udpscrape.

Implements the connect and scrape actions with an in-memory statistics
store. This is a simplified implementation for development/testing.
"""

from __future__ import annotations

import asyncio
import logging
import os
import struct
import time

from udpscrape.protocol import (
    CONNECT_REQUEST_SIZE,
    INFOHASH_LENGTH,
    MAX_INFOHASHES,
    PROTOCOL_ID,
    SCRAPE_HEADER_SIZE,
    TrackerAction,
    encode_connect_response,
    encode_error_response,
    encode_scrape_response,
)

logger = logging.getLogger(__name__)

_REQUEST_HEADER = struct.Struct("!QII")

CONNECTION_ID_TTL = 120.0


class InMemoryStatsStore:
    """Swarm statistics keyed by raw infohash."""

    def __init__(self) -> None:
        # info_hash (bytes) -> (seeders, completed, leechers)
        self.torrents: dict[bytes, tuple[int, int, int]] = {}

    def set(self, info_hash: bytes, seeders: int, completed: int, leechers: int) -> None:
        self.torrents[info_hash] = (seeders, completed, leechers)

    def get(self, info_hash: bytes) -> tuple[int, int, int]:
        # unknown torrents scrape as empty swarms
        return self.torrents.get(info_hash, (0, 0, 0))


class UDPTrackerServer(asyncio.DatagramProtocol):
    """Answers connect and scrape requests; everything else gets an error."""

    def __init__(self, store: InMemoryStatsStore | None = None):
        self.store = store or InMemoryStatsStore()
        self.transport: asyncio.DatagramTransport | None = None
        # connection_id -> issue time
        self.connections: dict[int, float] = {}

    @property
    def address(self) -> tuple[str, int]:
        if self.transport is None:
            msg = "Tracker server is not running"
            raise RuntimeError(msg)
        return self.transport.get_extra_info("sockname")[:2]

    async def start(self, host: str = "127.0.0.1", port: int = 6969) -> None:
        loop = asyncio.get_running_loop()
        await loop.create_datagram_endpoint(lambda: self, local_addr=(host, port))
        logger.info("UDP tracker listening on %s:%d", *self.address)

    def stop(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if len(data) < CONNECT_REQUEST_SIZE:
            return
        connection_id, action, transaction_id = _REQUEST_HEADER.unpack_from(data)
        try:
            reply = self.handle(connection_id, action, transaction_id, data, addr)
        except ValueError as e:
            reply = encode_error_response(transaction_id, str(e))
        if reply is not None:
            self.send(reply, addr)

    def send(self, reply: bytes, addr: tuple[str, int]) -> None:
        if self.transport is not None:
            self.transport.sendto(reply, addr)

    def handle(
        self,
        connection_id: int,
        action: int,
        transaction_id: int,
        data: bytes,
        addr: tuple[str, int],
    ) -> bytes | None:
        """Build the reply to one request, or None to stay silent."""
        if action == TrackerAction.CONNECT:
            if connection_id != PROTOCOL_ID:
                return None
            return self._handle_connect(transaction_id)
        if not self._connection_valid(connection_id):
            return encode_error_response(transaction_id, "Invalid connection id")
        if action == TrackerAction.SCRAPE:
            return self._handle_scrape(transaction_id, data)
        return encode_error_response(transaction_id, "Unsupported action")

    def _handle_connect(self, transaction_id: int) -> bytes:
        connection_id = struct.unpack("!Q", os.urandom(8))[0]
        self.connections[connection_id] = time.monotonic()
        return encode_connect_response(transaction_id, connection_id)

    def _connection_valid(self, connection_id: int) -> bool:
        issued = self.connections.get(connection_id)
        return issued is not None and time.monotonic() - issued < CONNECTION_ID_TTL

    def _handle_scrape(self, transaction_id: int, data: bytes) -> bytes:
        # request: connection_id(8) action(4) transaction_id(4) info_hash(20)*N
        body = data[SCRAPE_HEADER_SIZE:]
        if len(body) % INFOHASH_LENGTH:
            msg = "Bad scrape length"
            raise ValueError(msg)
        hashes = [
            body[i : i + INFOHASH_LENGTH]
            for i in range(0, len(body), INFOHASH_LENGTH)
        ][:MAX_INFOHASHES]
        return encode_scrape_response(
            transaction_id,
            [self.store.get(info_hash) for info_hash in hashes],
        )


async def run_udp_tracker(
    host: str = "127.0.0.1",
    port: int = 6969,
    store: InMemoryStatsStore | None = None,
) -> None:
    """Serve until cancelled."""
    server = UDPTrackerServer(store)
    await server.start(host, port)
    try:
        await asyncio.Event().wait()
    finally:
        server.stop()
