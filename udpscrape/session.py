"""Connection ID management for one UDP tracker.

The tracker hands out a connection ID through the connect handshake; it stays
valid for about a minute. :class:`SessionManager` caches it, renews it once it
goes stale and makes sure only one renewal runs at a time.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from udpscrape.endpoint import TrackerEndpoint
from udpscrape.exceptions import InvalidActionError, InvalidTransactionIDError
from udpscrape.exchange import exchange
from udpscrape.protocol import (
    CONNECT_RESPONSE_SIZE,
    TrackerAction,
    decode_connect_response,
    encode_connect_request,
)
from udpscrape.transport import DatagramChannel, open_channel

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_RETRIES = 3
DEFAULT_SESSION_TTL = 60.0

ChannelOpener = Callable[[str, int], Awaitable[DatagramChannel]]
Clock = Callable[[], float]


class SessionState(str, Enum):
    """Connection ID freshness."""

    NO_SESSION = "no_session"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class TrackerSession:
    """A connection ID, when it was obtained and the handshake that got it."""

    connection_id: int
    established_at: float
    transaction_id: int


class SessionManager:
    """Owns the channel to one tracker and its cached connection ID."""

    def __init__(
        self,
        endpoint: TrackerEndpoint,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        session_ttl: float = DEFAULT_SESSION_TTL,
        opener: ChannelOpener | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the session manager.

        Args:
            endpoint: Tracker to talk to
            timeout: Per-attempt read deadline, in seconds
            retries: Additional attempts after a timeout
            session_ttl: Lifetime of a connection ID, in seconds
            opener: Coroutine opening a channel to ``(host, port)``
            clock: Monotonic time source
            rng: Source of transaction IDs

        """
        self.endpoint = endpoint
        self.timeout = timeout
        self.retries = retries
        self.session_ttl = session_ttl
        self._opener = opener or open_channel
        self._clock = clock or time.monotonic
        self._rng = rng or random.SystemRandom()

        self._lock = asyncio.Lock()
        self._channel: DatagramChannel | None = None
        self._session: TrackerSession | None = None

    @property
    def session(self) -> TrackerSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.NO_SESSION
        if self._is_stale(self._session):
            return SessionState.STALE
        return SessionState.FRESH

    def new_transaction_id(self, exclude: int | None = None) -> int:
        """Draw a random 32-bit transaction ID, different from ``exclude``."""
        while True:
            transaction_id = self._rng.getrandbits(32)
            if transaction_id != exclude:
                return transaction_id

    def _is_stale(self, session: TrackerSession) -> bool:
        return self._clock() - session.established_at >= self.session_ttl

    async def ensure(self) -> tuple[DatagramChannel, int]:
        """Return an open channel and a valid connection ID.

        Runs the connect handshake when there is no session yet, when it has
        expired or when the channel was closed underneath it.
        """
        async with self._lock:
            session = self._session
            channel = self._channel
            if (
                session is not None
                and channel is not None
                and not channel.is_closing()
                and not self._is_stale(session)
            ):
                logger.debug(
                    "Reusing connection ID for %s (age %.1fs)",
                    self.endpoint,
                    self._clock() - session.established_at,
                )
                return channel, session.connection_id

            try:
                channel, session = await self._connect()
            except BaseException:
                self._reset()
                raise

            self._channel = channel
            self._session = session
            return channel, session.connection_id

    async def _connect(self) -> tuple[DatagramChannel, TrackerSession]:
        """Open a fresh channel and run the connect handshake."""
        self._reset()
        channel = await self._opener(self.endpoint.host, self.endpoint.port)
        self._channel = channel

        transaction_id = self.new_transaction_id()
        logger.debug(
            "Connecting to tracker %s (transaction_id=%d)",
            self.endpoint,
            transaction_id,
        )
        data = await exchange(
            channel,
            encode_connect_request(transaction_id),
            CONNECT_RESPONSE_SIZE,
            self.timeout,
            self.retries,
        )
        response = decode_connect_response(data)

        if response.action != TrackerAction.CONNECT:
            msg = "Invalid action"
            raise InvalidActionError(
                msg,
                {"expected": int(TrackerAction.CONNECT), "received": response.action},
            )
        if response.transaction_id != transaction_id:
            msg = "Invalid transaction id received"
            raise InvalidTransactionIDError(
                msg,
                {"expected": transaction_id, "received": response.transaction_id},
            )

        logger.debug("Connected to tracker %s", self.endpoint)
        return channel, TrackerSession(
            response.connection_id,
            self._clock(),
            transaction_id,
        )

    def _reset(self) -> None:
        self._session = None
        if self._channel is not None:
            self._channel.close()
            self._channel = None

    def invalidate(self) -> None:
        """Forget the cached connection ID; the next ``ensure`` reconnects."""
        self._session = None

    async def close(self) -> None:
        """Close the channel and drop the session."""
        async with self._lock:
            self._reset()
