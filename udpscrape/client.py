"""UDP tracker scrape client (BEP 15).

Scrapes up to 74 infohashes from one UDP tracker in two round trips: the
connect handshake, which is skipped while the cached connection ID is still
fresh, and the scrape exchange itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType

from udpscrape.config import get_config
from udpscrape.endpoint import TrackerEndpoint
from udpscrape.exceptions import (
    InvalidActionError,
    InvalidResponseError,
    InvalidTransactionIDError,
    RemoteUnavailableError,
    TooManyInfohashError,
)
from udpscrape.exchange import exchange
from udpscrape.models import TrackerConfig
from udpscrape.protocol import (
    MAX_INFOHASHES,
    Infohash,
    TrackerAction,
    decode_error_response,
    decode_scrape_response,
    encode_scrape_request,
    infohash_to_bytes,
    peek_header,
    scrape_response_size,
)
from udpscrape.session import ChannelOpener, Clock, SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScrapeResult:
    """Swarm statistics for one infohash."""

    infohash: Infohash
    seeders: int
    leechers: int
    completed: int


class UDPScrapeClient:
    """Scrape client bound to a single UDP tracker.

    One instance may be shared by concurrent tasks: each ``scrape`` call holds
    the client's exchange lock for its whole request/response cycle, so replies
    are never handed to the wrong caller.
    """

    def __init__(
        self,
        url: str,
        config: TrackerConfig | None = None,
        *,
        opener: ChannelOpener | None = None,
        clock: Clock | None = None,
    ):
        """Initialize the scrape client.

        Args:
            url: Tracker URL, e.g. ``udp://tracker.example:6969/announce``
            config: Tracker settings; defaults to the process configuration
            opener: Coroutine opening a channel (used by tests)
            clock: Monotonic time source (used by tests)

        Raises:
            UnsupportedSchemeError: if ``url`` is not a ``udp://`` URL

        """
        self.endpoint = TrackerEndpoint.from_url(url)
        self.config = config if config is not None else get_config().tracker

        self._sessions = SessionManager(
            self.endpoint,
            timeout=self.config.timeout,
            retries=self.config.retries,
            session_ttl=self.config.session_ttl,
            opener=opener,
            clock=clock,
        )
        self._exchange_lock = asyncio.Lock()

    @property
    def retry_limit(self) -> int:
        return self._sessions.retries

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def set_retry_limit(self, retries: int) -> None:
        """Set the maximum number of additional attempts after a timeout."""
        if retries < 0:
            msg = f"Retry limit cannot be negative: {retries}"
            raise ValueError(msg)
        self._sessions.retries = retries

    async def scrape(self, *infohashes: Infohash) -> list[ScrapeResult]:
        """Scrape the tracker for the given infohashes.

        Args:
            *infohashes: 40-character hex strings (or 20 raw bytes), at most 74

        Returns:
            One result per infohash, in the order requested

        Raises:
            TooManyInfohashError: more than 74 infohashes
            MalformedInfohashError: an infohash has the wrong shape
            InvalidTransactionIDError: the reply belongs to another request
            RemoteUnavailableError: the tracker answered with an error
            InvalidActionError: the reply is not a scrape response
            InvalidResponseError: the reply is too short
            RetryLimitExceededError: every attempt timed out

        """
        if len(infohashes) > MAX_INFOHASHES:
            msg = f"Cannot lookup more than {MAX_INFOHASHES} infohash at once"
            raise TooManyInfohashError(msg, {"count": len(infohashes)})

        raw_hashes = [infohash_to_bytes(infohash) for infohash in infohashes]
        count = len(raw_hashes)

        async with self._exchange_lock:
            channel, connection_id = await self._sessions.ensure()
            handshake = self._sessions.session
            transaction_id = self._sessions.new_transaction_id(
                exclude=handshake.transaction_id if handshake else None,
            )

            packet = encode_scrape_request(connection_id, transaction_id, raw_hashes)
            try:
                data = await exchange(
                    channel,
                    packet,
                    scrape_response_size(count),
                    self._sessions.timeout,
                    self._sessions.retries,
                )
            except InvalidResponseError as e:
                self._raise_if_remote_error(e.response, transaction_id)
                raise

        action, response_tid = peek_header(data)
        if response_tid != transaction_id:
            msg = "Invalid transaction id received"
            raise InvalidTransactionIDError(
                msg,
                {"expected": transaction_id, "received": response_tid},
            )
        if action == TrackerAction.ERROR:
            self._raise_if_remote_error(data, transaction_id)
        if action != TrackerAction.SCRAPE:
            msg = "Invalid action"
            raise InvalidActionError(
                msg,
                {"expected": int(TrackerAction.SCRAPE), "received": action},
            )

        response = decode_scrape_response(data, count)
        logger.debug(
            "Scraped %d infohash(es) from %s",
            count,
            self.endpoint,
        )
        return [
            ScrapeResult(
                infohash=infohash,
                seeders=stats.seeders,
                leechers=stats.leechers,
                completed=stats.completed,
            )
            for infohash, stats in zip(infohashes, response.stats)
        ]

    @staticmethod
    def _raise_if_remote_error(data: bytes, transaction_id: int) -> None:
        """Raise RemoteUnavailableError if ``data`` is our error reply."""
        try:
            error = decode_error_response(data)
        except InvalidResponseError:
            return
        if error.action != TrackerAction.ERROR or error.transaction_id != transaction_id:
            return
        msg = "Service unavailable"
        raise RemoteUnavailableError(msg, {"tracker_message": error.message})

    async def close(self) -> None:
        """Close the UDP channel."""
        await self._sessions.close()

    async def __aenter__(self) -> UDPScrapeClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
