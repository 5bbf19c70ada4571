"""End-to-end tests over real UDP sockets against the dev tracker.

Tests the full flow: client -> session -> datagram channel -> tracker -> decode.
"""

from __future__ import annotations

import asyncio
import socket

import pytest

from tests.conftest import DEBIAN_HASH, UBUNTU_HASH, FakeClock
from udpscrape.client import UDPScrapeClient
from udpscrape.exceptions import (
    InvalidTransactionIDError,
    RemoteUnavailableError,
    RetryLimitExceededError,
    TooManyInfohashError,
)
from udpscrape.models import TrackerConfig
from udpscrape.protocol import TrackerAction, encode_scrape_response

pytestmark = [pytest.mark.integration, pytest.mark.tracker]


@pytest.fixture
def seeded_tracker(tracker):
    # store order is (seeders, completed, leechers)
    tracker.store.set(bytes.fromhex(UBUNTU_HASH), 10, 50, 2)
    tracker.store.set(bytes.fromhex(DEBIAN_HASH), 20, 100, 4)
    return tracker


class TestEndToEndScrape:
    """Scrape the dev tracker over localhost."""

    @pytest.mark.asyncio
    async def test_scrape_two_infohashes(self, seeded_tracker, tracker_url, fast_config):
        async with UDPScrapeClient(tracker_url, fast_config) as client:
            results = await client.scrape(UBUNTU_HASH, DEBIAN_HASH)

        assert [(r.infohash, r.seeders, r.leechers, r.completed) for r in results] == [
            (UBUNTU_HASH, 10, 2, 50),
            (DEBIAN_HASH, 20, 4, 100),
        ]
        assert seeded_tracker.count(TrackerAction.CONNECT) == 1
        assert seeded_tracker.count(TrackerAction.SCRAPE) == 1

    @pytest.mark.asyncio
    async def test_scrape_maximum_batch(self, seeded_tracker, tracker_url, fast_config):
        hashes = [f"{i:040x}" for i in range(74)]

        async with UDPScrapeClient(tracker_url, fast_config) as client:
            results = await client.scrape(*hashes)

        assert [r.infohash for r in results] == hashes

    @pytest.mark.asyncio
    async def test_session_reuse(self, seeded_tracker, tracker_url, fast_config):
        clock = FakeClock()
        async with UDPScrapeClient(tracker_url, fast_config, clock=clock) as client:
            await client.scrape(UBUNTU_HASH)
            clock.advance(30)
            await client.scrape(DEBIAN_HASH)
            reused = len(seeded_tracker.requests)

            clock.advance(60)
            await client.scrape(UBUNTU_HASH)

        assert reused == 3
        assert len(seeded_tracker.requests) == 5
        assert seeded_tracker.count(TrackerAction.CONNECT) == 2

    @pytest.mark.asyncio
    async def test_concurrent_scrapes(self, seeded_tracker, tracker_url, fast_config):
        async with UDPScrapeClient(tracker_url, fast_config) as client:
            batches = await asyncio.gather(
                *(client.scrape(UBUNTU_HASH, DEBIAN_HASH) for _ in range(3)),
                *(client.scrape(DEBIAN_HASH) for _ in range(3)),
            )

        for batch in batches[:3]:
            assert [r.seeders for r in batch] == [10, 20]
        for batch in batches[3:]:
            assert [r.seeders for r in batch] == [20]


class TestEndToEndFailures:
    """Failure modes over real sockets."""

    @pytest.mark.asyncio
    async def test_retry_exhaustion_counts_writes(self, tracker, tracker_url):
        tracker.overrides[TrackerAction.CONNECT] = lambda tid: None
        config = TrackerConfig(timeout=0.05, retries=2)

        async with UDPScrapeClient(tracker_url, config) as client:
            with pytest.raises(RetryLimitExceededError):
                await client.scrape(UBUNTU_HASH)

        await asyncio.sleep(0.05)
        assert tracker.count(TrackerAction.CONNECT) == 3

    @pytest.mark.asyncio
    async def test_scrape_retry_exhaustion(self, tracker, tracker_url):
        tracker.overrides[TrackerAction.SCRAPE] = lambda tid: None
        config = TrackerConfig(timeout=0.05, retries=3)

        async with UDPScrapeClient(tracker_url, config) as client:
            with pytest.raises(RetryLimitExceededError):
                await client.scrape(UBUNTU_HASH)

        await asyncio.sleep(0.05)
        assert tracker.count(TrackerAction.SCRAPE) == 4

    @pytest.mark.asyncio
    async def test_lost_reply_is_retried(self, seeded_tracker, tracker_url, fast_config):
        async with UDPScrapeClient(tracker_url, fast_config) as client:
            seeded_tracker.drop_next = 1
            results = await client.scrape(UBUNTU_HASH)

        assert results[0].seeders == 10
        assert seeded_tracker.count(TrackerAction.CONNECT) == 2

    @pytest.mark.asyncio
    async def test_transaction_mismatch(self, tracker, tracker_url, fast_config):
        tracker.overrides[TrackerAction.SCRAPE] = lambda tid: encode_scrape_response(
            tid ^ 0xFFFFFFFF, [(1, 2, 3)]
        )

        async with UDPScrapeClient(tracker_url, fast_config) as client:
            with pytest.raises(InvalidTransactionIDError):
                await client.scrape(UBUNTU_HASH)

        assert tracker.count(TrackerAction.SCRAPE) == 1

    @pytest.mark.asyncio
    async def test_unknown_connection_id_is_remote_error(self, tracker, tracker_url, fast_config):
        async with UDPScrapeClient(tracker_url, fast_config) as client:
            await client.scrape(UBUNTU_HASH)
            tracker.connections.clear()

            with pytest.raises(RemoteUnavailableError) as exc_info:
                await client.scrape()

        assert exc_info.value.details["tracker_message"] == "Invalid connection id"

    @pytest.mark.asyncio
    async def test_too_many_sends_nothing(self, tracker, tracker_url, fast_config):
        async with UDPScrapeClient(tracker_url, fast_config) as client:
            with pytest.raises(TooManyInfohashError):
                await client.scrape(*([UBUNTU_HASH] * 75))

        await asyncio.sleep(0.05)
        assert tracker.requests == []

    @pytest.mark.asyncio
    async def test_unresolvable_host(self, fast_config):
        async with UDPScrapeClient("udp://tracker.invalid:6969", fast_config) as client:
            with pytest.raises(socket.gaierror):
                await client.scrape(UBUNTU_HASH)
