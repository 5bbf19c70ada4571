"""Pytest configuration and shared fixtures for udpscrape tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import pytest
import pytest_asyncio

from udpscrape.config import ENV_MAPPINGS, reset_config
from udpscrape.models import TrackerConfig
from udpscrape.tracker_server import InMemoryStatsStore, UDPTrackerServer

# Infohashes from the upstream example program
UBUNTU_HASH = "176e2a9696092482d4acdef445b53ffcebb56960"
DEBIAN_HASH = "e80cb87fbd938f3b1e47db64c10c3ab04ad49987"

Responder = Callable[[bytes], "bytes | None"]


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("integration", "marks tests as integration tests"),
        ("property", "marks tests as property-based tests"),
        ("tracker", "marks tests as tracker tests"),
        ("cli", "marks tests as CLI tests"),
        ("config", "marks tests as configuration tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Keep user config files and UDPSCRAPE_* variables out of tests."""
    for env_name in ENV_MAPPINGS:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        if not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedChannel:
    """In-memory channel; ``responder`` maps each sent packet to a reply.

    A responder returning None simulates a lost datagram, so the next
    ``receive`` times out.
    """

    def __init__(self, responder: Responder):
        self.responder = responder
        self.sent: list[bytes] = []
        self.closed = False
        self._pending: list[bytes] = []

    def send(self, data: bytes) -> int:
        self.sent.append(data)
        reply = self.responder(data)
        if reply is not None:
            self._pending.append(reply)
        return len(data)

    async def receive(self, timeout: float) -> bytes:
        await asyncio.sleep(0)
        if self._pending:
            return self._pending.pop(0)
        raise asyncio.TimeoutError

    def discard_pending(self) -> int:
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True


class ScriptedOpener:
    """Channel opener handing out ScriptedChannels and recording them."""

    def __init__(self, responder: Responder):
        self.responder = responder
        self.channels: list[ScriptedChannel] = []

    async def __call__(self, host: str, port: int) -> ScriptedChannel:
        channel = ScriptedChannel(self.responder)
        self.channels.append(channel)
        return channel


class FaultyTrackerServer(UDPTrackerServer):
    """Dev tracker with hooks for injecting misbehaviour.

    ``overrides`` maps an action code to a function of the transaction ID
    returning the reply to send (or None to drop the request).
    """

    def __init__(self, store: InMemoryStatsStore | None = None):
        super().__init__(store)
        self.requests: list[tuple[int, int]] = []
        self.overrides: dict[int, Callable[[int], bytes | None]] = {}
        self.drop_next = 0

    def handle(self, connection_id, action, transaction_id, data, addr):
        self.requests.append((action, transaction_id))
        if self.drop_next > 0:
            self.drop_next -= 1
            return None
        if action in self.overrides:
            return self.overrides[action](transaction_id)
        return super().handle(connection_id, action, transaction_id, data, addr)

    def count(self, action: int) -> int:
        return sum(1 for a, _ in self.requests if a == action)


@pytest_asyncio.fixture
async def tracker():
    """Dev tracker listening on an ephemeral localhost port."""
    server = FaultyTrackerServer()
    await server.start("127.0.0.1", 0)
    yield server
    server.stop()


@pytest.fixture
def tracker_url(tracker) -> str:
    host, port = tracker.address
    return f"udp://{host}:{port}/announce"


@pytest.fixture
def fast_config() -> TrackerConfig:
    """Short deadlines so timeout paths finish quickly."""
    return TrackerConfig(timeout=0.2, retries=3, session_ttl=60.0)
