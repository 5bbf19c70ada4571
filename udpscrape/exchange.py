"""Request/response exchange over a connected datagram channel.

A read timeout is the only condition retried: it is the one failure where a
lost request cannot be told apart from a slow reply. Everything else ends the
exchange at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from udpscrape.exceptions import (
    IncompleteWriteError,
    InvalidResponseError,
    RetryLimitExceededError,
)

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """What :func:`exchange` needs from a transport."""

    def send(self, data: bytes) -> int: ...

    async def receive(self, timeout: float) -> bytes: ...

    def discard_pending(self) -> int: ...


async def exchange(
    channel: Channel,
    packet: bytes,
    min_length: int,
    timeout: float,
    retries: int,
) -> bytes:
    """Send ``packet`` and return the first datagram received in reply.

    Args:
        channel: Open channel to the tracker
        packet: Request to send, resent unchanged on every attempt
        min_length: Replies shorter than this are rejected
        timeout: Read deadline per attempt, in seconds
        retries: Additional attempts allowed after the first one times out

    Raises:
        IncompleteWriteError: if the datagram was not written in full
        RetryLimitExceededError: if ``retries + 1`` attempts all timed out
        InvalidResponseError: if the reply is shorter than ``min_length``
        OSError: any other transport error, unchanged

    """
    channel.discard_pending()

    attempt = 1
    while True:
        written = channel.send(packet)
        if written != len(packet):
            msg = "UDP packet was not entirely written"
            raise IncompleteWriteError(msg, {"written": written, "expected": len(packet)})

        try:
            data = await channel.receive(timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timeout waiting for tracker response (attempt %d/%d, timeout=%.1fs)",
                attempt,
                retries + 1,
                timeout,
            )
            if attempt > retries:
                msg = "Maximum number of retries exceeded"
                raise RetryLimitExceededError(msg, {"attempts": attempt}) from None
            attempt += 1
            continue
        break

    if len(data) < min_length:
        msg = "Invalid response received from tracker"
        raise InvalidResponseError(
            msg,
            {"length": len(data), "expected": min_length},
            response=data,
        )
    return data
