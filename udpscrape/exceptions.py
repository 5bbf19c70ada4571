"""Exception hierarchy for udpscrape.

Every error raised by the client derives from :class:`ScrapeError`, so callers
can catch the whole family at once. Transport-level failures (DNS, socket and
ICMP errors) are not wrapped and propagate as the builtin ``OSError`` family.
"""

from __future__ import annotations

from typing import Any


class ScrapeError(Exception):
    """Base exception for all udpscrape errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class ValidationError(ScrapeError):
    """Input validation errors, raised before any network I/O."""


class UnsupportedSchemeError(ValidationError):
    """Tracker URL does not use the ``udp`` scheme."""


class TooManyInfohashError(ValidationError):
    """More infohashes were requested than fit in one scrape packet."""


class MalformedInfohashError(ValidationError):
    """Infohash is neither 40 hex characters nor 20 raw bytes."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class TrackerError(ScrapeError):
    """Tracker communication errors."""


class IncompleteWriteError(TrackerError):
    """A datagram was not written in full."""


class InvalidResponseError(TrackerError):
    """The tracker reply is too short or cannot be parsed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        response: bytes = b"",
    ):
        super().__init__(message, details)
        self.response = response


class InvalidActionError(TrackerError):
    """The tracker answered with an unexpected action code."""


class InvalidTransactionIDError(TrackerError):
    """The echoed transaction ID does not match the one sent."""


class RemoteUnavailableError(TrackerError):
    """The tracker answered with an error packet."""


class RetryLimitExceededError(TrackerError):
    """Every attempt timed out."""
