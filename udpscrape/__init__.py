"""udpscrape - UDP BitTorrent tracker scrape client (BEP 15)."""

from __future__ import annotations

__version__ = "0.1.0"

from udpscrape.client import ScrapeResult, UDPScrapeClient
from udpscrape.config import get_config, init_config
from udpscrape.endpoint import TrackerEndpoint
from udpscrape.exceptions import (
    IncompleteWriteError,
    InvalidActionError,
    InvalidResponseError,
    InvalidTransactionIDError,
    MalformedInfohashError,
    RemoteUnavailableError,
    RetryLimitExceededError,
    ScrapeError,
    TooManyInfohashError,
    TrackerError,
    UnsupportedSchemeError,
    ValidationError,
)
from udpscrape.protocol import MAX_INFOHASHES, TrackerAction

__all__ = [
    "MAX_INFOHASHES",
    "IncompleteWriteError",
    "InvalidActionError",
    "InvalidResponseError",
    "InvalidTransactionIDError",
    "MalformedInfohashError",
    "RemoteUnavailableError",
    "RetryLimitExceededError",
    "ScrapeError",
    "ScrapeResult",
    "TooManyInfohashError",
    "TrackerAction",
    "TrackerEndpoint",
    "TrackerError",
    "UDPScrapeClient",
    "UnsupportedSchemeError",
    "ValidationError",
    "__version__",
    "get_config",
    "init_config",
]
