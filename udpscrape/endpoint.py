"""Tracker address parsing."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from udpscrape.exceptions import UnsupportedSchemeError

UDP_SCHEME = "udp"


@dataclass(frozen=True)
class TrackerEndpoint:
    """Host and port of a UDP tracker."""

    host: str
    port: int
    url: str = ""

    @classmethod
    def from_url(cls, url: str) -> TrackerEndpoint:
        """Parse a UDP tracker URL.

        Handles URLs with and without paths, and IPv6 literals:
        - udp://host:port/announce -> (host, port)
        - udp://host:port -> (host, port)
        - udp://[2001:db8::1]:6881/announce -> (2001:db8::1, 6881)

        Raises:
            UnsupportedSchemeError: if the scheme is not ``udp``
            ValueError: if the host is empty or the port missing or invalid

        """
        parts = urlsplit(url.strip())
        if parts.scheme.lower() != UDP_SCHEME:
            msg = "Unsupported scrape scheme"
            raise UnsupportedSchemeError(msg, {"url": url, "scheme": parts.scheme})

        host = parts.hostname
        if not host:
            msg = f"Empty host in UDP URL: {url}"
            raise ValueError(msg)

        try:
            port = parts.port
        except ValueError as e:
            msg = f"Invalid port in UDP URL: {url}"
            raise ValueError(msg) from e
        if port is None:
            msg = f"Missing port in UDP URL: {url}"
            raise ValueError(msg)
        if not 1 <= port <= 65535:
            msg = f"Invalid port range in UDP URL: {url} (port: {port})"
            raise ValueError(msg)

        return cls(host=host, port=port, url=url)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
