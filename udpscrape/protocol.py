"""UDP tracker packet codec (BEP 15).

Pure functions translating connect and scrape messages to and from wire
bytes. Everything is big-endian. Nothing here performs I/O or keeps state.
"""

from __future__ import annotations

import binascii
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence, Union

from udpscrape.exceptions import (
    InvalidResponseError,
    MalformedInfohashError,
    TooManyInfohashError,
)

# Magic connection ID sent with every connect request
PROTOCOL_ID = 0x41727101980

# A scrape request for more than 74 hashes would not fit in a 1500-byte MTU
MAX_INFOHASHES = 74
INFOHASH_LENGTH = 20

CONNECT_REQUEST_SIZE = 16
CONNECT_RESPONSE_SIZE = 16
SCRAPE_HEADER_SIZE = 16
RESPONSE_HEADER_SIZE = 8
SCRAPE_RECORD_SIZE = 12

_REQUEST_HEADER = struct.Struct("!QII")
_RESPONSE_HEADER = struct.Struct("!II")
_CONNECT_RESPONSE = struct.Struct("!IIQ")
_SCRAPE_RECORD = struct.Struct("!III")

Infohash = Union[str, bytes]


class TrackerAction(IntEnum):
    """UDP tracker actions."""

    CONNECT = 0
    ANNOUNCE = 1
    SCRAPE = 2
    ERROR = 3


@dataclass(frozen=True)
class ConnectResponse:
    """Decoded connect response."""

    action: int
    transaction_id: int
    connection_id: int


@dataclass(frozen=True)
class ScrapeStats:
    """One record of a scrape response, in wire order."""

    seeders: int
    completed: int
    leechers: int


@dataclass(frozen=True)
class ScrapeResponse:
    """Decoded scrape response."""

    action: int
    transaction_id: int
    stats: tuple[ScrapeStats, ...]


@dataclass(frozen=True)
class ErrorResponse:
    """Decoded error response."""

    action: int
    transaction_id: int
    message: str


def _check_count(count: int) -> None:
    if count < 0:
        msg = f"Infohash count cannot be negative: {count}"
        raise ValueError(msg)
    if count > MAX_INFOHASHES:
        msg = f"Cannot scrape more than {MAX_INFOHASHES} infohashes at once"
        raise TooManyInfohashError(msg, {"count": count})


def scrape_request_size(count: int) -> int:
    """Size in bytes of a scrape request for ``count`` infohashes."""
    _check_count(count)
    return SCRAPE_HEADER_SIZE + INFOHASH_LENGTH * count


def scrape_response_size(count: int) -> int:
    """Minimum size in bytes of a scrape response for ``count`` infohashes."""
    _check_count(count)
    return RESPONSE_HEADER_SIZE + SCRAPE_RECORD_SIZE * count


def infohash_to_bytes(infohash: Infohash) -> bytes:
    """Convert a caller-supplied infohash to its 20 raw bytes.

    Accepts a 40-character hex string, 40 ASCII hex bytes or 20 raw bytes.

    Raises:
        MalformedInfohashError: for any other shape

    """
    if isinstance(infohash, str):
        try:
            raw = infohash.encode("ascii")
        except UnicodeEncodeError as e:
            msg = f"Infohash is not hexadecimal: {infohash!r}"
            raise MalformedInfohashError(msg) from e
    elif isinstance(infohash, (bytes, bytearray, memoryview)):
        raw = bytes(infohash)
        if len(raw) == INFOHASH_LENGTH:
            return raw
    else:
        msg = f"Unsupported infohash type: {type(infohash).__name__}"
        raise MalformedInfohashError(msg)

    if len(raw) != INFOHASH_LENGTH * 2:
        msg = f"Infohash must be 40 hex characters, got {len(raw)}"
        raise MalformedInfohashError(msg, {"infohash": infohash})
    try:
        return binascii.unhexlify(raw)
    except (binascii.Error, ValueError) as e:
        msg = f"Infohash is not hexadecimal: {infohash!r}"
        raise MalformedInfohashError(msg) from e


def encode_connect_request(transaction_id: int) -> bytes:
    """Encode a connect request (16 bytes)."""
    return _REQUEST_HEADER.pack(PROTOCOL_ID, TrackerAction.CONNECT, transaction_id)


def decode_connect_response(data: bytes) -> ConnectResponse:
    """Decode a connect response.

    Raises:
        InvalidResponseError: if ``data`` is shorter than 16 bytes

    """
    if len(data) < CONNECT_RESPONSE_SIZE:
        msg = f"Connect response too short: {len(data)} bytes"
        raise InvalidResponseError(msg, response=bytes(data))
    action, transaction_id, connection_id = _CONNECT_RESPONSE.unpack_from(data)
    return ConnectResponse(action, transaction_id, connection_id)


def encode_scrape_request(
    connection_id: int,
    transaction_id: int,
    infohashes: Sequence[bytes],
) -> bytes:
    """Encode a scrape request.

    Args:
        connection_id: Connection ID from the connect handshake
        transaction_id: Transaction ID for this request
        infohashes: Raw 20-byte infohashes, in the order results are wanted

    Returns:
        Encoded request, ``16 + 20 * len(infohashes)`` bytes

    """
    buf = bytearray(scrape_request_size(len(infohashes)))
    _REQUEST_HEADER.pack_into(buf, 0, connection_id, TrackerAction.SCRAPE, transaction_id)

    offset = SCRAPE_HEADER_SIZE
    for infohash in infohashes:
        if len(infohash) != INFOHASH_LENGTH:
            msg = f"Invalid info_hash length: {len(infohash)}, expected 20"
            raise MalformedInfohashError(msg)
        buf[offset : offset + INFOHASH_LENGTH] = infohash
        offset += INFOHASH_LENGTH
    return bytes(buf)


def peek_header(data: bytes) -> tuple[int, int]:
    """Return ``(action, transaction_id)`` from a response header."""
    if len(data) < RESPONSE_HEADER_SIZE:
        msg = f"Response too short: {len(data)} bytes"
        raise InvalidResponseError(msg, response=bytes(data))
    return _RESPONSE_HEADER.unpack_from(data)


def decode_scrape_response(data: bytes, count: int) -> ScrapeResponse:
    """Decode a scrape response carrying ``count`` records.

    Raises:
        InvalidResponseError: if ``data`` is shorter than ``8 + 12 * count``

    """
    expected = scrape_response_size(count)
    if len(data) < expected:
        msg = f"Scrape response too short: {len(data)} bytes, expected {expected}"
        raise InvalidResponseError(msg, response=bytes(data))

    action, transaction_id = _RESPONSE_HEADER.unpack_from(data)
    stats = tuple(
        ScrapeStats(*_SCRAPE_RECORD.unpack_from(data, RESPONSE_HEADER_SIZE + i * SCRAPE_RECORD_SIZE))
        for i in range(count)
    )
    return ScrapeResponse(action, transaction_id, stats)


def decode_error_response(data: bytes) -> ErrorResponse:
    """Decode an error response; the message is UTF-8, undecodable bytes replaced."""
    action, transaction_id = peek_header(data)
    message = bytes(data[RESPONSE_HEADER_SIZE:]).decode("utf-8", errors="replace")
    return ErrorResponse(action, transaction_id, message)


# Tracker side


def encode_connect_response(transaction_id: int, connection_id: int) -> bytes:
    """Encode a connect response (16 bytes)."""
    return _CONNECT_RESPONSE.pack(TrackerAction.CONNECT, transaction_id, connection_id)


def encode_scrape_response(
    transaction_id: int,
    stats: Sequence[tuple[int, int, int]],
) -> bytes:
    """Encode a scrape response from ``(seeders, completed, leechers)`` triples."""
    buf = bytearray(scrape_response_size(len(stats)))
    _RESPONSE_HEADER.pack_into(buf, 0, TrackerAction.SCRAPE, transaction_id)
    for i, (seeders, completed, leechers) in enumerate(stats):
        _SCRAPE_RECORD.pack_into(
            buf,
            RESPONSE_HEADER_SIZE + i * SCRAPE_RECORD_SIZE,
            seeders,
            completed,
            leechers,
        )
    return bytes(buf)


def encode_error_response(transaction_id: int, message: str) -> bytes:
    """Encode an error response."""
    return _RESPONSE_HEADER.pack(TrackerAction.ERROR, transaction_id) + message.encode("utf-8")
