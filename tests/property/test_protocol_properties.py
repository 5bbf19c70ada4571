"""
Property-based tests for the packet codec.

Tests invariants of scrape packet encoding and decoding
using Hypothesis for automatic test case generation.
"""

from hypothesis import given
from hypothesis import strategies as st

from udpscrape.protocol import (
    MAX_INFOHASHES,
    decode_scrape_response,
    encode_scrape_request,
    encode_scrape_response,
)

u32 = st.integers(min_value=0, max_value=2**32 - 1)
u64 = st.integers(min_value=0, max_value=2**64 - 1)
triples = st.lists(st.tuples(u32, u32, u32), min_size=0, max_size=MAX_INFOHASHES)
hashes = st.lists(st.binary(min_size=20, max_size=20), min_size=0, max_size=MAX_INFOHASHES)


class TestScrapeCodecProperties:
    """Property-based tests for scrape packets."""

    @given(u32, triples)
    def test_response_reproduces_triples(self, transaction_id, stats):
        """Decoding an encoded response yields the same triples, in order."""
        response = decode_scrape_response(
            encode_scrape_response(transaction_id, stats),
            len(stats),
        )

        assert response.transaction_id == transaction_id
        assert [(s.seeders, s.completed, s.leechers) for s in response.stats] == stats

    @given(u64, u32, hashes)
    def test_request_keeps_hash_order(self, connection_id, transaction_id, infohashes):
        """Infohashes appear in the request in the order given."""
        data = encode_scrape_request(connection_id, transaction_id, infohashes)

        assert len(data) == 16 + 20 * len(infohashes)
        body = data[16:]
        assert [body[i : i + 20] for i in range(0, len(body), 20)] == infohashes
