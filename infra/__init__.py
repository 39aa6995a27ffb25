"""Infrastructure layer for the BitMEX Feed Adapter.

This package provides the wire-protocol client that encodes
subscription commands and decodes inbound BitMEX WebSocket messages.
"""

from infra.bitmex_feed import (
    FeedClient,
    FeedClientConfig,
    FeedClientStats,
    make_subscribe,
    parse_trades,
)

__all__: list[str] = [
    "FeedClient",
    "FeedClientConfig",
    "FeedClientStats",
    "make_subscribe",
    "parse_trades",
]
