"""Normalized event models for the BitMEX real-time feed.

This module defines the domain event types the feed client produces.
Models are Pydantic-based with ``frozen=True`` for immutability.

Architecture note:
    Events are constructed in the transport's receive path. Hot-path
    construction uses ``model_construct()`` to skip Pydantic validation,
    since every field has already been type-checked during decoding.
    Regular construction (with validation) is safe for tests and
    untrusted external data.

Float precision contract:
    Prices are stored as IEEE 754 ``float``. Downstream code MUST compare
    prices using a tolerance, not exact equality.

Example:
    >>> from core.events import TradeEvent
    >>> event = TradeEvent(symbol="XBTUSD", side="Buy", size=100, price=50000.5)
    >>> event.symbol
    'XBTUSD'
    >>> event.as_args()
    ('XBTUSD', 'Buy', 100, 50000.5)
"""

from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

TradeCallback = Callable[[str, str, int, float], None]
"""Callback signature: ``(instrument, side, size, price) -> None``.

Invoked synchronously from ``FeedClient.handle_message``. Should be
non-blocking; a slow callback delays the transport's receive loop.
"""


# ---------------------------------------------------------------------------
# Event Models
# ---------------------------------------------------------------------------


class TradeEvent(BaseModel):
    """A single trade report decoded from a ``data`` array element.

    Attributes:
        symbol: Instrument identifier (e.g., ``"XBTUSD"``).
        side: Aggressor side as sent by the feed (``"Buy"`` / ``"Sell"``).
        size: Trade size in contracts.
        price: Trade price.

    Example:
        >>> TradeEvent(symbol="XBTUSD", side="Sell", size=5, price=49999.0)
        TradeEvent(symbol='XBTUSD', side='Sell', size=5, price=49999.0)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    symbol: str = Field(description="Instrument identifier (e.g., 'XBTUSD')")
    side: str = Field(description="Aggressor side ('Buy' or 'Sell')")
    size: int = Field(strict=True, description="Trade size in contracts")
    price: float = Field(description="Trade price")

    def as_args(self) -> tuple[str, str, int, float]:
        """Return the positional arguments for a :data:`TradeCallback`."""
        return (self.symbol, self.side, self.size, self.price)
