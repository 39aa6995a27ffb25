"""Core domain layer for the BitMEX Feed Adapter.

This package provides the subscription topic catalogue and the
normalized event models used throughout the adapter. Event models are
Pydantic-based with frozen configuration for immutability.
"""

from core.events import TradeCallback, TradeEvent
from core.topics import Topic, name_of

__all__: list[str] = [
    "Topic",
    "TradeCallback",
    "TradeEvent",
    "name_of",
]
