"""Subscription topics for the BitMEX real-time feed.

This module defines the closed set of public channels a client can
subscribe to, each carrying its canonical wire name as the enum value.
Remote servers match on these strings verbatim, so the values must not
be changed.

Totality and injectivity:
    The wire name *is* the member value, so no topic can exist without
    one. ``@unique`` turns two members sharing a wire name into an
    import-time ``ValueError`` instead of a silent alias.

Example:
    >>> from core.topics import Topic, name_of
    >>> name_of(Topic.TRADE)
    'trade'
    >>> name_of(Topic.ORDER_BOOK_L2_25)
    'orderBookL2_25'
"""

from enum import Enum, unique


@unique
class Topic(str, Enum):
    """BitMEX public subscription topic.

    Mirrors the channel list of the BitMEX WebSocket API
    (https://www.bitmex.com/app/wsAPI). Using ``str`` as a mixin lets a
    member compare equal to its wire name.

    Example:
        >>> Topic.TRADE == "trade"
        True
        >>> Topic("quoteBin1m")
        <Topic.QUOTE_BIN_1M: 'quoteBin1m'>
    """

    ANNOUNCEMENT = "announcement"
    CHAT = "chat"
    CONNECTED = "connected"
    FUNDING = "funding"
    INSTRUMENT = "instrument"
    INSURANCE = "insurance"
    LIQUIDATION = "liquidation"
    ORDER_BOOK_L2_25 = "orderBookL2_25"
    ORDER_BOOK_L2 = "orderBookL2"
    ORDER_BOOK_10 = "orderBook10"
    PUBLIC_NOTIFICATIONS = "publicNotifications"
    QUOTE = "quote"
    QUOTE_BIN_1M = "quoteBin1m"
    QUOTE_BIN_5M = "quoteBin5m"
    QUOTE_BIN_1H = "quoteBin1h"
    QUOTE_BIN_1D = "quoteBin1d"
    SETTLEMENT = "settlement"
    TRADE = "trade"
    TRADE_BIN_1M = "tradeBin1m"
    TRADE_BIN_5M = "tradeBin5m"
    TRADE_BIN_1H = "tradeBin1h"
    TRADE_BIN_1D = "tradeBin1d"


def name_of(topic: Topic) -> str:
    """Return the canonical wire name of a topic.

    Args:
        topic: Subscription topic.

    Returns:
        The wire string used in subscribe commands (e.g. ``"tradeBin1m"``).
    """
    return topic.value
