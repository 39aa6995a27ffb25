"""Protocol adapter for the BitMEX real-time WebSocket feed.

This module provides the ``FeedClient`` that sits between a WebSocket
transport and the event consumer. It builds subscribe commands for
``(instrument, topic)`` pairs and decodes inbound JSON messages into
trade reports, forwarding each one to a single registered callback.

Architecture note:
    The client owns no connection. Callers send the command returned by
    ``build_subscribe()`` over their own transport and feed every
    received text frame into ``handle_message()``. Both calls are
    synchronous and perform no I/O.

Thread ownership:
    - ``on_trade()``: setup thread, before the transport is connected.
    - ``handle_message()``: transport receive thread only. Calls from
      several threads must be serialised by the caller.
    - ``stats()``: any thread (lock-free, eventually consistent).

Error isolation:
    Malformed input never raises. An unparsable message is counted in
    ``parse_errors``, a message without a usable ``table``/``data``
    envelope in ``messages_ignored``, and a ``data`` element without a
    trade shape in ``records_skipped``. Sibling elements of a skipped
    element are still delivered. A raising callback is counted in
    ``callback_errors`` and does not stop delivery of the remaining
    trades in the message.

Logging safety:
    Hot-path error logging is rate-limited. The first 10 errors of
    each type are logged in full. Subsequent errors are logged at
    reduced frequency (every 1000th) to prevent log storms on a feed
    that keeps sending garbage.

Example:
    >>> from core.topics import Topic
    >>> from infra.bitmex_feed import FeedClient
    >>>
    >>> trades = []
    >>> client = FeedClient()
    >>> client.on_trade(lambda *args: trades.append(args))
    >>> client.build_subscribe("XBTUSD", Topic.TRADE)
    '{"op":"subscribe","args":["trade:XBTUSD"]}'
    >>> client.handle_message(
    ...     '{"table":"trade","data":[{"symbol":"XBTUSD","side":"Buy",'
    ...     '"size":100,"price":50000.5}]}'
    ... )
    >>> trades
    [('XBTUSD', 'Buy', 100, 50000.5)]
"""

import json
import logging
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

from core.events import TradeCallback, TradeEvent
from core.topics import Topic, name_of

logger: logging.Logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

RawMessage = Union[str, bytes, bytearray]
"""A single text frame as delivered by the transport."""

# ---------------------------------------------------------------------------
# Wire constants
# ---------------------------------------------------------------------------

_TRADE_TABLE: str = name_of(Topic.TRADE)
"""``table`` value required when ``strict_table`` is enabled."""

# ---------------------------------------------------------------------------
# Rate-limited logging thresholds
# ---------------------------------------------------------------------------

_LOG_FIRST_N: int = 10
"""Log the first N errors of each type in full."""

_LOG_EVERY_N: int = 1000
"""After the first N errors, log every Nth occurrence."""

_LOG_PAYLOAD_PREVIEW: int = 200
"""Maximum number of payload characters included in a log record."""

# ---------------------------------------------------------------------------
# Field ranges
# ---------------------------------------------------------------------------

_INT32_MIN: int = -(2**31)
_INT32_MAX: int = 2**31 - 1
"""``size`` must fit a signed 32-bit integer."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class FeedClientConfig(BaseModel):
    """Configuration for :class:`FeedClient`.

    Attributes:
        strict_table: If ``True``, only messages whose ``table`` is
            ``"trade"`` are decoded. If ``False`` (default), any string
            ``table`` is accepted and the trade shape of each ``data``
            element is the only discriminator.
        integral_price: If ``True``, a ``price`` written as an integer
            literal (``50000``) is widened to ``float``. If ``False``
            (default), such records are skipped like any other
            wrong-typed field.

    Example:
        >>> FeedClientConfig(strict_table=True).strict_table
        True
    """

    strict_table: bool = Field(
        default=False,
        description=(
            "Require table == 'trade'. When False, records from other "
            "channels that carry symbol/side/size/price are also "
            "reported as trades."
        ),
    )
    integral_price: bool = Field(
        default=False,
        description=(
            "Accept integer literals (e.g. 50000) as price and widen them "
            "to float. When False, only JSON numbers written with a "
            "fraction or exponent are prices."
        ),
    )


# ---------------------------------------------------------------------------
# Stats Model
# ---------------------------------------------------------------------------


class FeedClientStats(BaseModel):
    """Immutable snapshot of feed client counters.

    Returned by :meth:`FeedClient.stats`. Values are eventually
    consistent when read from a thread other than the receive thread.

    Attributes:
        messages_received: Calls to ``handle_message()``.
        parse_errors: Messages that were not valid JSON.
        messages_ignored: Valid JSON without a usable envelope.
        records_skipped: ``data`` elements without a trade shape.
        trades_dispatched: Callback invocations that returned normally.
        trades_dropped: Trades decoded while no callback was registered.
        callback_errors: Callback invocations that raised.
        strict_table: Echo of :attr:`FeedClientConfig.strict_table`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    messages_received: int = Field(ge=0, description="handle_message() calls")
    parse_errors: int = Field(ge=0, description="Messages that were not JSON")
    messages_ignored: int = Field(
        ge=0,
        description="JSON messages without a table/data envelope",
    )
    records_skipped: int = Field(
        ge=0,
        description="data elements missing a trade field",
    )
    trades_dispatched: int = Field(
        ge=0,
        description="Trades delivered to the callback",
    )
    trades_dropped: int = Field(
        ge=0,
        description="Trades decoded with no callback registered",
    )
    callback_errors: int = Field(ge=0, description="Callback invocations that raised")
    strict_table: bool = Field(description="Whether table == 'trade' is enforced")


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------


def _maybe_string(parent: dict[str, Any], name: str) -> str | None:
    """Return ``parent[name]`` if it is a string, else ``None``."""
    value = parent.get(name)
    return value if isinstance(value, str) else None


def _maybe_int(parent: dict[str, Any], name: str) -> int | None:
    """Return ``parent[name]`` if it is a signed 32-bit JSON integer, else ``None``.

    ``bool`` is an ``int`` subclass in Python but ``true``/``false`` in
    JSON, so it is rejected.
    """
    value = parent.get(name)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if not _INT32_MIN <= value <= _INT32_MAX:
        return None
    return value


def _maybe_float(
    parent: dict[str, Any],
    name: str,
    allow_integral: bool = False,
) -> float | None:
    """Return ``parent[name]`` if it is a floating-point JSON number, else ``None``.

    Integer literals (``50000``) are rejected unless ``allow_integral``
    is set, in which case they are widened. Integers too large for a
    double are always rejected.
    """
    value = parent.get(name)
    if isinstance(value, float):
        return value
    if not allow_integral or isinstance(value, bool) or not isinstance(value, int):
        return None
    try:
        return float(value)
    except OverflowError:
        return None


def _maybe_list(parent: dict[str, Any], name: str) -> list[Any] | None:
    """Return ``parent[name]`` if it is an array, else ``None``."""
    value = parent.get(name)
    return value if isinstance(value, list) else None


def _reject_constant(name: str) -> float:
    """Reject ``NaN``/``Infinity`` literals, which are not valid JSON."""
    raise ValueError(f"non-standard JSON constant: {name}")


def _first_key_wins(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """Build an object keeping the first value of a duplicated key."""
    obj: dict[str, Any] = {}
    for key, value in pairs:
        obj.setdefault(key, value)
    return obj


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def make_subscribe(instrument: str, topic: Topic) -> str:
    """Build a subscribe command for one topic and instrument.

    The instrument is embedded verbatim. Identifiers containing quotes
    or control characters produce an invalid command; escaping them is
    the caller's responsibility.

    Args:
        instrument: Instrument identifier (e.g., ``"XBTUSD"``).
        topic: Subscription topic.

    Returns:
        The command text, e.g.
        ``{"op":"subscribe","args":["trade:XBTUSD"]}``.

    Example:
        >>> make_subscribe("XBTUSD", Topic.TRADE_BIN_1M)
        '{"op":"subscribe","args":["tradeBin1m:XBTUSD"]}'
    """
    return f'{{"op":"subscribe","args":["{name_of(topic)}:{instrument}"]}}'


def _loads(raw: RawMessage) -> Any:
    """Decode a JSON document. Raises ``ValueError`` or ``RecursionError``."""
    return json.loads(
        raw,
        parse_constant=_reject_constant,
        object_pairs_hook=_first_key_wins,
    )


def _extract_records(doc: Any, strict_table: bool) -> list[Any] | None:
    """Return the ``data`` array of a valid envelope, else ``None``."""
    if not isinstance(doc, dict):
        return None
    table: str | None = _maybe_string(doc, "table")
    if table is None:
        return None
    if strict_table and table != _TRADE_TABLE:
        return None
    return _maybe_list(doc, "data")


def _decode_trade(record: Any, integral_price: bool = False) -> TradeEvent | None:
    """Decode one ``data`` element into a :class:`TradeEvent`.

    Returns ``None`` when any of ``symbol``, ``side``, ``size`` or
    ``price`` is missing or has the wrong type.
    """
    if not isinstance(record, dict):
        return None
    symbol: str | None = _maybe_string(record, "symbol")
    if symbol is None:
        return None
    side: str | None = _maybe_string(record, "side")
    if side is None:
        return None
    size: int | None = _maybe_int(record, "size")
    if size is None:
        return None
    price: float | None = _maybe_float(record, "price", integral_price)
    if price is None:
        return None
    return TradeEvent.model_construct(
        symbol=symbol,
        side=side,
        size=size,
        price=price,
    )


def parse_trades(
    raw: RawMessage,
    *,
    strict_table: bool = False,
    integral_price: bool = False,
) -> list[TradeEvent]:
    """Decode every trade-shaped record in a message.

    Applies the same rules as :meth:`FeedClient.handle_message` without
    dispatching or counting. Never raises on malformed input.

    Args:
        raw: Message text as received from the transport.
        strict_table: Require ``table == "trade"``.
        integral_price: Accept integer literals as ``price``.

    Returns:
        Decoded trades in ``data`` array order. Empty if the message is
        not valid JSON or has no usable envelope.

    Example:
        >>> parse_trades('{"table":"trade","data":[{"symbol":"XBTUSD"}]}')
        []
    """
    try:
        doc: Any = _loads(raw)
    except (ValueError, RecursionError):
        return []
    records: list[Any] | None = _extract_records(doc, strict_table)
    if records is None:
        return []
    trades: list[TradeEvent] = []
    for record in records:
        trade: TradeEvent | None = _decode_trade(record, integral_price)
        if trade is not None:
            trades.append(trade)
    return trades


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FeedClient:
    """BitMEX WebSocket protocol client.

    Builds subscription commands and decodes inbound messages into trade
    reports. Does not provide WebSocket connectivity; the caller owns the
    transport.

    Callback slot:
        Holds at most one trade callback. ``on_trade()`` replaces the
        previous one (last registration wins). Trades decoded while no
        callback is registered are counted and discarded.

    Args:
        config: Client configuration. Defaults to ``FeedClientConfig()``.
        on_trade: Optional initial trade callback.

    Example:
        >>> client = FeedClient(config=FeedClientConfig(strict_table=True))
        >>> client.on_trade(print)
        >>> ws.send(client.build_subscribe("XBTUSD", Topic.TRADE))
        >>> # in the transport's message handler:
        >>> client.handle_message(frame)
    """

    def __init__(
        self,
        config: FeedClientConfig | None = None,
        on_trade: TradeCallback | None = None,
    ) -> None:
        self._config: FeedClientConfig = config or FeedClientConfig()
        self._strict_table: bool = self._config.strict_table
        self._integral_price: bool = self._config.integral_price
        self._on_trade: TradeCallback | None = on_trade

        # Counters are single-writer (receive thread), lock-free reads
        self._messages_received: int = 0
        self._parse_errors: int = 0
        self._messages_ignored: int = 0
        self._records_skipped: int = 0
        self._trades_dispatched: int = 0
        self._trades_dropped: int = 0
        self._callback_errors: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_trade(self, callback: TradeCallback | None) -> None:
        """Set the callback invoked for each reported trade.

        Replaces any previously registered callback. Passing ``None``
        clears the slot.

        Args:
            callback: ``(instrument, side, size, price) -> None``.
        """
        replaced: bool = self._on_trade is not None
        self._on_trade = callback
        if callback is None:
            logger.info("FeedClient trade callback cleared")
        elif replaced:
            logger.info("FeedClient trade callback replaced")
        else:
            logger.info("FeedClient trade callback registered")

    def build_subscribe(self, instrument: str, topic: Topic) -> str:
        """Make a subscription request message for an instrument and topic.

        Pure: sends nothing and leaves client state untouched.

        Args:
            instrument: Instrument identifier, embedded verbatim.
            topic: Subscription topic.

        Returns:
            Command text to send over the transport.

        Example:
            >>> FeedClient().build_subscribe("XBTUSD", Topic.TRADE)
            '{"op":"subscribe","args":["trade:XBTUSD"]}'
        """
        return make_subscribe(instrument, topic)

    subscribe_message = build_subscribe

    def handle_message(self, raw: RawMessage) -> None:
        """Decode a message and invoke the trade callback per trade.

        **HOT PATH**. Runs inline in the transport's receive thread.

        Never raises on malformed input. See the module docstring for
        the counters each failure path increments.

        Args:
            raw: One complete message as received from the transport.
        """
        self._messages_received += 1

        try:
            doc: Any = _loads(raw)
        except (ValueError, RecursionError):
            self._parse_errors += 1
            self._log_parse_error(raw=raw)
            return

        records: list[Any] | None = _extract_records(doc, self._strict_table)
        if records is None:
            self._messages_ignored += 1
            logger.debug("Ignoring message without trade envelope")
            return

        for record in records:
            trade: TradeEvent | None = _decode_trade(record, self._integral_price)
            if trade is None:
                self._records_skipped += 1
                logger.debug("Skipping record without trade fields")
                continue
            self._dispatch(trade)

    def stats(self) -> FeedClientStats:
        """Return a snapshot of client counters.

        Lock-free. Can be called from any thread; values read from a
        thread other than the receive thread are eventually consistent.

        Returns:
            Frozen :class:`FeedClientStats` snapshot.
        """
        return FeedClientStats(
            messages_received=self._messages_received,
            parse_errors=self._parse_errors,
            messages_ignored=self._messages_ignored,
            records_skipped=self._records_skipped,
            trades_dispatched=self._trades_dispatched,
            trades_dropped=self._trades_dropped,
            callback_errors=self._callback_errors,
            strict_table=self._strict_table,
        )

    def reset_stats(self) -> None:
        """Zero all counters. Not concurrent with ``handle_message()``."""
        self._messages_received = 0
        self._parse_errors = 0
        self._messages_ignored = 0
        self._records_skipped = 0
        self._trades_dispatched = 0
        self._trades_dropped = 0
        self._callback_errors = 0

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, trade: TradeEvent) -> None:
        """Forward one trade to the registered callback (isolated)."""
        callback: TradeCallback | None = self._on_trade
        if callback is None:
            self._trades_dropped += 1
            return
        try:
            callback(trade.symbol, trade.side, trade.size, trade.price)
        except Exception:
            self._callback_errors += 1
            self._log_callback_error(symbol=trade.symbol)
            return
        self._trades_dispatched += 1

    # ------------------------------------------------------------------
    # Rate-Limited Logging
    # ------------------------------------------------------------------

    def _log_parse_error(self, raw: RawMessage) -> None:
        """Log a JSON parse error with rate limiting.

        First ``_LOG_FIRST_N`` errors: WARNING with a payload preview.
        Subsequent errors: every ``_LOG_EVERY_N``-th occurrence at ERROR.

        Args:
            raw: The message that failed to parse.
        """
        count: int = self._parse_errors
        if count <= _LOG_FIRST_N:
            logger.warning(
                "Failed to parse feed message (%d/%d): %r",
                count,
                _LOG_FIRST_N,
                raw[:_LOG_PAYLOAD_PREVIEW],
            )
        elif count % _LOG_EVERY_N == 0:
            logger.error("Parse errors ongoing: %d total", count)

    def _log_callback_error(self, symbol: str) -> None:
        """Log a trade callback error with rate limiting.

        First ``_LOG_FIRST_N`` errors: full stack trace via
        ``logger.exception()``. Subsequent errors: every
        ``_LOG_EVERY_N``-th occurrence at ERROR level (no trace).

        Args:
            symbol: Instrument of the trade being delivered.
        """
        count: int = self._callback_errors
        if count <= _LOG_FIRST_N:
            logger.exception(
                "Trade callback error for %s (%d/%d)",
                symbol,
                count,
                _LOG_FIRST_N,
            )
        elif count % _LOG_EVERY_N == 0:
            logger.error(
                "Callback errors ongoing: %d total (symbol=%s)",
                count,
                symbol,
            )
