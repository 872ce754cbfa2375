"""
Market Data Models: Type-safe representations of pricing stream records

This module defines dataclasses for the record types carried on the
pricing stream:
- PriceTick: One market snapshot for one instrument
- Heartbeat: Connection keepalive
- Unrecognized: Any payload that could not be classified or decoded

Decimal prices are kept as text. They are only parsed for display, never
for the data that is republished.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple, Union

logger = logging.getLogger(__name__)

HEARTBEAT_TYPE = "HEARTBEAT"

# Liquidity is an unsigned 64-bit quantity on the wire
MAX_LIQUIDITY = 2**64 - 1


class MessageDecodeError(ValueError):
    """Raised when a record is structurally matched but fails strict decoding."""


def _require_str(data: dict, key: str) -> str:
    if key not in data:
        raise MessageDecodeError(f"missing field '{key}'")
    value = data[key]
    if not isinstance(value, str):
        raise MessageDecodeError(f"field '{key}' must be a string, got {type(value).__name__}")
    return value


def _parse_liquidity(value: Any) -> int:
    # bool is a subclass of int in Python
    if isinstance(value, bool):
        raise MessageDecodeError(f"invalid liquidity {value!r}")
    if isinstance(value, int):
        liquidity = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        liquidity = int(value)
    else:
        raise MessageDecodeError(f"invalid liquidity {value!r}")
    if liquidity < 0:
        raise MessageDecodeError(f"liquidity must be unsigned, got {liquidity}")
    if liquidity > MAX_LIQUIDITY:
        raise MessageDecodeError(f"liquidity out of range: {liquidity}")
    return liquidity


def _display_decimal(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


@dataclass(frozen=True)
class PriceLevel:
    """
    A single rung of the price ladder.

    Attributes:
        price: Decimal price as text
        liquidity: Available liquidity at this price
    """
    price: str
    liquidity: int

    @classmethod
    def from_dict(cls, data: Any) -> "PriceLevel":
        if not isinstance(data, dict):
            raise MessageDecodeError(f"price level must be an object, got {type(data).__name__}")
        if "liquidity" not in data:
            raise MessageDecodeError("missing field 'liquidity'")
        return cls(
            price=_require_str(data, "price"),
            liquidity=_parse_liquidity(data["liquidity"]),
        )


def _parse_levels(data: dict, key: str) -> Tuple[PriceLevel, ...]:
    if key not in data:
        raise MessageDecodeError(f"missing field '{key}'")
    levels = data[key]
    if not isinstance(levels, list):
        raise MessageDecodeError(f"field '{key}' must be a list, got {type(levels).__name__}")
    return tuple(PriceLevel.from_dict(level) for level in levels)


@dataclass(frozen=True)
class PriceTick:
    """
    Represents one market snapshot for one instrument.

    The ask and bid ladders are kept in the order they arrived; the best
    price is typically first.

    Attributes:
        asks: Ask-side price levels
        bids: Bid-side price levels
        closeout_ask: Closeout ask price as text
        closeout_bid: Closeout bid price as text
        instrument: Instrument identifier (e.g., "EUR_USD")
        status: Tradeability status reported by the vendor
        time: ISO-8601 timestamp of the snapshot
    """
    asks: Tuple[PriceLevel, ...]
    bids: Tuple[PriceLevel, ...]
    closeout_ask: str
    closeout_bid: str
    instrument: str
    status: str
    time: str

    @classmethod
    def from_dict(cls, data: dict) -> "PriceTick":
        """
        Create a PriceTick from a raw dictionary.

        Args:
            data: Decoded JSON object from the stream

        Returns:
            PriceTick instance

        Raises:
            MessageDecodeError: If any required field is missing or malformed
        """
        return cls(
            asks=_parse_levels(data, "asks"),
            bids=_parse_levels(data, "bids"),
            closeout_ask=_require_str(data, "closeoutAsk"),
            closeout_bid=_require_str(data, "closeoutBid"),
            instrument=_require_str(data, "instrument"),
            status=_require_str(data, "status"),
            time=_require_str(data, "time"),
        )

    def to_dict(self) -> dict:
        """Convert back to the stream's JSON shape."""
        return {
            "asks": [{"price": level.price, "liquidity": level.liquidity} for level in self.asks],
            "bids": [{"price": level.price, "liquidity": level.liquidity} for level in self.bids],
            "closeoutAsk": self.closeout_ask,
            "closeoutBid": self.closeout_bid,
            "instrument": self.instrument,
            "status": self.status,
            "time": self.time,
        }

    def best_ask(self) -> Optional[Decimal]:
        """Best ask for display; None if absent or unparseable."""
        return _display_decimal(self.asks[0].price) if self.asks else None

    def best_bid(self) -> Optional[Decimal]:
        """Best bid for display; None if absent or unparseable."""
        return _display_decimal(self.bids[0].price) if self.bids else None

    def mid_price(self) -> Optional[Decimal]:
        """Closeout mid price for display; None if either side is unparseable."""
        ask = _display_decimal(self.closeout_ask)
        bid = _display_decimal(self.closeout_bid)
        if ask is None or bid is None:
            return None
        return (ask + bid) / 2

    def __repr__(self) -> str:
        return (
            f"PriceTick({self.instrument}, "
            f"asks={len(self.asks)}, bids={len(self.bids)}, time={self.time})"
        )


@dataclass(frozen=True)
class Heartbeat:
    """
    Represents a heartbeat record for connection monitoring.

    Attributes:
        time: ISO-8601 timestamp
        message_type: Value of the record's "type" field
    """
    time: str
    message_type: str

    @classmethod
    def from_dict(cls, data: dict) -> "Heartbeat":
        """
        Create a Heartbeat from a raw dictionary.

        Raises:
            MessageDecodeError: If "time" or "type" is missing or not a string
        """
        return cls(
            time=_require_str(data, "time"),
            message_type=_require_str(data, "type"),
        )

    def to_dict(self) -> dict:
        """Convert back to the stream's JSON shape."""
        return {"type": self.message_type, "time": self.time}


@dataclass(frozen=True)
class Unrecognized:
    """
    A record that could not be classified, kept verbatim for diagnostics.

    Attributes:
        payload: The decoded JSON value as received
    """
    payload: Any


StreamEvent = Union[PriceTick, Heartbeat, Unrecognized]


def classify_message(data: Any) -> StreamEvent:
    """
    Classify a decoded JSON value into a typed stream event.

    Discriminators are checked in priority order:
    1. "type" == "HEARTBEAT" -> Heartbeat
    2. "instrument" present  -> PriceTick
    3. anything else         -> Unrecognized

    A record that matches a discriminator but fails strict decoding is
    downgraded to Unrecognized rather than dropped.

    Args:
        data: Decoded JSON value

    Returns:
        PriceTick, Heartbeat or Unrecognized
    """
    if not isinstance(data, dict):
        logger.warning(f"Non-object record on stream: {data!r}")
        return Unrecognized(data)

    if data.get("type") == HEARTBEAT_TYPE:
        try:
            return Heartbeat.from_dict(data)
        except MessageDecodeError as e:
            logger.error(f"Error decoding Heartbeat: {e} from {data!r}")
            return Unrecognized(data)

    if "instrument" in data:
        try:
            return PriceTick.from_dict(data)
        except MessageDecodeError as e:
            logger.error(
                f"Error decoding PriceTick for {data.get('instrument')!r}: {e} from {data!r}"
            )
            return Unrecognized(data)

    logger.warning(f"Unknown message type or missing discriminator: {data!r}")
    return Unrecognized(data)


def parse_stream_line(line: str) -> Optional[StreamEvent]:
    """
    Parse one newline-delimited record from the stream.

    Returns:
        The classified event, or None for blank lines and malformed JSON
    """
    stripped = line.strip()
    if not stripped:
        return None

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing JSON line: '{stripped}' -> {e}")
        return None

    return classify_message(data)
