"""
Wire Codec - conversion of stream events to binary frames.

Each published message is a single msgpack map with one key naming the
variant ("price_tick" or "heartbeat"). Timestamps use the msgpack timestamp
extension type, which carries a signed 64-bit seconds value and a 32-bit
nanoseconds value.

The variant map mirrors a protobuf oneof, but the bytes are msgpack, not
protobuf. Subscribers expecting protobuf-encoded stream messages cannot
decode these frames; use decode_frame() or any msgpack reader instead.

Decimal prices are copied through as text; no numeric parsing happens here.
"""

from typing import Any, Tuple

import msgpack

from ..models.market_data import Heartbeat, PriceLevel, PriceTick, StreamEvent
from ..models.wire_frames import (
    FrameTimestamp,
    HeartbeatFrame,
    PriceLevelFrame,
    PriceTickFrame,
    WireFrame,
)
from ..utils.time_utils import TimestampParseError, normalize_timestamp

PRICE_TICK_KEY = "price_tick"
HEARTBEAT_KEY = "heartbeat"


class FrameConversionError(ValueError):
    """Raised when a stream event cannot be converted to a wire frame."""


class FrameDecodeError(ValueError):
    """Raised when a binary payload is not a valid wire frame."""


def _convert_time(time_str: str, context: str) -> FrameTimestamp:
    try:
        seconds, nanos = normalize_timestamp(time_str)
    except TimestampParseError as e:
        raise FrameConversionError(f"{context}: {e}") from e
    return FrameTimestamp(seconds=seconds, nanos=nanos)


def _convert_levels(levels: Tuple[PriceLevel, ...]) -> Tuple[PriceLevelFrame, ...]:
    return tuple(PriceLevelFrame(price=level.price, liquidity=level.liquidity) for level in levels)


def price_tick_to_frame(tick: PriceTick) -> PriceTickFrame:
    """
    Convert a PriceTick to its frame.

    Ladder order is preserved exactly; prices are passed through as text.

    Raises:
        FrameConversionError: If the tick's timestamp cannot be parsed
    """
    return PriceTickFrame(
        asks=_convert_levels(tick.asks),
        bids=_convert_levels(tick.bids),
        closeout_ask=tick.closeout_ask,
        closeout_bid=tick.closeout_bid,
        instrument=tick.instrument,
        status=tick.status,
        time=_convert_time(tick.time, f"PriceTick {tick.instrument}"),
    )


def heartbeat_to_frame(heartbeat: Heartbeat) -> HeartbeatFrame:
    """
    Convert a Heartbeat to its frame.

    Raises:
        FrameConversionError: If the heartbeat's timestamp cannot be parsed
    """
    return HeartbeatFrame(
        time=_convert_time(heartbeat.time, "Heartbeat"),
        message_type=heartbeat.message_type,
    )


def event_to_frame(event: StreamEvent) -> WireFrame:
    """
    Convert any publishable stream event to its frame.

    Raises:
        FrameConversionError: For unrecognized events or unparseable timestamps
    """
    if isinstance(event, PriceTick):
        return price_tick_to_frame(event)
    if isinstance(event, Heartbeat):
        return heartbeat_to_frame(event)
    raise FrameConversionError(f"Event is not publishable: {event!r}")


def _pack_levels(levels: Tuple[PriceLevelFrame, ...]) -> list:
    return [{"price": level.price, "liquidity": level.liquidity} for level in levels]


def _pack_time(ts: FrameTimestamp) -> msgpack.Timestamp:
    return msgpack.Timestamp(seconds=ts.seconds, nanoseconds=ts.nanos)


def encode_frame(frame: WireFrame) -> bytes:
    """Serialize a frame to its binary msgpack form."""
    if isinstance(frame, PriceTickFrame):
        body = {
            PRICE_TICK_KEY: {
                "asks": _pack_levels(frame.asks),
                "bids": _pack_levels(frame.bids),
                "closeout_ask": frame.closeout_ask,
                "closeout_bid": frame.closeout_bid,
                "instrument": frame.instrument,
                "status": frame.status,
                "time": _pack_time(frame.time),
            }
        }
    elif isinstance(frame, HeartbeatFrame):
        body = {
            HEARTBEAT_KEY: {
                "time": _pack_time(frame.time),
                "type": frame.message_type,
            }
        }
    else:
        raise TypeError(f"Unsupported frame type: {type(frame).__name__}")

    return msgpack.packb(body, use_bin_type=True)


def _unpack_time(value: Any) -> FrameTimestamp:
    if not isinstance(value, msgpack.Timestamp):
        raise FrameDecodeError(f"expected timestamp, got {type(value).__name__}")
    return FrameTimestamp(seconds=value.seconds, nanos=value.nanoseconds)


def _unpack_levels(values: Any) -> Tuple[PriceLevelFrame, ...]:
    return tuple(PriceLevelFrame(price=v["price"], liquidity=v["liquidity"]) for v in values)


def decode_frame(payload: bytes) -> WireFrame:
    """
    Deserialize a binary payload produced by encode_frame().

    Intended for downstream subscribers and diagnostics.

    Raises:
        FrameDecodeError: If the payload is not a valid frame
    """
    try:
        body = msgpack.unpackb(payload, raw=False)
    except (msgpack.UnpackException, ValueError) as e:
        raise FrameDecodeError(f"Invalid msgpack payload: {e}") from e

    if not isinstance(body, dict) or len(body) != 1:
        raise FrameDecodeError(f"Expected a single-variant map, got {body!r}")

    try:
        if PRICE_TICK_KEY in body:
            data = body[PRICE_TICK_KEY]
            return PriceTickFrame(
                asks=_unpack_levels(data["asks"]),
                bids=_unpack_levels(data["bids"]),
                closeout_ask=data["closeout_ask"],
                closeout_bid=data["closeout_bid"],
                instrument=data["instrument"],
                status=data["status"],
                time=_unpack_time(data["time"]),
            )
        if HEARTBEAT_KEY in body:
            data = body[HEARTBEAT_KEY]
            return HeartbeatFrame(
                time=_unpack_time(data["time"]),
                message_type=data["type"],
            )
    except (KeyError, TypeError) as e:
        raise FrameDecodeError(f"Malformed frame body: {e}") from e

    raise FrameDecodeError(f"Unknown frame variant: {list(body)}")
