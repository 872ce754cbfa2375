"""
pricerelay Domain Layer

This module contains the stream record models and their wire frame counterparts.
"""

from .market_data import (
    PriceLevel,
    PriceTick,
    Heartbeat,
    Unrecognized,
    StreamEvent,
    MessageDecodeError,
    classify_message,
    parse_stream_line,
)
from .wire_frames import (
    FrameTimestamp,
    PriceLevelFrame,
    PriceTickFrame,
    HeartbeatFrame,
    WireFrame,
)

__all__ = [
    "PriceLevel",
    "PriceTick",
    "Heartbeat",
    "Unrecognized",
    "StreamEvent",
    "MessageDecodeError",
    "classify_message",
    "parse_stream_line",
    "FrameTimestamp",
    "PriceLevelFrame",
    "PriceTickFrame",
    "HeartbeatFrame",
    "WireFrame",
]
