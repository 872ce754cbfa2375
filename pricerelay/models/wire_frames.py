"""
Wire frame models: the binary-encoded counterparts of stream events.

Frames carry the same fields as the stream models, except that textual
timestamps are replaced with an epoch seconds / nanoseconds pair.
"""

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class FrameTimestamp:
    """Seconds since the Unix epoch plus nanoseconds of the second."""
    seconds: int
    nanos: int


@dataclass(frozen=True)
class PriceLevelFrame:
    price: str
    liquidity: int


@dataclass(frozen=True)
class PriceTickFrame:
    asks: Tuple[PriceLevelFrame, ...]
    bids: Tuple[PriceLevelFrame, ...]
    closeout_ask: str
    closeout_bid: str
    instrument: str
    status: str
    time: FrameTimestamp


@dataclass(frozen=True)
class HeartbeatFrame:
    time: FrameTimestamp
    message_type: str


WireFrame = Union[PriceTickFrame, HeartbeatFrame]
