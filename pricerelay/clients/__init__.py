"""
Infrastructure Layer - Pricing stream client and message queue
"""

from .pricing_stream_client import PricingStreamClient, ConnectionState, StreamConnectionError
from .message_queue import AsyncMessageQueue

__all__ = ["PricingStreamClient", "ConnectionState", "StreamConnectionError", "AsyncMessageQueue"]
