"""
ZmqPublisher - publish/subscribe output for encoded wire frames.

The socket is bound at construction time; a bind failure is fatal for the
process. Publishing is fire-and-forget: PUB sockets give no acknowledgement
and no delivery guarantee to subscribers.
"""

import logging
from typing import Optional

import zmq

from ..models.wire_frames import WireFrame
from .wire_codec import encode_frame

logger = logging.getLogger(__name__)

DEFAULT_BIND_ADDRESS = "tcp://*:9500"


class PublisherBindError(RuntimeError):
    """Raised when the publish socket cannot be bound."""


class PublishError(RuntimeError):
    """Raised when a frame cannot be sent on the publish socket."""


class ZmqPublisher:
    """
    Binds a ZeroMQ PUB socket and sends one binary frame per message.

    All frames go out on a single channel with no topic prefix.

    Usage:
        with ZmqPublisher("tcp://*:9500") as publisher:
            publisher.publish(frame)
    """

    def __init__(self, address: str = DEFAULT_BIND_ADDRESS, context: Optional[zmq.Context] = None):
        """
        Create the PUB socket and bind it.

        Args:
            address: ZeroMQ endpoint to bind (e.g., "tcp://*:9500").
            context: Optional shared ZeroMQ context. When omitted the publisher
                     owns a private context and terminates it on close().

        Raises:
            PublisherBindError: If the socket cannot be bound
        """
        self.address = address
        self._owns_context = context is None
        self._context = context or zmq.Context()
        self._socket = self._context.socket(zmq.PUB)
        self._closed = False

        self._frames_published = 0
        self._bytes_published = 0

        try:
            self._socket.bind(address)
        except zmq.ZMQError as e:
            self.close()
            raise PublisherBindError(f"Failed to bind publisher to {address}: {e}") from e

        logger.info(f"ZMQ Publisher bound to {address}")

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, frame: WireFrame) -> None:
        """
        Serialize a frame and send it as one message.

        Raises:
            PublishError: If the publisher is closed or the frame cannot
                          be encoded and sent
        """
        if self._closed:
            raise PublishError("Publisher is closed")

        try:
            payload = encode_frame(frame)
        except (ValueError, OverflowError, TypeError) as e:
            # e.g. integers beyond 64 bits, or lone surrogates in text fields
            raise PublishError(f"Failed to encode frame: {e}") from e

        try:
            self._socket.send(payload)
        except zmq.ZMQError as e:
            raise PublishError(f"Failed to publish frame: {e}") from e

        self._frames_published += 1
        self._bytes_published += len(payload)

    def close(self) -> None:
        """Close the socket (and the owned context). Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._socket.close(linger=0)
        if self._owns_context:
            self._context.term()
        logger.info(f"ZMQ Publisher on {self.address} closed")

    def get_stats(self) -> dict:
        return {
            "address": self.address,
            "frames_published": self._frames_published,
            "bytes_published": self._bytes_published,
            "closed": self._closed,
        }

    def __enter__(self) -> "ZmqPublisher":
        return self

    def __exit__(self, *args) -> None:
        self.close()
