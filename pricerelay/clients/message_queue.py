"""
AsyncMessageQueue - Bounded asynchronous relay for the producer-consumer pattern.

This module implements a fixed-capacity queue that decouples pricing stream
ingestion (producer) from frame publication (consumer). A full queue
suspends the producer, which in turn stops reading from the network; events
are never dropped because the queue is full.
"""

import asyncio
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


class AsyncMessageQueue:
    """
    Asynchronous bounded queue implementing the producer-consumer pattern.

    The queue acts as the only synchronization point between the stream
    client (producer) and the publishing loop (consumer). Closing the queue
    signals end-of-input to the consumer once buffered events are drained.

    Attributes:
        max_size: Maximum number of events the queue can hold.
    """

    def __init__(self, max_size: int = 100):
        """
        Initialize the message queue.

        Args:
            max_size: Maximum queue size. When full, put() will block.
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")

        self.max_size = max_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self._closed = False
        self._total_messages = 0
        self._discarded_messages = 0

        logger.debug(f"AsyncMessageQueue initialized with max_size={max_size}")

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    async def put(self, message: Any) -> bool:
        """
        Add a message to the queue (producer operation).

        If the queue is full, this waits until the consumer frees a slot.

        Args:
            message: The event to enqueue.

        Returns:
            True if the message was enqueued, False if the queue is closed.
        """
        if self._closed:
            return False

        await self._queue.put(message)

        # Closed by the consumer while we were waiting for a slot
        if self._closed:
            self._discard_pending()
            return False

        self._total_messages += 1

        current_size = self._queue.qsize()
        if current_size > self.max_size * 0.8:
            logger.warning(
                f"Queue is {current_size / self.max_size * 100:.1f}% full "
                f"({current_size}/{self.max_size}). Consumer may be slow."
            )

        return True

    async def get(self) -> Optional[Any]:
        """
        Retrieve a message from the queue (consumer operation).

        If the queue is empty, this waits until a message arrives or the
        queue is closed.

        Returns:
            The next message, or None once the queue is closed and drained.
        """
        if self._closed and self._queue.empty():
            return None

        message = await self._queue.get()
        if message is _CLOSED:
            return None
        return message

    def close(self, discard_pending: bool = False) -> None:
        """
        Close the queue.

        The producer closes without discarding so the consumer can drain
        what was already buffered. A departing consumer closes with
        discard_pending=True, which also wakes a producer blocked on a full
        queue.

        Args:
            discard_pending: Drop buffered messages instead of keeping them.
        """
        if self._closed:
            return

        self._closed = True

        if discard_pending:
            # Frees every slot so a blocked producer can finish its put()
            self._discard_pending()
        else:
            # Wakes a consumer blocked on an empty queue. If the queue is full
            # nobody is waiting in get() and the closed flag is seen on drain.
            try:
                self._queue.put_nowait(_CLOSED)
            except asyncio.QueueFull:
                pass

        logger.debug(f"AsyncMessageQueue closed (discard_pending={discard_pending})")

    def _discard_pending(self) -> None:
        while True:
            try:
                message = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if message is not _CLOSED:
                self._discarded_messages += 1

    def qsize(self) -> int:
        """
        Return the current number of messages in the queue.

        Note: This is an approximate size due to concurrent operations.
        """
        return self._queue.qsize()

    def empty(self) -> bool:
        """Return True if the queue is empty."""
        return self._queue.empty()

    def full(self) -> bool:
        """Return True if the queue is full."""
        return self._queue.full()

    def get_stats(self) -> dict:
        """
        Get queue statistics for monitoring and debugging.

        Returns:
            Dict containing:
                - current_size: Number of messages currently in queue
                - max_size: Maximum queue capacity
                - utilization: Current fill percentage
                - total_messages: Total messages ever enqueued
                - discarded_messages: Messages discarded by a consumer-side close
                - closed: Whether the queue has been closed
        """
        current_size = self._queue.qsize()
        return {
            "current_size": current_size,
            "max_size": self.max_size,
            "utilization": current_size / self.max_size,
            "total_messages": self._total_messages,
            "discarded_messages": self._discarded_messages,
            "closed": self._closed,
        }

    def __aiter__(self) -> "AsyncMessageQueue":
        return self

    async def __anext__(self) -> Any:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def __repr__(self) -> str:
        """String representation showing queue state."""
        stats = self.get_stats()
        return (
            f"AsyncMessageQueue(size={stats['current_size']}/{stats['max_size']}, "
            f"utilization={stats['utilization']:.1%}, "
            f"total={stats['total_messages']}, "
            f"closed={stats['closed']})"
        )
