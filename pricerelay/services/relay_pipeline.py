"""
RelayPipeline Service - Application Layer

This service drives the ingestion-to-publish pipeline. The stream client
runs as an independent task feeding the AsyncMessageQueue; the pipeline
drains the queue, converts each event to a wire frame and publishes it.

Key Responsibilities:
1. Start the stream client task (producer)
2. Drain the queue until it closes or a shutdown is requested
3. Convert PriceTick / Heartbeat events and publish them
4. Log and skip unrecognized events, conversion errors and publish errors

State machine:
    IDLE -> CONNECTING -> STREAMING -> DRAINING -> CLOSED   (shutdown requested)
                          STREAMING -> CLOSED               (stream ended)
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from ..clients.message_queue import AsyncMessageQueue
from ..clients.pricing_stream_client import ConnectionState
from ..models.market_data import Heartbeat, PriceTick, StreamEvent, Unrecognized
from .publisher import PublishError
from .wire_codec import FrameConversionError, event_to_frame

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class PipelineState(Enum):
    """Overall pipeline states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DRAINING = "draining"
    CLOSED = "closed"


class RelayPipeline:
    """
    Consumer loop connecting the stream client to the publisher.

    The stream client task is never cancelled on shutdown; it is left to
    end with the stream or with the process.

    Usage:
        pipeline = RelayPipeline(client, publisher)
        stream_failed = await pipeline.run(stop_event)
    """

    def __init__(self, client, publisher, message_queue: Optional[AsyncMessageQueue] = None):
        """
        Args:
            client: Producer exposing ``async run(message_queue)`` and ``state``
            publisher: Sink exposing ``publish(frame)``
            message_queue: Relay between the two; defaults to 100 slots
        """
        self.client = client
        self.publisher = publisher
        self.message_queue = message_queue or AsyncMessageQueue(max_size=DEFAULT_QUEUE_SIZE)

        self._state = PipelineState.IDLE
        self._ingest_task: Optional[asyncio.Task] = None

        self._events_received = 0
        self._frames_published = 0
        self._unrecognized = 0
        self._conversion_errors = 0
        self._publish_errors = 0

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def ingest_task(self) -> Optional[asyncio.Task]:
        """The stream client task, once started."""
        return self._ingest_task

    def _on_ingest_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.info("[INGEST] Stream task cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[INGEST] Stream ended with error: {error}")
        else:
            logger.info("[INGEST] Stream ended")

    def _ingest_failed(self) -> bool:
        task = self._ingest_task
        if task is None or not task.done() or task.cancelled():
            return False
        return task.exception() is not None

    def _refresh_state(self) -> None:
        if (
            self._state == PipelineState.CONNECTING
            and getattr(self.client, "state", None) == ConnectionState.STREAMING
        ):
            self._state = PipelineState.STREAMING
            logger.info("[PIPELINE] Streaming")

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> bool:
        """
        Run the pipeline until the queue closes or stop_event is set.

        Args:
            stop_event: Shutdown token; setting it stops draining the queue.

        Returns:
            True if the stream task ended with an error, False otherwise.
        """
        stop_event = stop_event or asyncio.Event()

        self._state = PipelineState.CONNECTING
        self._ingest_task = asyncio.create_task(self.client.run(self.message_queue))
        self._ingest_task.add_done_callback(self._on_ingest_done)

        stop_task = asyncio.create_task(stop_event.wait())
        try:
            while True:
                get_task = asyncio.create_task(self.message_queue.get())
                done, _ = await asyncio.wait(
                    {get_task, stop_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if get_task not in done:
                    get_task.cancel()
                    self._state = PipelineState.DRAINING
                    logger.info("[PIPELINE] Shutdown requested, stopping")
                    break

                event = get_task.result()
                if event is None:
                    logger.info("[PIPELINE] Message queue closed, stopping")
                    break

                self._refresh_state()
                self.handle_event(event)

                if stop_task.done():
                    self._state = PipelineState.DRAINING
                    logger.info("[PIPELINE] Shutdown requested, stopping")
                    break
        finally:
            if not stop_task.done():
                stop_task.cancel()
            self._state = PipelineState.CLOSED

        # Let a just-finished stream task report its outcome
        await asyncio.sleep(0)
        return self._ingest_failed()

    def handle_event(self, event: StreamEvent) -> bool:
        """
        Convert and publish one event.

        Returns:
            True if a frame was published.
        """
        self._events_received += 1

        if isinstance(event, PriceTick):
            logger.info(
                f"[PRICE_TICK] {event.instrument}: "
                f"Ask {event.closeout_ask} / Bid {event.closeout_bid}"
            )
            context = event.instrument
        elif isinstance(event, Heartbeat):
            logger.debug(f"[HEARTBEAT] Time: {event.time}")
            context = "heartbeat"
        elif isinstance(event, Unrecognized):
            self._unrecognized += 1
            logger.warning(f"[UNKNOWN_MESSAGE] Received unexpected message: {event.payload!r}")
            return False
        else:
            self._unrecognized += 1
            logger.warning(f"[UNKNOWN_MESSAGE] Unsupported event type: {type(event).__name__}")
            return False

        try:
            frame = event_to_frame(event)
        except FrameConversionError as e:
            self._conversion_errors += 1
            logger.error(f"[CONVERT] Error converting {context}: {e}")
            return False

        try:
            self.publisher.publish(frame)
        except PublishError as e:
            self._publish_errors += 1
            logger.error(f"[PUBLISH] Error publishing {context}: {e}")
            return False

        self._frames_published += 1
        return True

    def get_stats(self) -> dict:
        return {
            "state": self._state.value,
            "events_received": self._events_received,
            "frames_published": self._frames_published,
            "unrecognized": self._unrecognized,
            "conversion_errors": self._conversion_errors,
            "publish_errors": self._publish_errors,
            "queue": self.message_queue.get_stats(),
        }

    def __repr__(self) -> str:
        return (
            f"RelayPipeline(state={self._state.value}, "
            f"published={self._frames_published}, "
            f"errors={self._conversion_errors + self._publish_errors})"
        )
