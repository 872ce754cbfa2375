"""
PricingStreamClient - HTTP streaming client for the vendor pricing endpoint.

This module opens a long-lived chunked HTTP response, splits it into
newline-delimited JSON records, classifies each record and feeds the
resulting events into an AsyncMessageQueue. It is the producer side of the
producer-consumer pattern.

There is no reconnection: when the stream ends or fails, the session is over
and the queue is closed so the consumer sees end-of-input.
"""

import logging
import time
from enum import Enum
from typing import Optional
from urllib.parse import quote

import aiohttp

from ..models.market_data import Heartbeat, PriceTick, Unrecognized, parse_stream_line
from .message_queue import AsyncMessageQueue

logger = logging.getLogger(__name__)

STREAM_PATH = "/v3/accounts/{account_id}/pricing/stream"

# Error bodies are logged for diagnosis; keep them short
_MAX_ERROR_BODY = 512


class ConnectionState(Enum):
    """Pricing stream connection states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERROR = "error"


class StreamConnectionError(RuntimeError):
    """Raised when the pricing endpoint answers with a non-success status."""

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Pricing stream request failed with HTTP {status}: {body}")


class PricingStreamClient:
    """
    Asynchronous client for the vendor's pricing stream.

    Key Features:
    - Bearer-authenticated long-lived GET request with no read timeout
    - Incremental newline-delimited record extraction
    - Best-effort classification into PriceTick / Heartbeat / Unrecognized
    - Backpressure: a full queue suspends reading from the network

    Attributes:
        base_url: Stream host URL (e.g., "https://stream-fxpractice.oanda.com")
        account_id: Account identifier
        instruments: Comma-separated instrument list
        state: Current connection state
    """

    def __init__(
        self,
        base_url: str,
        account_id: str,
        auth_token: str,
        instruments: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the pricing stream client.

        Args:
            base_url: Stream host URL, without trailing path.
            account_id: Account whose pricing stream to open.
            auth_token: Bearer token for the Authorization header.
            instruments: Comma-separated instrument codes (e.g., "EUR_USD,USD_CAD").
            session: Optional externally managed aiohttp session. When omitted
                     the client creates one per run() and closes it afterwards.
        """
        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.instruments = instruments
        self._auth_token = auth_token
        self._session = session

        self._state = ConnectionState.IDLE

        # Message statistics
        self._lines_received = 0
        self._parse_errors = 0
        self._heartbeats = 0
        self._price_ticks = 0
        self._unrecognized = 0
        self._last_heartbeat_time: Optional[float] = None

        logger.debug(
            f"PricingStreamClient initialized: "
            f"url={self.base_url}, account={account_id}, instruments={instruments}"
        )

    @classmethod
    def from_config(cls, config, session: Optional[aiohttp.ClientSession] = None) -> "PricingStreamClient":
        """Build a client from a RelayConfig."""
        return cls(
            base_url=config.base_url,
            account_id=config.account_id,
            auth_token=config.auth_token,
            instruments=config.instruments,
            session=session,
        )

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def stream_url(self) -> str:
        """Fully qualified pricing stream URL."""
        path = STREAM_PATH.format(account_id=quote(self.account_id, safe=""))
        return f"{self.base_url}{path}?instruments={quote(self.instruments, safe='')}"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._auth_token}",
            "Accept-Datetime-Format": "RFC3339",
        }

    async def run(self, message_queue: AsyncMessageQueue) -> None:
        """
        Open the stream and enqueue classified events until it ends.

        The queue is always closed on exit so the consumer observes
        end-of-input, whether the stream ended cleanly or failed.

        Args:
            message_queue: Queue to send classified events to.

        Raises:
            StreamConnectionError: On a non-success HTTP status
            aiohttp.ClientError: On connection or read failure
        """
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_read=None)
        )

        self._state = ConnectionState.CONNECTING
        logger.info(f"Connecting to pricing stream at: {self.stream_url}")

        try:
            async with session.get(self.stream_url, headers=self._headers()) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise StreamConnectionError(response.status, body[:_MAX_ERROR_BODY])

                self._state = ConnectionState.STREAMING
                logger.info("Connected to pricing stream. Reading data...")

                await self._read_lines(response.content, message_queue)

            self._state = ConnectionState.CLOSED

        except Exception as e:
            self._state = ConnectionState.ERROR
            logger.error(f"Pricing stream error: {e}")
            raise

        finally:
            message_queue.close()
            if owns_session:
                await session.close()

    async def _read_lines(self, content: aiohttp.StreamReader, message_queue: AsyncMessageQueue) -> None:
        """
        Split the response body into lines and enqueue one event per line.

        StreamReader.readline() fails on lines longer than the reader's buffer
        limit, so lines are assembled from raw chunks with no length cap.
        """
        buffer = bytearray()
        while True:
            chunk = await content.readany()
            if not chunk:
                break

            scan_from = len(buffer)
            buffer.extend(chunk)
            start = 0
            while True:
                end = buffer.find(b"\n", max(start, scan_from))
                if end < 0:
                    break
                if not await self._enqueue_line(bytes(buffer[start:end + 1]), message_queue):
                    return
                start = end + 1
            del buffer[:start]

        logger.info("Stream closed by server.")
        if buffer:
            await self._enqueue_line(bytes(buffer), message_queue)

    async def _enqueue_line(self, raw_line: bytes, message_queue: AsyncMessageQueue) -> bool:
        """Returns False once the consumer has closed the queue."""
        event = self._handle_line(raw_line)
        if event is None:
            return True

        if not await message_queue.put(event):
            logger.info("Message queue closed by consumer, stopping stream reader")
            return False
        return True

    def _handle_line(self, raw_line: bytes):
        """Decode, parse and classify one raw line; track statistics."""
        try:
            line = raw_line.decode("utf-8")
        except UnicodeDecodeError as e:
            self._parse_errors += 1
            logger.error(f"Error decoding line: {raw_line!r} -> {e}")
            return None

        if not line.strip():
            return None

        self._lines_received += 1
        event = parse_stream_line(line)

        if event is None:
            self._parse_errors += 1
        elif isinstance(event, Heartbeat):
            self._heartbeats += 1
            self._last_heartbeat_time = time.time()
        elif isinstance(event, PriceTick):
            self._price_ticks += 1
        elif isinstance(event, Unrecognized):
            self._unrecognized += 1

        return event

    def get_stats(self) -> dict:
        """
        Get connection and message statistics.

        Returns:
            Dict containing:
                - state: Current connection state
                - lines_received: Non-blank lines read
                - parse_errors: Lines skipped as malformed
                - heartbeats / price_ticks / unrecognized: Classification counts
                - last_heartbeat: Seconds since last heartbeat (if any)
        """
        stats = {
            "state": self._state.value,
            "lines_received": self._lines_received,
            "parse_errors": self._parse_errors,
            "heartbeats": self._heartbeats,
            "price_ticks": self._price_ticks,
            "unrecognized": self._unrecognized,
        }

        if self._last_heartbeat_time:
            stats["last_heartbeat"] = time.time() - self._last_heartbeat_time

        return stats

    def __repr__(self) -> str:
        """String representation showing connection state."""
        stats = self.get_stats()
        return (
            f"PricingStreamClient(state={stats['state']}, "
            f"lines={stats['lines_received']}, "
            f"errors={stats['parse_errors']})"
        )
