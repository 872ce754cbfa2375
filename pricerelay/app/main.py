"""
Pricing relay entry point.

Streams prices from the vendor API and republishes them as binary frames
on a ZeroMQ PUB socket.

Usage:
    python -m pricerelay.app.main --instruments EUR_USD,USD_CAD --bind tcp://*:9500

Exit codes:
    0  graceful shutdown, or the stream ended cleanly
    1  configuration error, bind error, or the stream ended with an error
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from ..clients.message_queue import AsyncMessageQueue
from ..clients.pricing_stream_client import PricingStreamClient
from ..services.publisher import PublisherBindError, ZmqPublisher
from ..services.relay_pipeline import RelayPipeline
from .config import ENVIRONMENTS, USAGE_HINT, ConfigurationError, RelayConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging and per-module levels."""
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logging.getLogger('pricerelay').setLevel(level)

    # Keep message queue quiet
    logging.getLogger('pricerelay.clients.message_queue').setLevel(logging.WARNING)

    # aiohttp logs every access/internal event at DEBUG
    logging.getLogger('aiohttp').setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="pricerelay - Stream vendor prices to a ZeroMQ PUB socket"
    )

    parser.add_argument(
        '--instruments',
        type=str,
        default=None,
        help='Comma-separated instruments (default: $OANDA_INSTRUMENTS or EUR_USD)'
    )

    parser.add_argument(
        '--environment',
        type=str,
        choices=ENVIRONMENTS,
        default=None,
        help='Vendor environment (default: $OANDA_ENVIRONMENT or fxpractice)'
    )

    parser.add_argument(
        '--bind',
        type=str,
        default=None,
        help='PUB socket bind address (default: $ZMQ_PUBLISHER_ADDRESS or tcp://*:9500)'
    )

    parser.add_argument(
        '--queue-size',
        type=int,
        default=None,
        help='Relay capacity between stream and publisher (default: 100)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Log level for pricerelay loggers (default: INFO)'
    )

    args = parser.parse_args(argv)
    if args.queue_size is not None and args.queue_size <= 0:
        parser.error('--queue-size must be positive')
    return args


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT / SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows: SIGINT still arrives as KeyboardInterrupt
            logger.debug(f"Signal handler for {sig.name} not supported")


async def run(config: RelayConfig) -> int:
    """
    Bind the publisher, start the stream and relay until shutdown.

    Returns:
        Process exit code
    """
    try:
        publisher = ZmqPublisher(config.publish_address)
    except PublisherBindError as e:
        logger.error(f"[MAIN] {e}")
        return EXIT_FAILURE

    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    with publisher:
        pipeline = RelayPipeline(
            client=PricingStreamClient.from_config(config),
            publisher=publisher,
            message_queue=AsyncMessageQueue(max_size=config.queue_size),
        )
        stream_failed = await pipeline.run(stop_event)
        logger.info(f"[MAIN] Pipeline stopped: {pipeline.get_stats()}")

    return EXIT_FAILURE if stream_failed else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = RelayConfig.from_env().with_overrides(
            instruments=args.instruments,
            environment=args.environment,
            publish_address=args.bind,
            queue_size=args.queue_size,
        )
    except ConfigurationError as e:
        print(f"Configuration Error: {e}\n", file=sys.stderr)
        print(USAGE_HINT, file=sys.stderr)
        return EXIT_FAILURE

    logger.info(
        f"[MAIN] Relaying {config.instruments} ({config.environment}) "
        f"to {config.publish_address}"
    )

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("[MAIN] Interrupted")
        return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
