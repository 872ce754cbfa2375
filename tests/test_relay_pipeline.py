"""
Test suite for RelayPipeline.

Tests event dispatch, per-event error isolation, shutdown via the stop
event, end-of-stream handling and an end-to-end run with the real stream
client against a mocked HTTP session.
"""

import asyncio
import pytest
import zmq
from unittest.mock import MagicMock

from pricerelay.clients.message_queue import AsyncMessageQueue
from pricerelay.clients.pricing_stream_client import ConnectionState, PricingStreamClient
from pricerelay.models.market_data import Heartbeat, PriceLevel, PriceTick, Unrecognized
from pricerelay.models.wire_frames import FrameTimestamp, HeartbeatFrame, PriceTickFrame
from pricerelay.services.publisher import PublishError, ZmqPublisher
from pricerelay.services.relay_pipeline import PipelineState, RelayPipeline

from helpers import HEARTBEAT_LINE, PRICE_LINE

HEARTBEAT = Heartbeat(time="2024-01-01T00:00:00.123456789Z", message_type="HEARTBEAT")


def make_tick(instrument="EUR_USD", time="2024-01-01T00:00:00Z", liquidity=1000000):
    return PriceTick(
        asks=(PriceLevel("1.10050", liquidity),),
        bids=(PriceLevel("1.10030", 1000000),),
        closeout_ask="1.10050",
        closeout_bid="1.10030",
        instrument=instrument,
        status="tradeable",
        time=time,
    )


class FakeClient:
    """Producer that enqueues fixed events, then optionally hangs or fails."""

    def __init__(self, events=(), hang=False, error=None):
        self.events = list(events)
        self.hang = hang
        self.error = error
        self.state = ConnectionState.IDLE

    async def run(self, message_queue):
        try:
            self.state = ConnectionState.STREAMING
            for event in self.events:
                if not await message_queue.put(event):
                    return
            if self.hang:
                await asyncio.Event().wait()
            if self.error is not None:
                raise self.error
        finally:
            message_queue.close()


async def cleanup(pipeline):
    task = pipeline.ingest_task
    if task is not None and not task.done():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


class TestRelayPipeline:

    def test_initial_state(self):
        pipeline = RelayPipeline(FakeClient(), MagicMock())
        assert pipeline.state == PipelineState.IDLE
        assert pipeline.message_queue.max_size == 100

    @pytest.mark.asyncio
    async def test_publishes_heartbeat_frame(self):
        publisher = MagicMock()
        pipeline = RelayPipeline(FakeClient([HEARTBEAT]), publisher)

        failed = await pipeline.run()

        assert failed is False
        publisher.publish.assert_called_once_with(HeartbeatFrame(
            time=FrameTimestamp(seconds=1704067200, nanos=123456789),
            message_type="HEARTBEAT",
        ))
        assert pipeline.state == PipelineState.CLOSED

    @pytest.mark.asyncio
    async def test_events_published_in_order(self):
        publisher = MagicMock()
        events = [make_tick("EUR_USD"), HEARTBEAT, make_tick("USD_CAD")]
        pipeline = RelayPipeline(FakeClient(events), publisher)

        await pipeline.run()

        frames = [c.args[0] for c in publisher.publish.call_args_list]
        assert [type(f) for f in frames] == [PriceTickFrame, HeartbeatFrame, PriceTickFrame]
        assert [frames[0].instrument, frames[2].instrument] == ["EUR_USD", "USD_CAD"]

    @pytest.mark.asyncio
    async def test_unrecognized_not_published(self, caplog):
        publisher = MagicMock()
        pipeline = RelayPipeline(FakeClient([Unrecognized({"foo": "bar"})]), publisher)

        await pipeline.run()

        publisher.publish.assert_not_called()
        assert pipeline.get_stats()["unrecognized"] == 1
        assert "[UNKNOWN_MESSAGE]" in caplog.text
        assert "'foo': 'bar'" in caplog.text

    @pytest.mark.asyncio
    async def test_conversion_error_skips_one_event(self, caplog):
        """A bad timestamp drops that event only; the next one is published."""
        publisher = MagicMock()
        events = [make_tick("GBP_USD", time="garbage"), make_tick("EUR_USD")]
        pipeline = RelayPipeline(FakeClient(events), publisher)

        await pipeline.run()

        publisher.publish.assert_called_once()
        assert publisher.publish.call_args.args[0].instrument == "EUR_USD"
        assert pipeline.get_stats()["conversion_errors"] == 1
        assert "GBP_USD" in caplog.text

    @pytest.mark.asyncio
    async def test_publish_error_does_not_stop_pipeline(self):
        publisher = MagicMock()
        publisher.publish.side_effect = [PublishError("socket gone"), None]
        pipeline = RelayPipeline(FakeClient([HEARTBEAT, make_tick()]), publisher)

        await pipeline.run()

        assert publisher.publish.call_count == 2
        stats = pipeline.get_stats()
        assert stats["publish_errors"] == 1
        assert stats["frames_published"] == 1

    @pytest.mark.asyncio
    async def test_stream_error_reported(self):
        pipeline = RelayPipeline(
            FakeClient([HEARTBEAT], error=RuntimeError("connection reset")),
            MagicMock(),
        )

        failed = await pipeline.run()

        assert failed is True
        assert pipeline.get_stats()["frames_published"] == 1

    @pytest.mark.asyncio
    async def test_stop_event_ends_run(self):
        """Shutdown stops draining without cancelling the stream task."""
        publisher = MagicMock()
        client = FakeClient([HEARTBEAT], hang=True)
        pipeline = RelayPipeline(client, publisher)
        stop_event = asyncio.Event()

        run_task = asyncio.create_task(pipeline.run(stop_event))
        await asyncio.sleep(0.05)
        assert pipeline.state == PipelineState.STREAMING

        stop_event.set()
        failed = await asyncio.wait_for(run_task, timeout=1.0)

        assert failed is False
        assert pipeline.state == PipelineState.CLOSED
        assert publisher.publish.call_count == 1
        assert not pipeline.ingest_task.done()

        await cleanup(pipeline)

    @pytest.mark.asyncio
    async def test_stop_before_events(self):
        stop_event = asyncio.Event()
        stop_event.set()
        publisher = MagicMock()
        pipeline = RelayPipeline(FakeClient(hang=True), publisher)

        await asyncio.wait_for(pipeline.run(stop_event), timeout=1.0)

        publisher.publish.assert_not_called()
        await cleanup(pipeline)

    @pytest.mark.asyncio
    async def test_end_to_end_with_stream_client(self, stream_session):
        """Raw stream lines become published frames; junk lines are skipped."""
        session = stream_session([
            HEARTBEAT_LINE,
            b"{broken\n",
            PRICE_LINE,
            b'{"foo":"bar"}\n',
        ])
        client = PricingStreamClient(
            base_url="https://stream-fxpractice.oanda.com",
            account_id="acc",
            auth_token="tok",
            instruments="EUR_USD",
            session=session,
        )
        publisher = MagicMock()
        pipeline = RelayPipeline(client, publisher, AsyncMessageQueue(max_size=2))

        failed = await pipeline.run()

        assert failed is False
        frames = [c.args[0] for c in publisher.publish.call_args_list]
        assert frames[0].time == FrameTimestamp(1704067200, 123456789)
        tick = frames[1]
        assert tick.closeout_ask == "1.10050"
        assert tick.closeout_bid == "1.10030"
        assert [level.price for level in tick.asks] == ["1.10050"]
        assert [level.liquidity for level in tick.bids] == [1000000]
        assert len(frames) == 2
        assert pipeline.get_stats()["unrecognized"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_tick", [
        make_tick(liquidity=2**64),
        make_tick(instrument="EUR_\ud800"),
    ])
    async def test_unencodable_tick_skips_one_event(self, bad_tick):
        """A tick msgpack cannot encode is dropped; the heartbeat after it goes out."""
        context = zmq.Context()
        try:
            with ZmqPublisher("inproc://pipeline-unencodable", context=context) as publisher:
                pipeline = RelayPipeline(FakeClient([bad_tick, HEARTBEAT]), publisher)

                failed = await pipeline.run()

                assert failed is False
                assert publisher.get_stats()["frames_published"] == 1
                stats = pipeline.get_stats()
                assert stats["publish_errors"] == 1
                assert stats["frames_published"] == 1
        finally:
            context.term()

    @pytest.mark.asyncio
    async def test_oversized_liquidity_line_is_unrecognized(self, stream_session):
        session = stream_session([
            PRICE_LINE.replace(b'"liquidity":"1000000"', b'"liquidity":"99999999999999999999999"', 1),
            HEARTBEAT_LINE,
        ])
        client = PricingStreamClient(
            base_url="https://stream-fxpractice.oanda.com",
            account_id="acc",
            auth_token="tok",
            instruments="EUR_USD",
            session=session,
        )
        publisher = MagicMock()
        pipeline = RelayPipeline(client, publisher)

        await pipeline.run()

        frames = [c.args[0] for c in publisher.publish.call_args_list]
        assert [type(f) for f in frames] == [HeartbeatFrame]
        assert pipeline.get_stats()["unrecognized"] == 1
