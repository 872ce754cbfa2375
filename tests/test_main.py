"""
Tests for the process entry point: argument parsing, exit codes and wiring.
"""

import pytest
from unittest.mock import MagicMock, patch

from pricerelay.app import main as app_main
from pricerelay.app.config import RelayConfig
from pricerelay.clients.pricing_stream_client import ConnectionState
from pricerelay.models.market_data import Heartbeat
from pricerelay.services.publisher import PublisherBindError


class EndingClient:
    """Client whose stream ends after one heartbeat, optionally with an error."""

    def __init__(self, error=None):
        self.error = error
        self.state = ConnectionState.IDLE

    async def run(self, message_queue):
        try:
            self.state = ConnectionState.STREAMING
            await message_queue.put(Heartbeat(time="2024-01-01T00:00:00Z", message_type="HEARTBEAT"))
            if self.error is not None:
                raise self.error
        finally:
            message_queue.close()


CONFIG = RelayConfig(auth_token="tok", account_id="acc", publish_address="inproc://test")


class TestParseArgs:

    def test_defaults(self):
        args = app_main.parse_args([])
        assert args.instruments is None
        assert args.bind is None
        assert args.queue_size is None
        assert args.log_level == "INFO"

    def test_overrides(self):
        args = app_main.parse_args([
            "--instruments", "EUR_USD,USD_JPY",
            "--environment", "fxtrade",
            "--bind", "tcp://*:9700",
            "--queue-size", "50",
        ])
        assert args.instruments == "EUR_USD,USD_JPY"
        assert args.environment == "fxtrade"
        assert args.bind == "tcp://*:9700"
        assert args.queue_size == 50

    def test_rejects_unknown_environment(self):
        with pytest.raises(SystemExit):
            app_main.parse_args(["--environment", "staging"])

    def test_rejects_non_positive_queue_size(self):
        with pytest.raises(SystemExit):
            app_main.parse_args(["--queue-size", "0"])


class TestMain:

    def test_missing_configuration_exits_1(self, capsys):
        with patch.dict("os.environ", {}, clear=True):
            assert app_main.main([]) == 1

        err = capsys.readouterr().err
        assert "Configuration Error" in err
        assert "OANDA_AUTH_TOKEN" in err

    def test_main_runs_with_overrides(self):
        env = {"OANDA_AUTH_TOKEN": "tok", "OANDA_ACCOUNT_ID": "acc"}

        async def fake_run(config):
            assert config.instruments == "GBP_USD"
            assert config.queue_size == 7
            return 0

        with patch.dict("os.environ", env, clear=True), \
             patch.object(app_main, "run", side_effect=fake_run):
            assert app_main.main(["--instruments", "GBP_USD", "--queue-size", "7"]) == 0


class TestRun:

    @pytest.mark.asyncio
    async def test_bind_failure_exits_1(self):
        with patch.object(app_main, "ZmqPublisher", side_effect=PublisherBindError("address in use")):
            assert await app_main.run(CONFIG) == 1

    @pytest.mark.asyncio
    async def test_clean_stream_end_exits_0(self):
        publisher = MagicMock()
        with patch.object(app_main, "ZmqPublisher", return_value=publisher), \
             patch.object(app_main, "install_signal_handlers"), \
             patch.object(app_main.PricingStreamClient, "from_config", return_value=EndingClient()):
            assert await app_main.run(CONFIG) == 0

        publisher.publish.assert_called_once()
        publisher.__exit__.assert_called_once()

    @pytest.mark.asyncio
    async def test_stream_error_exits_1(self):
        with patch.object(app_main, "ZmqPublisher", return_value=MagicMock()), \
             patch.object(app_main, "install_signal_handlers"), \
             patch.object(
                 app_main.PricingStreamClient,
                 "from_config",
                 return_value=EndingClient(error=RuntimeError("reset")),
             ):
            assert await app_main.run(CONFIG) == 1
