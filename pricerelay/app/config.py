"""
Environment-based configuration for the pricing relay.
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

DEFAULT_ENVIRONMENT = "fxpractice"
DEFAULT_INSTRUMENTS = "EUR_USD"
DEFAULT_PUBLISH_ADDRESS = "tcp://*:9500"

ENVIRONMENTS = ("fxtrade", "fxpractice")

USAGE_HINT = """\
Please ensure the following environment variables are set:
  OANDA_AUTH_TOKEN=<YOUR_TOKEN>
  OANDA_ACCOUNT_ID=<YOUR_ACCOUNT_ID>
  OANDA_ENVIRONMENT=fxtrade | fxpractice (default: fxpractice)
  OANDA_INSTRUMENTS=EUR_USD,USD_CAD (comma-separated list of instruments)

Optional:
  ZMQ_PUBLISHER_ADDRESS=tcp://*:9500 (default bind address for ZMQ)"""


class ConfigurationError(ValueError):
    """Raised when required settings are missing."""


@dataclass(frozen=True)
class RelayConfig:
    """
    Validated settings consumed by the stream client and publisher.

    Attributes:
        auth_token: Bearer token for the pricing API
        account_id: Account identifier
        environment: "fxtrade" (live) or "fxpractice" (demo)
        instruments: Comma-separated instrument codes
        publish_address: ZeroMQ bind address for the PUB socket
        queue_size: Capacity of the relay between stream and publisher
        stream_host: Optional override of the stream host URL
    """
    auth_token: str
    account_id: str
    environment: str = DEFAULT_ENVIRONMENT
    instruments: str = DEFAULT_INSTRUMENTS
    publish_address: str = DEFAULT_PUBLISH_ADDRESS
    queue_size: int = 100
    stream_host: Optional[str] = None

    @property
    def base_url(self) -> str:
        if self.stream_host:
            return self.stream_host.rstrip("/")
        return f"https://stream-{self.environment}.oanda.com"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """
        Load settings from environment variables.

        Raises:
            ConfigurationError: If OANDA_AUTH_TOKEN or OANDA_ACCOUNT_ID is unset
        """
        env = os.environ if environ is None else environ

        missing = [
            name for name in ("OANDA_AUTH_TOKEN", "OANDA_ACCOUNT_ID")
            if not env.get(name)
        ]
        if missing:
            raise ConfigurationError(
                f"{', '.join(missing)} environment variable(s) not set"
            )

        return cls(
            auth_token=env["OANDA_AUTH_TOKEN"],
            account_id=env["OANDA_ACCOUNT_ID"],
            environment=env.get("OANDA_ENVIRONMENT") or DEFAULT_ENVIRONMENT,
            instruments=env.get("OANDA_INSTRUMENTS") or DEFAULT_INSTRUMENTS,
            publish_address=env.get("ZMQ_PUBLISHER_ADDRESS") or DEFAULT_PUBLISH_ADDRESS,
            stream_host=env.get("OANDA_STREAM_HOST") or None,
        )

    def with_overrides(self, **overrides) -> "RelayConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
