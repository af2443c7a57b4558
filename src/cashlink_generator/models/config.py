"""Configuration models for the cashlink generator."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum

from cashlink_generator.errors import ValidationError


class Network(str, Enum):
    """Nimiq network the cashlinks live on."""

    MAIN = "main"
    TEST = "test"


CASHLINK_BASE_URLS = {
    Network.MAIN: "https://hub.nimiq.com/cashlink/",
    Network.TEST: "https://hub.nimiq-testnet.com/cashlink/",
}

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass
class BroadcasterConfig:
    """Transaction broadcaster limits and timings."""

    max_parallel_broadcasts: int = 100  # relay timeout 10s * 10 tx/s
    free_transactions_per_sender: int = 10
    transactions_per_sender: int = 500
    relay_fee_min: int = 1  # luna per byte
    retry_delay: float = 60.0  # seconds
    poll_interval: float = 1.0  # seconds
    max_retries: int | None = None  # None retries forever


@dataclass
class StatisticsConfig:
    """Pacing of the per-cashlink history requests."""

    requests_per_minute: int = 300
    throttle_margin: float = 0.05  # seconds


@dataclass
class CashlinkConfig:
    """Complete generator configuration."""

    # General
    log_level: str = "info"

    # Node
    node_host: str = ""
    node_port: str = ""
    network: Network = Network.TEST
    username: str = ""
    password: str = ""

    # Cashlinks
    token_length: int = 6
    salt: str = ""  # base64, loaded from env var CASHLINK_SALT

    broadcaster: BroadcasterConfig = field(default_factory=BroadcasterConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)

    @property
    def cashlink_base_url(self) -> str:
        return CASHLINK_BASE_URLS[self.network]

    @property
    def rpc_url(self) -> str:
        host = self.node_host
        if "://" not in host:
            host = f"http://{host}"
        return f"{host}:{self.node_port}"

    @property
    def salt_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.salt, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Salt must be base64 encoded") from exc

    def validate(self) -> None:
        """Raise ValidationError on the first missing or invalid setting."""
        if str(self.log_level).lower() not in LOG_LEVELS:
            raise ValidationError(f"Invalid log level {self.log_level!r}")
        if not self.node_host:
            raise ValidationError("Node host is not configured")
        if not str(self.node_port):
            raise ValidationError("Node port is not configured")
        if not self.salt:
            raise ValidationError("Salt is not configured")
        try:
            self.network = Network(self.network)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid network {self.network!r}, expected 'main' or 'test'"
            ) from exc
        if isinstance(self.token_length, bool) or not isinstance(self.token_length, int):
            raise ValidationError(f"Token length must be an integer, got {self.token_length!r}")
        # A trailing base64 char carrying fewer than 2 bits cannot be decoded
        if self.token_length < 2 or self.token_length % 4 == 1:
            raise ValidationError(f"Invalid token length {self.token_length}")
        self.salt_bytes
