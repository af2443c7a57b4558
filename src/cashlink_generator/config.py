"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from cashlink_generator.errors import ValidationError
from cashlink_generator.models.config import (
    BroadcasterConfig,
    CashlinkConfig,
    LOG_LEVELS,
    Network,
    StatisticsConfig,
)


def _network(value: str) -> Network:
    try:
        return Network(str(value).lower())
    except ValueError as exc:
        raise ValidationError(f"Invalid network {value!r}, expected 'main' or 'test'") from exc


def _log_level(value: object) -> str:
    level = str(value).lower()
    if level not in LOG_LEVELS:
        raise ValidationError(
            f"Invalid log level {value!r}, expected one of {', '.join(LOG_LEVELS)}"
        )
    return level


def _int(value: object, name: str) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from exc


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "CASHLINK_",
) -> CashlinkConfig:
    """Load generator configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (CASHLINK_SALT, CASHLINK_NODE_IP, etc.)
        2. TOML config file
        3. Defaults from CashlinkConfig

    The result is not validated, call CashlinkConfig.validate() before use.
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                try:
                    raw = tomllib.load(f)
                except tomllib.TOMLDecodeError as exc:
                    raise ValidationError(f"Invalid config file {p}: {exc}") from exc

    cfg = CashlinkConfig()

    # ── General section ────────────────────────────────────
    general = raw.get("general", {})
    if v := general.get("log_level"):
        cfg.log_level = _log_level(v)

    # ── Node section ───────────────────────────────────────
    node = raw.get("node", {})
    if v := node.get("host"):
        cfg.node_host = str(v)
    if v := node.get("port"):
        cfg.node_port = str(v)
    if v := node.get("network"):
        cfg.network = _network(v)
    if v := node.get("username"):
        cfg.username = str(v)
    if v := node.get("password"):
        cfg.password = str(v)

    # ── Cashlinks section ──────────────────────────────────
    cashlinks = raw.get("cashlinks", {})
    if v := cashlinks.get("token_length"):
        cfg.token_length = _int(v, "token_length")
    if v := cashlinks.get("salt"):
        cfg.salt = str(v)

    # ── Broadcaster section ────────────────────────────────
    defaults = BroadcasterConfig()
    broadcaster = raw.get("broadcaster", {})
    cfg.broadcaster = BroadcasterConfig(
        max_parallel_broadcasts=broadcaster.get(
            "max_parallel_broadcasts", defaults.max_parallel_broadcasts
        ),
        free_transactions_per_sender=broadcaster.get(
            "free_transactions_per_sender", defaults.free_transactions_per_sender
        ),
        transactions_per_sender=broadcaster.get(
            "transactions_per_sender", defaults.transactions_per_sender
        ),
        relay_fee_min=broadcaster.get("relay_fee_min", defaults.relay_fee_min),
        retry_delay=float(broadcaster.get("retry_delay", defaults.retry_delay)),
        poll_interval=float(broadcaster.get("poll_interval", defaults.poll_interval)),
        max_retries=broadcaster.get("max_retries", defaults.max_retries),
    )

    # ── Statistics section ─────────────────────────────────
    statistics = raw.get("statistics", {})
    cfg.statistics = StatisticsConfig(
        requests_per_minute=statistics.get("requests_per_minute", 300),
        throttle_margin=float(statistics.get("throttle_margin", 0.05)),
    )

    # ── Environment variable overrides (highest priority) ──
    if host := os.environ.get(f"{env_prefix}NODE_IP"):
        cfg.node_host = host
    if port := os.environ.get(f"{env_prefix}NODE_PORT"):
        cfg.node_port = port
    if net := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = _network(net)
    if length := os.environ.get(f"{env_prefix}TOKEN_LENGTH"):
        cfg.token_length = _int(length, f"{env_prefix}TOKEN_LENGTH")
    if salt := os.environ.get(f"{env_prefix}SALT"):
        cfg.salt = salt
    if user := os.environ.get(f"{env_prefix}RPC_USERNAME"):
        cfg.username = user
    if password := os.environ.get(f"{env_prefix}RPC_PASSWORD"):
        cfg.password = password

    return cfg
