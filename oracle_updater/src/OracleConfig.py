"""OracleConfig: Configuration of one oracle updater instance.

The configuration is a TOML document read once at startup. Secrets and
endpoints can be overridden with environment variables:
``ORACLE_PRIVATE_KEY``, ``RPC_URL`` and ``API_KEY_<SOURCE>``.

Durations are in seconds.

.. code-block:: toml

    network = "sapphire-testnet"
    oracle_address = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    source = "coinbase"
    base = "sol"
    quote = "usd"
    update_threshold = 0.5
    update_interval = 60
    inactive_duration = 300
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from web3 import Web3

from .fetchers import get_available_fetchers
from .TransactionSender import (
    DEFAULT_MAX_REBROADCASTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REBROADCAST_INTERVAL,
    DEFAULT_TX_TIMEOUT,
)


class ConfigError(ValueError):
    """Raised when the configuration is missing or inconsistent."""


REQUIRED_KEYS = ("oracle_address", "source", "base", "quote")


@dataclass
class OracleConfig:
    """Oracle updater configuration.

    :ivar network: Network preset name or RPC URL.
    :ivar rpc_url: Explicit RPC URL, overrides the network preset.
    :ivar private_key: Hex private key signing the updates.
    :ivar oracle_address: Address of the oracle contract.
    :ivar source: Venue fetcher name.
    :ivar base: Base currency symbol.
    :ivar quote: Quote currency symbol.
    :ivar invert: Publish the inverse of the observed price.
    :ivar api_key: Optional venue API key.
    :ivar fetch_interval: Seconds between ticks.
    :ivar update_threshold: Deviation in percent that triggers a publish.
    :ivar update_interval: Max seconds between publishes.
    :ivar inactive_duration: Seconds without publish before disabling the
        oracle; 0 disables the rule.
    :ivar confidence: Confidence published with the price.
    :ivar min_threshold: Lowest valid price (None: unbounded).
    :ivar max_threshold: Highest valid price (None: unbounded).
    :ivar allow_negative_spread: Keep the status valid when bid > ask.
    """

    oracle_address: str
    source: str
    base: str
    quote: str
    network: str = "sapphire-localnet"
    rpc_url: str | None = None
    private_key: str | None = None
    invert: bool = False
    api_key: str | None = None
    fetch_interval: float = 5.0
    update_threshold: float = 1.0
    update_interval: float = 60.0
    inactive_duration: float = 0.0
    confidence: float = 0.0
    min_threshold: float | None = None
    max_threshold: float | None = None
    allow_negative_spread: bool = False
    gas_limit: int = 100_000
    confirmations: int = 1
    tx_timeout: float = DEFAULT_TX_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    rebroadcast_interval: float = DEFAULT_REBROADCAST_INTERVAL
    max_rebroadcasts: int = DEFAULT_MAX_REBROADCASTS
    reconnect_delay: float = 10.0
    fetch_timeout: float = 10.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OracleConfig:
        """Build and validate a configuration from parsed key/values.

        :param data: Parsed configuration document.
        :returns: Validated configuration.
        :raises ConfigError: On missing, unknown or invalid keys.
        """
        missing = [k for k in REQUIRED_KEYS if data.get(k) in (None, "")]
        if missing:
            raise ConfigError(f"Missing required config keys: {missing}")

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {unknown}")

        try:
            config = cls(**data)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> OracleConfig:
        """Read a TOML configuration file and apply environment overrides.

        :param path: Path to the TOML file.
        :returns: Validated configuration.
        :raises FileNotFoundError: If the file does not exist.
        :raises ConfigError: If the file is malformed or invalid.
        """
        with open(path, "rb") as file:
            try:
                data = tomllib.load(file)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Malformed config file {path}: {e}") from e

        return cls.from_dict(apply_env_overrides(data))

    def validate(self) -> None:
        """Check value ranges and cross-field invariants.

        :raises ConfigError: If a value is out of range.
        """
        for name in ("fetch_interval", "update_interval", "tx_timeout",
                     "poll_interval", "rebroadcast_interval", "fetch_timeout"):
            if not getattr(self, name) > 0:
                raise ConfigError(f"'{name}' must be positive")

        for name in ("update_threshold", "inactive_duration", "confidence",
                     "reconnect_delay", "max_rebroadcasts"):
            if getattr(self, name) < 0:
                raise ConfigError(f"'{name}' must not be negative")

        if not Web3.is_address(self.oracle_address):
            raise ConfigError(f"Invalid oracle_address: {self.oracle_address}")

        if not self.private_key and self.network != "sapphire-localnet":
            raise ConfigError(f"No private_key configured for network {self.network}")

        if self.confirmations < 1:
            raise ConfigError("'confirmations' must be at least 1")

        if self.gas_limit <= 0:
            raise ConfigError("'gas_limit' must be positive")

        if self.inactive_duration and self.inactive_duration <= self.update_interval:
            raise ConfigError(
                "inappropriate config: 'inactive_duration' must be longer than "
                "'update_interval'"
            )

        if (
            self.min_threshold is not None
            and self.max_threshold is not None
            and self.min_threshold > self.max_threshold
        ):
            raise ConfigError("'min_threshold' must not exceed 'max_threshold'")

        available = get_available_fetchers()
        if self.source not in available:
            raise ConfigError(
                f"Unknown source '{self.source}'. Available: {', '.join(available)}"
            )

    @property
    def pair(self) -> str:
        """Pair label used in logs."""
        return f"{self.base}/{self.quote}"


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay secrets and endpoints from environment variables.

    :param data: Parsed configuration document.
    :returns: New dict with overrides applied.
    """
    data = dict(data)
    if os.environ.get("ORACLE_PRIVATE_KEY"):
        data["private_key"] = os.environ["ORACLE_PRIVATE_KEY"]
    if os.environ.get("RPC_URL"):
        data["rpc_url"] = os.environ["RPC_URL"]

    source = str(data.get("source") or "").lower()
    if source:
        data["source"] = source
        api_key = os.environ.get(f"API_KEY_{source.upper()}")
        if api_key:
            data["api_key"] = api_key
    return data
