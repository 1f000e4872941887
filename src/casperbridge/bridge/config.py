"""
Relayer configuration.

Per-chain connection and polling parameters plus relayer-wide retry
settings. Built once at startup and immutable for the run.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..errors import ConfigurationError
from .bridge_types import ChainId


@dataclass(frozen=True)
class ChainConfig:
    """Connection and watcher settings for one chain."""

    chain: ChainId
    rpc_url: str
    verifier_id: str  # wrapper contract address / vault contract hash
    attestation_key: str  # hex or path
    account_key: Optional[str] = None  # defaults to attestation_key
    poll_interval: float = 5.0
    confirmation_depth: int = 3
    chain_id: Optional[int] = None  # EVM chain id
    network_name: Optional[str] = None  # Casper chain name
    start_position: Optional[int] = None
    max_blocks_per_query: int = 10
    gas_limit: int = 500_000
    payment_amount: int = 3_000_000_000  # motes
    request_timeout: float = 30.0

    @property
    def transaction_key(self) -> str:
        return self.account_key or self.attestation_key

    def validate(self) -> None:
        """Raise ``ConfigurationError`` on the first invalid field."""
        if not self.rpc_url:
            raise ConfigurationError(
                f"{self.chain.value}: rpc_url is required", config_key="rpc_url"
            )
        if not self.verifier_id:
            raise ConfigurationError(
                f"{self.chain.value}: verifier_id is required",
                config_key="verifier_id",
            )
        if not self.attestation_key:
            raise ConfigurationError(
                f"{self.chain.value}: attestation key is required",
                config_key="attestation_key",
            )
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"{self.chain.value}: poll_interval must be positive",
                config_key="poll_interval",
                config_value=self.poll_interval,
            )
        if self.confirmation_depth < 0:
            raise ConfigurationError(
                f"{self.chain.value}: confirmation_depth must be >= 0",
                config_key="confirmation_depth",
                config_value=self.confirmation_depth,
            )
        if self.max_blocks_per_query < 1:
            raise ConfigurationError(
                f"{self.chain.value}: max_blocks_per_query must be >= 1",
                config_key="max_blocks_per_query",
                config_value=self.max_blocks_per_query,
            )
        if self.start_position is not None and self.start_position < 0:
            raise ConfigurationError(
                f"{self.chain.value}: start_position must be >= 0",
                config_key="start_position",
                config_value=self.start_position,
            )
        if self.chain is ChainId.ETHEREUM and self.chain_id is None:
            raise ConfigurationError(
                "ethereum: chain_id is required", config_key="chain_id"
            )
        if self.chain is ChainId.CASPER and not self.network_name:
            raise ConfigurationError(
                "casper: network_name is required", config_key="network_name"
            )


@dataclass(frozen=True)
class RelayerConfig:
    """Relayer-wide configuration."""

    chains: Mapping[ChainId, ChainConfig] = field(default_factory=dict)
    read_retry_delay: float = 2.0
    max_broadcast_attempts: int = 3
    max_poll_attempts: int = 10
    poll_base_delay: float = 2.0
    poll_max_delay: float = 30.0
    log_level: str = "info"
    log_dir: Optional[str] = None
    relayer_id: str = "relayer-0"

    def chain(self, chain: ChainId) -> ChainConfig:
        try:
            return self.chains[chain]
        except KeyError:
            raise ConfigurationError(
                f"No configuration for chain '{chain.value}'", config_key=chain.value
            )

    def validate(self) -> "RelayerConfig":
        """Validate every section; returns ``self`` for chaining."""
        for chain in ChainId:
            self.chain(chain).validate()
        if self.max_broadcast_attempts < 1:
            raise ConfigurationError(
                "max_broadcast_attempts must be >= 1",
                config_key="max_broadcast_attempts",
                config_value=self.max_broadcast_attempts,
            )
        if self.max_poll_attempts < 1:
            raise ConfigurationError(
                "max_poll_attempts must be >= 1",
                config_key="max_poll_attempts",
                config_value=self.max_poll_attempts,
            )
        if self.read_retry_delay < 0 or self.poll_base_delay < 0:
            raise ConfigurationError("Retry delays must be non-negative")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayerConfig":
        """Build a configuration from the relayer's environment variables."""
        env = os.environ if environ is None else environ
        poll_interval = _env_int(env, "POLL_INTERVAL_MS", 5000) / 1000.0

        casper = ChainConfig(
            chain=ChainId.CASPER,
            rpc_url=env.get("CASPER_RPC_URL", ""),
            verifier_id=env.get("CASPER_VAULT_CONTRACT", ""),
            attestation_key=env.get("CASPER_PRIVATE_KEY_HEX")
            or env.get("CASPER_PRIVATE_KEY_PATH", ""),
            network_name=env.get("CASPER_NETWORK_NAME", "casper-test"),
            poll_interval=poll_interval,
            confirmation_depth=_env_int(env, "CONFIRMATION_BLOCKS_CASPER", 3),
        )
        ethereum = ChainConfig(
            chain=ChainId.ETHEREUM,
            rpc_url=env.get("ETHEREUM_RPC_URL", ""),
            verifier_id=env.get("ETHEREUM_WRAPPER_CONTRACT", ""),
            attestation_key=env.get("ETHEREUM_PRIVATE_KEY", ""),
            chain_id=_env_int(env, "ETHEREUM_CHAIN_ID", 11155111),
            poll_interval=poll_interval,
            confirmation_depth=_env_int(env, "CONFIRMATION_BLOCKS_ETHEREUM", 12),
        )
        return cls(
            chains={ChainId.CASPER: casper, ChainId.ETHEREUM: ethereum},
            log_level=env.get("LOG_LEVEL", "info"),
            log_dir=env.get("LOG_DIR"),
        )


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{key} must be an integer", config_key=key, config_value=raw
        )
