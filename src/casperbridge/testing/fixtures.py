"""Pre-built configuration, context and events for tests."""

from dataclasses import replace
from typing import Any, Optional

from ..bridge.bridge_types import ChainId, DomainEvent, EventKind
from ..bridge.config import ChainConfig, RelayerConfig
from ..bridge.context import BridgeContext
from ..logging import LogLevel, LogManager, MemoryHandler

# Well-known development keys; never fund them.
TEST_ETHEREUM_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_CASPER_KEY = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"

TEST_WRAPPER_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
TEST_VAULT_HASH = "hash-" + "ab" * 32
TEST_EVM_RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TEST_CASPER_RECIPIENT = "01" + "cd" * 32


def make_config(**overrides: Any) -> RelayerConfig:
    """Valid relayer configuration with near-zero delays."""
    casper = ChainConfig(
        chain=ChainId.CASPER,
        rpc_url="http://casper.test/rpc",
        verifier_id=TEST_VAULT_HASH,
        attestation_key=TEST_CASPER_KEY,
        network_name="casper-test",
        poll_interval=0.01,
        confirmation_depth=3,
    )
    ethereum = ChainConfig(
        chain=ChainId.ETHEREUM,
        rpc_url="http://ethereum.test",
        verifier_id=TEST_WRAPPER_ADDRESS,
        attestation_key=TEST_ETHEREUM_KEY,
        chain_id=11155111,
        poll_interval=0.01,
        confirmation_depth=3,
    )
    config = RelayerConfig(
        chains={ChainId.CASPER: casper, ChainId.ETHEREUM: ethereum},
        read_retry_delay=0.01,
        max_broadcast_attempts=3,
        max_poll_attempts=3,
        poll_base_delay=0.0,
        poll_max_delay=0.0,
        relayer_id="test-relayer",
    )
    return replace(config, **overrides)


def make_context(
    config: Optional[RelayerConfig] = None, level: LogLevel = LogLevel.TRACE
) -> BridgeContext:
    """Context whose log entries land in ``memory_handler(context)``."""
    manager = LogManager(level=level)
    manager.add_handler("memory", MemoryHandler(max_size=10_000))
    return BridgeContext(config=config or make_config(), log_manager=manager)


def memory_handler(context: BridgeContext) -> MemoryHandler:
    return context.log_manager.handlers["memory"]


def make_event(
    source: ChainId = ChainId.CASPER,
    source_tx_id: str = "deadbeef" + "00" * 28,
    amount: int = 5_000_000_000,
    block: int = 10,
    log_index: int = 0,
    destination_address: Optional[str] = None,
) -> DomainEvent:
    if destination_address is None:
        destination_address = (
            TEST_EVM_RECIPIENT if source is ChainId.CASPER else TEST_CASPER_RECIPIENT
        )
    return DomainEvent(
        kind=EventKind.LOCKED if source is ChainId.CASPER else EventKind.BURNED,
        source_chain=source,
        source_tx_id=source_tx_id,
        amount=amount,
        destination_chain=source.counterpart,
        destination_address=destination_address,
        sender_address="sender",
        observed_at_block=block,
        log_index=log_index,
    )
