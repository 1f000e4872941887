"""Testing support for the relayer.

In-memory ledger gateways, transaction builders and decoders plus
ready-made configuration and contexts, so the pipeline can be exercised
without a node.
"""

from .fixtures import (
    TEST_CASPER_KEY,
    TEST_CASPER_RECIPIENT,
    TEST_ETHEREUM_KEY,
    TEST_EVM_RECIPIENT,
    TEST_VAULT_HASH,
    TEST_WRAPPER_ADDRESS,
    make_config,
    make_context,
    make_event,
    memory_handler,
)
from .gateways import (
    InMemoryLedgerGateway,
    InMemoryTransactionBuilder,
    PayloadEventDecoder,
)

__all__ = [
    "InMemoryLedgerGateway",
    "InMemoryTransactionBuilder",
    "PayloadEventDecoder",
    "make_config",
    "make_context",
    "make_event",
    "memory_handler",
    "TEST_CASPER_KEY",
    "TEST_CASPER_RECIPIENT",
    "TEST_ETHEREUM_KEY",
    "TEST_EVM_RECIPIENT",
    "TEST_VAULT_HASH",
    "TEST_WRAPPER_ADDRESS",
]
