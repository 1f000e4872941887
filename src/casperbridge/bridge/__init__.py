"""
Casper <-> Ethereum bridge relayer core.

This module provides:
- Per-chain watchers yielding finalized lock/burn events
- Replay protection for one relayer run
- Canonical message building with decimal normalization
- Attestation signing per destination scheme
- Destination submission with confirmation polling
- Orchestration of both bridge directions
"""

from .bridge_types import (
    CHAIN_PROFILES,
    Attestation,
    BridgeProof,
    CanonicalMessage,
    ChainId,
    ChainProfile,
    DomainEvent,
    EventKind,
    ProcessedRecord,
    RawEvent,
    RecordStatus,
    TransactionResult,
    TxStatus,
    decimal_shift,
)
from .config import ChainConfig, RelayerConfig
from .context import BridgeContext
from .cursor import EventCursor
from .dedup import DedupLedger
from .executor import SubmissionExecutor, TransactionBuilder
from .gateway import LedgerGateway
from .orchestrator import (
    BridgeDirection,
    BridgeOrchestrator,
    build_direction,
    create_orchestrator,
)
from .proof_builder import (
    MESSAGE_ENCODERS,
    ProofBuilder,
    convert_amount,
    derive_nonce,
    encode_message,
)
from .signer import Signer
from .watcher import ChainWatcher, EventDecoder

__all__ = [
    # Types
    "ChainId",
    "ChainProfile",
    "CHAIN_PROFILES",
    "decimal_shift",
    "EventKind",
    "DomainEvent",
    "CanonicalMessage",
    "Attestation",
    "BridgeProof",
    "RecordStatus",
    "ProcessedRecord",
    "RawEvent",
    "TxStatus",
    "TransactionResult",
    # Configuration
    "ChainConfig",
    "RelayerConfig",
    "BridgeContext",
    # Pipeline
    "LedgerGateway",
    "EventCursor",
    "EventDecoder",
    "ChainWatcher",
    "DedupLedger",
    "ProofBuilder",
    "MESSAGE_ENCODERS",
    "convert_amount",
    "derive_nonce",
    "encode_message",
    "Signer",
    "TransactionBuilder",
    "SubmissionExecutor",
    "BridgeDirection",
    "BridgeOrchestrator",
    "build_direction",
    "create_orchestrator",
]
