"""
Bridge types and data structures.

This module defines the chain profiles, the domain event observed on a
source chain, the canonical cross-chain message and its proof, and the
per-transaction processing record.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..crypto.signatures import SignatureScheme


class ChainId(Enum):
    """Ledgers connected by the bridge."""

    CASPER = "casper"
    ETHEREUM = "ethereum"

    @property
    def counterpart(self) -> "ChainId":
        """The chain on the other side of the bridge."""
        return ChainId.ETHEREUM if self is ChainId.CASPER else ChainId.CASPER


@dataclass(frozen=True)
class ChainProfile:
    """Static facts about a chain's native unit and signature scheme."""

    chain: ChainId
    decimals: int
    max_amount: int
    scheme: SignatureScheme
    unit_name: str


CHAIN_PROFILES: Mapping[ChainId, ChainProfile] = {
    ChainId.CASPER: ChainProfile(
        chain=ChainId.CASPER,
        decimals=9,
        max_amount=2**512 - 1,  # U512
        scheme=SignatureScheme.ED25519,
        unit_name="mote",
    ),
    ChainId.ETHEREUM: ChainProfile(
        chain=ChainId.ETHEREUM,
        decimals=18,
        max_amount=2**256 - 1,  # uint256
        scheme=SignatureScheme.SECP256K1_RECOVERABLE,
        unit_name="wei",
    ),
}


def decimal_shift(source: ChainId, destination: ChainId) -> int:
    """Decimal-exponent difference when moving value from ``source`` to ``destination``."""
    return CHAIN_PROFILES[destination].decimals - CHAIN_PROFILES[source].decimals


class EventKind(Enum):
    """Source-side bridge events."""

    LOCKED = "locked"
    BURNED = "burned"


@dataclass(frozen=True)
class DomainEvent:
    """A finalized lock/burn observed on the source chain."""

    kind: EventKind
    source_chain: ChainId
    source_tx_id: str
    amount: int  # source smallest unit
    destination_chain: ChainId
    destination_address: str
    sender_address: str
    observed_at_block: int
    log_index: int = 0

    @property
    def position(self) -> Tuple[int, int]:
        """Observation order key: block, then intra-block index."""
        return (self.observed_at_block, self.log_index)


@dataclass(frozen=True)
class CanonicalMessage:
    """Chain-neutral message that attestations are produced over."""

    source_chain: ChainId
    source_tx_id: str
    amount: int  # destination smallest unit
    recipient_address: str
    nonce: int
    destination_chain: ChainId

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_chain": self.source_chain.value,
            "source_tx_id": self.source_tx_id,
            "amount": str(self.amount),
            "recipient_address": self.recipient_address,
            "nonce": self.nonce,
            "destination_chain": self.destination_chain.value,
        }


@dataclass(frozen=True)
class Attestation:
    """One signer's signature over a canonical message."""

    public_key: bytes
    signature: bytes
    scheme: SignatureScheme

    def to_dict(self) -> Dict[str, str]:
        return {
            "public_key": self.public_key.hex(),
            "signature": self.signature.hex(),
            "scheme": self.scheme.value,
        }


@dataclass(frozen=True)
class BridgeProof:
    """Canonical message plus an ordered, non-empty set of attestations."""

    message: CanonicalMessage
    attestations: Tuple[Attestation, ...]

    def __post_init__(self) -> None:
        if not self.attestations:
            raise ValueError("A bridge proof needs at least one attestation")
        object.__setattr__(self, "attestations", tuple(self.attestations))

    @property
    def source_tx_id(self) -> str:
        return self.message.source_tx_id


class RecordStatus(Enum):
    """Processing states of a source transaction."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    FAILED_UNCONFIRMED = "failed_unconfirmed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {RecordStatus.CONFIRMED, RecordStatus.FAILED, RecordStatus.FAILED_UNCONFIRMED}
)

_ALLOWED_TRANSITIONS = {
    RecordStatus.PENDING: {
        RecordStatus.SUBMITTED,
        RecordStatus.FAILED,
        RecordStatus.FAILED_UNCONFIRMED,
    },
    RecordStatus.SUBMITTED: {
        RecordStatus.CONFIRMED,
        RecordStatus.FAILED,
        RecordStatus.FAILED_UNCONFIRMED,
    },
}


@dataclass
class ProcessedRecord:
    """Lifecycle of one source transaction through the relayer."""

    source_tx_id: str
    status: RecordStatus = RecordStatus.PENDING
    destination_tx_id: Optional[str] = None
    attempts: int = 0
    poll_attempts: int = 0
    detail: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    history: List[Tuple[RecordStatus, float]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append((self.status, self.created_at))

    def transition(self, status: RecordStatus, detail: Optional[str] = None) -> None:
        """Move to ``status``; only forward edges of the state machine are legal."""
        if status not in _ALLOWED_TRANSITIONS.get(self.status, ()):
            raise ValueError(
                f"Illegal record transition {self.status.value} -> {status.value} "
                f"for {self.source_tx_id}"
            )
        self.status = status
        self.updated_at = time.time()
        self.history.append((status, self.updated_at))
        if detail is not None:
            self.detail = detail

    @property
    def blocks_resubmission(self) -> bool:
        """True once a broadcast has happened or the outcome is settled."""
        return self.status is not RecordStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_tx_id": self.source_tx_id,
            "status": self.status.value,
            "destination_tx_id": self.destination_tx_id,
            "attempts": self.attempts,
            "poll_attempts": self.poll_attempts,
            "detail": self.detail,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class RawEvent:
    """Undecoded transaction or log returned by a gateway scan."""

    chain: ChainId
    tx_id: str
    block: int
    index: int
    payload: Mapping[str, Any]


class TxStatus(Enum):
    """Execution outcome of a destination transaction."""

    SUCCESS = "success"
    REJECTED = "rejected"
    PENDING = "pending"


@dataclass(frozen=True)
class TransactionResult:
    """Result of ``get_transaction_result``."""

    status: TxStatus
    detail: Optional[str] = None
