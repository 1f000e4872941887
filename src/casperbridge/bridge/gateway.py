"""
Ledger gateway interface.

The only surface the relayer core uses to talk to a chain. Any client that
implements these coroutines is interchangeable; implementations raise
``TransientIOError`` for transport failures and ``SubmissionRejectedError``
when a node refuses a broadcast outright.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .bridge_types import ChainId, RawEvent, TransactionResult


class LedgerGateway(ABC):
    """Read/write RPC surface of one ledger."""

    chain: ChainId

    @abstractmethod
    async def get_finalized_head(self) -> int:
        """Current head position of the chain."""

    @abstractmethod
    async def scan_range(self, from_exclusive: int, to_inclusive: int) -> List[RawEvent]:
        """Candidate bridge transactions in positions ``(from_exclusive, to_inclusive]``."""

    @abstractmethod
    async def get_transaction_result(self, tx_id: str) -> TransactionResult:
        """Execution status of a broadcast transaction."""

    @abstractmethod
    async def broadcast(self, signed_tx: bytes) -> str:
        """Submit a signed transaction envelope; returns its transaction id."""

    async def fetch_transaction(self, tx_id: str) -> Optional[RawEvent]:
        """Look up a single transaction for expedited checking.

        Returns ``None`` while the transaction is unknown or not yet executed.
        """
        return None

    async def close(self) -> None:
        """Release transport resources."""
