"""
Destination-side submission.

``SubmissionExecutor.submit`` drives a source transaction's record through
``pending -> submitted -> {confirmed | failed | failed_unconfirmed}``:

- the destination transaction is built and broadcast under a
  per-account lock so account sequence numbers are never reused
- transport failures during broadcast retry the same signed bytes; when
  retries run out the record is left ``failed_unconfirmed`` with the
  locally computed destination id
- an execution-level rejection is final; nothing is rebroadcast
- unknown results are polled with capped exponential backoff, then the
  record is left ``failed_unconfirmed`` for an operator to check
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional, Set

from ..errors import (
    BackoffStrategy,
    ErrorContext,
    SubmissionRejectedError,
    SubmissionUnconfirmedError,
    TransientIOError,
)
from .bridge_types import BridgeProof, ChainId, ProcessedRecord, RecordStatus, TxStatus
from .context import BridgeContext
from .dedup import DedupLedger
from .gateway import LedgerGateway


class TransactionBuilder(ABC):
    """Builds the signed destination transaction that carries a proof."""

    chain: ChainId

    @property
    @abstractmethod
    def account_id(self) -> str:
        """Destination account whose sequence numbers this builder consumes."""

    @abstractmethod
    async def build(self, proof: BridgeProof) -> bytes:
        """Signed transaction envelope invoking the verifier's mint/release entry point."""

    def transaction_id(self, signed_tx: bytes) -> Optional[str]:
        """Destination id of ``signed_tx`` when it can be computed locally."""
        return None

    def commit_sequence(self) -> None:
        """The last built transaction was accepted by the destination node."""

    def release_sequence(self) -> None:
        """The last built transaction was not accepted; its sequence may be reused."""


class SubmissionExecutor:
    """Submits proofs to one destination chain and tracks their outcome."""

    def __init__(
        self,
        context: BridgeContext,
        gateway: LedgerGateway,
        builder: TransactionBuilder,
        ledger: DedupLedger,
        account_locks: Optional[Dict[str, asyncio.Lock]] = None,
    ):
        if builder.chain is not gateway.chain:
            raise ValueError(
                f"Builder for {builder.chain.value} cannot submit to {gateway.chain.value}"
            )

        config = context.config
        self.chain = gateway.chain
        self.gateway = gateway
        self.builder = builder
        self.ledger = ledger
        self.max_broadcast_attempts = config.max_broadcast_attempts
        self.max_poll_attempts = config.max_poll_attempts
        self.backoff = BackoffStrategy.exponential(
            config.poll_base_delay, config.poll_max_delay
        )
        self.logger = context.get_logger(
            __name__, component="executor", chain=self.chain.value
        )

        self._account_locks = account_locks if account_locks is not None else {}
        self._in_flight: Set[str] = set()
        self._stop_event = asyncio.Event()

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._account_locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[account_id] = lock
        return lock

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def submit(self, proof: BridgeProof) -> ProcessedRecord:
        """Broadcast ``proof`` once and follow it to a settled record."""
        source_tx_id = proof.source_tx_id
        record = self.ledger.mark_processed(source_tx_id)

        if record.blocks_resubmission or source_tx_id in self._in_flight:
            self.logger.warning(
                "Submission skipped, transaction already handled",
                extra={"source_tx_id": source_tx_id, "status": record.status.value},
            )
            return record

        self._in_flight.add(source_tx_id)
        try:
            try:
                async with self._lock_for(self.builder.account_id):
                    destination_tx_id = await self._build_and_broadcast(record, proof)
            except SubmissionRejectedError as e:
                record.transition(RecordStatus.FAILED, e.reason or e.message)
                self.logger.error(
                    "Destination refused the transaction",
                    exception=e,
                    extra={"source_tx_id": source_tx_id, "attempts": record.attempts},
                )
                return record
            except TransientIOError as e:
                record.transition(RecordStatus.FAILED_UNCONFIRMED, e.message)
                self.logger.error(
                    "Broadcast outcome unknown, operator check required",
                    exception=e,
                    extra={
                        "source_tx_id": source_tx_id,
                        "destination_tx_id": record.destination_tx_id,
                        "attempts": record.attempts,
                    },
                )
                return record

            record.destination_tx_id = destination_tx_id
            record.transition(RecordStatus.SUBMITTED)
            self.logger.info(
                "Transaction broadcast",
                extra={
                    "source_tx_id": source_tx_id,
                    "destination_tx_id": destination_tx_id,
                    "nonce": proof.message.nonce,
                    "amount": str(proof.message.amount),
                },
            )

            await self._await_result(record)
            return record
        finally:
            self._in_flight.discard(source_tx_id)

    async def _build_and_broadcast(self, record: ProcessedRecord, proof: BridgeProof) -> str:
        signed_tx: Optional[bytes] = None
        last_error: Optional[TransientIOError] = None

        for attempt in range(1, self.max_broadcast_attempts + 1):
            try:
                if signed_tx is None:
                    signed_tx = await self.builder.build(proof)
                record.attempts += 1
                destination_tx_id = await self.gateway.broadcast(signed_tx)
            except SubmissionRejectedError:
                self.builder.release_sequence()
                raise
            except TransientIOError as e:
                last_error = e
                if attempt == self.max_broadcast_attempts:
                    break
                delay = self.backoff.get_delay(attempt)
                self.logger.warning(
                    f"Broadcast attempt {attempt} failed, retrying in {delay:.1f}s: {e.message}",
                    extra={"source_tx_id": record.source_tx_id},
                )
                if await self._wait_for_stop(delay):
                    self.logger.info(
                        "Stop requested, broadcast retries abandoned",
                        extra={"source_tx_id": record.source_tx_id},
                    )
                    break
            else:
                self.builder.commit_sequence()
                return destination_tx_id

        # The transaction may still have reached the node
        self.builder.release_sequence()
        if signed_tx is not None:
            record.destination_tx_id = self.builder.transaction_id(signed_tx)
        raise last_error

    def stop(self) -> None:
        """Interrupt pending broadcast backoffs."""
        self._stop_event.set()

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to ``delay``; True when the stop signal arrived."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _await_result(self, record: ProcessedRecord) -> None:
        destination_tx_id = record.destination_tx_id

        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.backoff.get_delay(attempt))
            record.poll_attempts = attempt

            try:
                result = await self.gateway.get_transaction_result(destination_tx_id)
            except TransientIOError as e:
                self.logger.warning(
                    f"Result query failed: {e.message}",
                    extra={
                        "source_tx_id": record.source_tx_id,
                        "destination_tx_id": destination_tx_id,
                        "poll_attempt": attempt,
                    },
                )
                continue

            if result.status is TxStatus.SUCCESS:
                record.transition(RecordStatus.CONFIRMED, result.detail)
                self.logger.info(
                    "Transaction confirmed",
                    extra={
                        "source_tx_id": record.source_tx_id,
                        "destination_tx_id": destination_tx_id,
                        "poll_attempts": attempt,
                    },
                )
                return

            if result.status is TxStatus.REJECTED:
                error = SubmissionRejectedError(
                    f"Verifier rejected {destination_tx_id}: {result.detail}",
                    source_tx_id=record.source_tx_id,
                    destination_tx_id=destination_tx_id,
                    reason=result.detail,
                    context=ErrorContext(chain=self.chain.value, component="executor"),
                )
                record.transition(RecordStatus.FAILED, result.detail)
                self.logger.error(
                    "Destination transaction rejected",
                    exception=error,
                    extra={
                        "source_tx_id": record.source_tx_id,
                        "destination_tx_id": destination_tx_id,
                        "reason": result.detail,
                    },
                )
                return

            self.logger.debug(
                "Result not available yet",
                extra={"destination_tx_id": destination_tx_id, "poll_attempt": attempt},
            )

        error = SubmissionUnconfirmedError(
            f"No result for {destination_tx_id} after {self.max_poll_attempts} polls",
            source_tx_id=record.source_tx_id,
            destination_tx_id=destination_tx_id,
            attempts=self.max_poll_attempts,
            context=ErrorContext(chain=self.chain.value, component="executor"),
        )
        record.transition(RecordStatus.FAILED_UNCONFIRMED, error.message)
        self.logger.error(
            "Transaction unconfirmed, operator check required",
            exception=error,
            extra={
                "source_tx_id": record.source_tx_id,
                "destination_tx_id": destination_tx_id,
            },
        )
