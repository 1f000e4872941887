"""
Bridge orchestration.

Each ``BridgeDirection`` pulls events from one chain's watcher and pushes
them, one at a time, through dedup, proof building, signing and submission
to the opposite chain. ``BridgeOrchestrator`` runs the two directions as
independent tasks and owns their start/stop lifecycle.
"""

import asyncio
from functools import partial
from typing import Any, Dict, Mapping, Optional, Sequence

from ..errors import ConversionError, MalformedEventError, RelayerError
from .bridge_types import (
    BridgeProof,
    ChainId,
    DomainEvent,
    ProcessedRecord,
    RecordStatus,
)
from .context import BridgeContext
from .dedup import DedupLedger
from .executor import SubmissionExecutor, TransactionBuilder
from .gateway import LedgerGateway
from .proof_builder import ProofBuilder
from .signer import Signer
from .watcher import ChainWatcher, EventDecoder


class BridgeDirection:
    """Sequential pipeline for one source -> destination direction."""

    def __init__(
        self,
        context: BridgeContext,
        watcher: ChainWatcher,
        proof_builder: ProofBuilder,
        signer: Signer,
        executor: SubmissionExecutor,
        ledger: DedupLedger,
    ):
        if proof_builder.source is not watcher.chain:
            raise ValueError("Proof builder source does not match the watched chain")
        if proof_builder.destination is not executor.chain:
            raise ValueError("Proof builder destination does not match the executor")
        if executor.ledger is not ledger:
            raise ValueError("Executor must share the direction's dedup ledger")

        self.source = watcher.chain
        self.destination = executor.chain
        self.name = f"{self.source.value}->{self.destination.value}"
        self.watcher = watcher
        self.proof_builder = proof_builder
        self.signer = signer
        self.executor = executor
        self.ledger = ledger
        self.logger = context.get_logger(
            __name__, component="pipeline", direction=self.name
        )
        self.events_seen = 0
        self.duplicates = 0

    async def run(self) -> None:
        """Consume the watcher until it is stopped."""
        async for event in self.watcher:
            await self.handle(event)

    async def handle(self, event: DomainEvent) -> Optional[ProcessedRecord]:
        """Fully handle one event; returns ``None`` for a duplicate."""
        self.events_seen += 1
        record = self.ledger.claim(event.source_tx_id)
        if record is None:
            self.duplicates += 1
            self.logger.debug(
                "Duplicate event dropped", extra={"source_tx_id": event.source_tx_id}
            )
            return None

        self.logger.info(
            f"{event.kind.value.capitalize()} event accepted",
            extra={
                "source_tx_id": event.source_tx_id,
                "amount": str(event.amount),
                "recipient": event.destination_address,
                "block": event.observed_at_block,
            },
        )

        try:
            message = self.proof_builder.build(event)
        except ConversionError as e:
            record.transition(RecordStatus.FAILED, e.message)
            self.logger.error(
                "Event skipped, amount cannot be converted",
                exception=e,
                extra={"source_tx_id": event.source_tx_id, "amount": str(event.amount)},
            )
            return record
        except MalformedEventError as e:
            record.transition(RecordStatus.FAILED, e.message)
            self.logger.warning(
                f"Event skipped: {e.message}",
                extra={"source_tx_id": event.source_tx_id},
            )
            return record

        try:
            attestation = self.signer.sign_for_destination(message)
            proof = BridgeProof(message=message, attestations=(attestation,))
            return await self.executor.submit(proof)
        except Exception as e:
            self._fail(record, e)
            return record

    def _fail(self, record: ProcessedRecord, error: Exception) -> None:
        if record.status is RecordStatus.PENDING:
            detail = error.message if isinstance(error, RelayerError) else str(error)
            record.transition(RecordStatus.FAILED, detail)
        self.logger.error(
            "Pipeline failure",
            exception=error,
            extra={"source_tx_id": record.source_tx_id, "status": record.status.value},
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "direction": self.name,
            "watcher": self.watcher.get_status(),
            "records": self.ledger.counts(),
            "events_seen": self.events_seen,
            "duplicates": self.duplicates,
            "in_flight": self.executor.in_flight,
        }


class BridgeOrchestrator:
    """Runs both bridge directions and owns their lifecycle."""

    def __init__(
        self,
        context: BridgeContext,
        directions: Sequence[BridgeDirection],
    ):
        self.context = context
        self.directions: Dict[ChainId, BridgeDirection] = {}
        for direction in directions:
            if direction.source in self.directions:
                raise ValueError(f"Duplicate direction from {direction.source.value}")
            self.directions[direction.source] = direction

        self.logger = context.get_logger(__name__, component="orchestrator")
        self._tasks: Dict[str, asyncio.Task] = {}
        self._failures: Dict[str, BaseException] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one task per direction."""
        if self._running:
            self.logger.warning("Bridge is already running")
            return

        for direction in self.directions.values():
            task = asyncio.create_task(direction.run(), name=f"bridge:{direction.name}")
            task.add_done_callback(partial(self._on_direction_done, direction.name))
            self._tasks[direction.name] = task
        self._running = True
        self.logger.info(
            "Bridge started", extra={"directions": list(self._tasks)}
        )

    async def stop(self) -> None:
        """Stop fetching and wait for in-flight submissions to settle."""
        if not self._running:
            self.logger.warning("Bridge is not running")
            return

        self.logger.info("Stopping bridge")
        for direction in self.directions.values():
            direction.watcher.stop()
            direction.executor.stop()

        await self._join()
        self._running = False
        self.logger.info("Bridge stopped", extra={"status": self.record_counts()})

    async def wait(self) -> None:
        """Block until every direction has ended."""
        await self._join()

    async def _join(self) -> None:
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    def _on_direction_done(self, name: str, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        self._failures[name] = task.exception()
        self.logger.error(
            f"Direction {name} ended with an error",
            exception=task.exception(),
        )

    async def close(self) -> None:
        """Stop if needed and release every gateway."""
        if self._running:
            await self.stop()
        gateways = {}
        for direction in self.directions.values():
            gateways[direction.watcher.gateway.chain] = direction.watcher.gateway
            gateways[direction.executor.gateway.chain] = direction.executor.gateway
        for gateway in gateways.values():
            await gateway.close()

    async def forward_signed_transaction(
        self, chain: ChainId, signed_tx: bytes, track: bool = True
    ) -> str:
        """
        Broadcast an already-signed source transaction.

        With ``track`` the resulting id is checked directly by that chain's
        watcher until it executes; the event then flows through the normal
        dedup path.
        """
        direction = self.directions.get(chain)
        if direction is None:
            raise ValueError(f"No bridge direction reads from {chain.value}")

        tx_id = await direction.watcher.gateway.broadcast(signed_tx)
        self.logger.info(
            "Forwarded signed transaction",
            extra={"chain": chain.value, "tx_id": tx_id, "tracked": track},
        )
        if track:
            direction.watcher.track(tx_id)
        return tx_id

    def get_record(self, chain: ChainId, source_tx_id: str) -> Optional[ProcessedRecord]:
        direction = self.directions.get(chain)
        return direction.ledger.get_record(source_tx_id) if direction else None

    def record_counts(self) -> Dict[str, Dict[str, int]]:
        return {
            direction.name: direction.ledger.counts()
            for direction in self.directions.values()
        }

    def get_status(self) -> Dict[str, Any]:
        """Health snapshot: running flag, per-direction cursor and record counts.

        A started bridge with a direction that ended on an error reports
        ``degraded`` and names the failure.
        """
        if not self._running:
            status = "stopped"
        elif self._failures:
            status = "degraded"
        else:
            status = "running"
        directions = {}
        for direction in self.directions.values():
            directions[direction.name] = direction.get_status()
            failure = self._failures.get(direction.name)
            if failure is not None:
                directions[direction.name]["error"] = str(failure)
        return {
            "status": status,
            "relayer_id": self.context.config.relayer_id,
            "directions": directions,
        }


def build_direction(
    context: BridgeContext,
    source_gateway: LedgerGateway,
    decoder: EventDecoder,
    destination_gateway: LedgerGateway,
    transaction_builder: TransactionBuilder,
    signer: Signer,
    account_locks: Optional[Dict[str, asyncio.Lock]] = None,
) -> BridgeDirection:
    """Wire one direction from its two gateways."""
    ledger = DedupLedger(
        name=f"{source_gateway.chain.value}->{destination_gateway.chain.value}"
    )
    return BridgeDirection(
        context=context,
        watcher=ChainWatcher(context, source_gateway, decoder),
        proof_builder=ProofBuilder(source_gateway.chain, destination_gateway.chain),
        signer=signer,
        executor=SubmissionExecutor(
            context,
            destination_gateway,
            transaction_builder,
            ledger,
            account_locks=account_locks,
        ),
        ledger=ledger,
    )


def create_orchestrator(
    context: BridgeContext,
    gateways: Optional[Mapping[ChainId, LedgerGateway]] = None,
) -> BridgeOrchestrator:
    """Build the Casper <-> Ethereum relayer from configuration."""
    from .chains.casper import CasperGateway, CasperLockDecoder, CasperReleaseBuilder
    from .chains.ethereum import EthereumBurnDecoder, EthereumGateway, EthereumMintBuilder

    config = context.config.validate()
    casper_config = config.chain(ChainId.CASPER)
    ethereum_config = config.chain(ChainId.ETHEREUM)

    gateways = dict(gateways or {})
    if ChainId.CASPER not in gateways:
        gateways[ChainId.CASPER] = CasperGateway(casper_config)
    if ChainId.ETHEREUM not in gateways:
        gateways[ChainId.ETHEREUM] = EthereumGateway(ethereum_config)
    casper = gateways[ChainId.CASPER]
    ethereum = gateways[ChainId.ETHEREUM]

    signer = Signer.from_config(config)
    account_locks: Dict[str, asyncio.Lock] = {}

    lock_direction = build_direction(
        context,
        source_gateway=casper,
        decoder=CasperLockDecoder(casper_config.verifier_id),
        destination_gateway=ethereum,
        transaction_builder=EthereumMintBuilder(ethereum_config, ethereum),
        signer=signer,
        account_locks=account_locks,
    )
    burn_direction = build_direction(
        context,
        source_gateway=ethereum,
        decoder=EthereumBurnDecoder(ethereum_config.verifier_id),
        destination_gateway=casper,
        transaction_builder=CasperReleaseBuilder(casper_config),
        signer=signer,
        account_locks=account_locks,
    )
    return BridgeOrchestrator(context, [lock_direction, burn_direction])
