"""
Chain watcher.

Polls one ledger gateway and yields finalized bridge events as a lazy,
infinite, non-restartable async stream:

- each tick reads the head; when ``head - confirmation_depth`` is past the
  cursor the half-open range ``(cursor, head - depth]`` is scanned
- the cursor moves to the scanned upper bound whether or not anything matched
- tracked transactions are looked up directly and yielded once their block
  is at or below ``head - depth``
- gateway failures are retried on a fixed backoff without moving the cursor
- a stop signal interrupts sleeps and in-flight reads immediately
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Tuple, TypeVar

from ..errors import BackoffStrategy, MalformedEventError, TransientIOError
from .bridge_types import ChainId, DomainEvent, RawEvent
from .context import BridgeContext
from .cursor import EventCursor
from .gateway import LedgerGateway

T = TypeVar("T")


class EventDecoder(ABC):
    """Turns one chain's native encoding into ``DomainEvent``."""

    chain: ChainId

    @abstractmethod
    def decode(self, raw: RawEvent) -> Optional[DomainEvent]:
        """Decode ``raw``.

        Returns ``None`` when the transaction is not a bridge event at all and
        raises ``MalformedEventError`` when it targets the bridge entry point
        but its fields do not decode.
        """


class _Stopped(Exception):
    """Raised internally when the stop signal wins a race."""


class ChainWatcher:
    """Yields finalized ``DomainEvent`` objects for one chain."""

    def __init__(
        self,
        context: BridgeContext,
        gateway: LedgerGateway,
        decoder: EventDecoder,
        cursor: Optional[EventCursor] = None,
    ):
        chain_config = context.config.chain(gateway.chain)
        if decoder.chain is not gateway.chain:
            raise ValueError(
                f"Decoder for {decoder.chain.value} cannot read {gateway.chain.value}"
            )

        self.chain = gateway.chain
        self.gateway = gateway
        self.decoder = decoder
        self.cursor = cursor or EventCursor(self.chain, chain_config.start_position)
        self.confirmation_depth = chain_config.confirmation_depth
        self.poll_interval = chain_config.poll_interval
        self.backoff = BackoffStrategy.fixed(context.config.read_retry_delay)
        self.logger = context.get_logger(
            __name__, component="watcher", chain=self.chain.value
        )

        self.last_head: Optional[int] = None
        self.consecutive_failures = 0
        self.scans = 0
        self._tracked: Dict[str, None] = {}
        self._stop_event = asyncio.Event()
        self._started = False

    # Stream

    def __aiter__(self) -> AsyncIterator[DomainEvent]:
        if self._started:
            raise RuntimeError(
                f"{self.chain.value} watcher stream is not restartable"
            )
        self._started = True
        return self._run()

    async def _run(self) -> AsyncIterator[DomainEvent]:
        self.logger.info(
            "Watcher started",
            extra={
                "cursor": self.cursor.position,
                "confirmation_depth": self.confirmation_depth,
                "poll_interval": self.poll_interval,
            },
        )
        try:
            while not self._stop_event.is_set():
                try:
                    batch = await self._tick()
                except _Stopped:
                    break
                except TransientIOError as e:
                    self.consecutive_failures += 1
                    delay = self.backoff.get_delay(self.consecutive_failures)
                    self.logger.warning(
                        f"Gateway read failed, retrying in {delay:.1f}s: {e.message}",
                        extra={
                            "cursor": self.cursor.position,
                            "consecutive_failures": self.consecutive_failures,
                        },
                    )
                    await self._sleep(delay)
                    continue

                self.consecutive_failures = 0
                for index, event in enumerate(batch):
                    if self._stop_event.is_set():
                        self.logger.info(
                            "Stop requested, leaving fetched events unprocessed",
                            extra={"dropped": len(batch) - index},
                        )
                        return
                    yield event

                await self._sleep(self.poll_interval)
        finally:
            self.logger.info("Watcher stopped", extra={"cursor": self.cursor.position})

    def stop(self) -> None:
        """Signal the stream to end; pending sleeps and reads return at once."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # Expedited checking

    def track(self, tx_id: str) -> None:
        """Check ``tx_id`` directly on every tick until it executes in a finalized block."""
        self._tracked[tx_id] = None
        self.logger.info("Tracking transaction", extra={"tx_id": tx_id})

    @property
    def tracked(self) -> List[str]:
        return list(self._tracked)

    # Tick

    async def _tick(self) -> List[DomainEvent]:
        head = await self._interruptible(self.gateway.get_finalized_head())
        self.last_head = head
        upper = head - self.confirmation_depth

        events, finalized = await self._check_tracked(upper)
        events.extend(await self._scan(head, upper))
        for tx_id in finalized:
            self._tracked.pop(tx_id, None)
        return events

    async def _scan(self, head: int, upper: int) -> List[DomainEvent]:
        if not self.cursor.is_initialized:
            start = max(upper, 0)
            self.cursor.advance(start)
            self.logger.info(
                "Cursor initialised from chain head",
                extra={"head": head, "cursor": start},
            )
            return []

        lower = self.cursor.position
        if upper <= lower:
            return []

        raw_events = await self._interruptible(self.gateway.scan_range(lower, upper))
        self.scans += 1
        decoded = self._decode_all(raw_events)
        self.cursor.advance(upper)

        self.logger.debug(
            f"Scanned ({lower}, {upper}]",
            extra={"candidates": len(raw_events), "events": len(decoded)},
        )
        return sorted(decoded, key=lambda event: event.position)

    async def _check_tracked(self, upper: int) -> Tuple[List[DomainEvent], List[str]]:
        """Decode tracked transactions executed at or below ``upper``.

        Returns the events and the ids that can stop being tracked once the
        tick completes.
        """
        events: List[DomainEvent] = []
        finalized: List[str] = []
        for tx_id in list(self._tracked):
            try:
                raw = await self._interruptible(self.gateway.fetch_transaction(tx_id))
            except TransientIOError as e:
                self.logger.warning(
                    f"Tracked transaction lookup failed: {e.message}",
                    extra={"tx_id": tx_id},
                )
                continue

            if raw is None:
                continue
            if raw.block > upper:
                self.logger.debug(
                    "Tracked transaction not final yet",
                    extra={"tx_id": tx_id, "block": raw.block, "finalized_up_to": upper},
                )
                continue

            finalized.append(tx_id)
            events.extend(self._decode_all([raw]))
        return events, finalized

    def _decode_all(self, raw_events: List[RawEvent]) -> List[DomainEvent]:
        events = []
        for raw in raw_events:
            try:
                event = self.decoder.decode(raw)
            except MalformedEventError as e:
                self.logger.warning(
                    f"Skipping malformed bridge event: {e.message}",
                    extra={"tx_id": raw.tx_id, "block": raw.block},
                )
                continue
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    f"Skipping undecodable bridge event: {e}",
                    extra={"tx_id": raw.tx_id, "block": raw.block},
                )
                continue

            if event is not None:
                events.append(event)
        return events

    # Stop-aware waiting

    async def _sleep(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _interruptible(self, operation: Awaitable[T]) -> T:
        """Await ``operation`` unless the stop signal arrives first."""
        if self._stop_event.is_set():
            if asyncio.iscoroutine(operation):
                operation.close()
            raise _Stopped()

        task = asyncio.ensure_future(operation)
        stop_wait = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, stop_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stop_wait.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise _Stopped()

    def get_status(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.value,
            "running": self._started and not self._stop_event.is_set(),
            "cursor": self.cursor.position,
            "last_head": self.last_head,
            "scans": self.scans,
            "tracked": len(self._tracked),
            "consecutive_failures": self.consecutive_failures,
        }
