"""
Ethereum ledger gateway.

Wraps a blocking ``Web3.HTTPProvider`` client; every call runs on the
event loop's default executor so the pipeline never blocks on RPC.
"""

import asyncio
import functools
from typing import Any, Callable, List, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3RPCError

from ....errors import SubmissionRejectedError, create_transient_error
from ...bridge_types import ChainId, RawEvent, TransactionResult, TxStatus
from ...config import ChainConfig
from ...gateway import LedgerGateway
from .events import ASSET_BURNED_TOPIC, normalize_topic

# Broadcast errors meaning the node already holds this exact transaction
_ALREADY_KNOWN = ("already known", "known transaction")


class EthereumGateway(LedgerGateway):
    """``LedgerGateway`` over a JSON-RPC Ethereum node."""

    chain = ChainId.ETHEREUM

    def __init__(self, config: ChainConfig, w3: Optional[Web3] = None):
        self.config = config
        self.contract_address = Web3.to_checksum_address(config.verifier_id)
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(
                config.rpc_url, request_kwargs={"timeout": config.request_timeout}
            )
        )

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args))
        except TransactionNotFound:
            raise
        except Exception as e:
            raise create_transient_error(self.config.rpc_url, operation, e)

    async def get_finalized_head(self) -> int:
        return await self._call("eth_blockNumber", lambda: self.w3.eth.block_number)

    async def scan_range(self, from_exclusive: int, to_inclusive: int) -> List[RawEvent]:
        """``AssetBurned`` logs in ``(from_exclusive, to_inclusive]``, chunked per query."""
        events: List[RawEvent] = []
        chunk = self.config.max_blocks_per_query
        start = from_exclusive + 1

        while start <= to_inclusive:
            end = min(start + chunk - 1, to_inclusive)
            logs = await self._call(
                "eth_getLogs",
                self.w3.eth.get_logs,
                {
                    "address": self.contract_address,
                    "fromBlock": start,
                    "toBlock": end,
                    "topics": [ASSET_BURNED_TOPIC],
                },
            )
            events.extend(self._to_raw_event(log) for log in logs)
            start = end + 1

        return events

    async def get_transaction_result(self, tx_id: str) -> TransactionResult:
        try:
            receipt = await self._call(
                "eth_getTransactionReceipt", self.w3.eth.get_transaction_receipt, tx_id
            )
        except TransactionNotFound:
            return TransactionResult(TxStatus.PENDING, "receipt not available")

        if receipt is None:
            return TransactionResult(TxStatus.PENDING, "receipt not available")
        if receipt["status"] == 1:
            return TransactionResult(
                TxStatus.SUCCESS, f"included in block {receipt['blockNumber']}"
            )
        return TransactionResult(
            TxStatus.REJECTED, f"execution reverted in block {receipt['blockNumber']}"
        )

    async def broadcast(self, signed_tx: bytes) -> str:
        loop = asyncio.get_running_loop()
        try:
            tx_hash = await loop.run_in_executor(
                None, self.w3.eth.send_raw_transaction, signed_tx
            )
        except Web3RPCError as e:
            message = str(e).lower()
            if any(marker in message for marker in _ALREADY_KNOWN):
                return Web3.to_hex(Web3.keccak(signed_tx))
            raise SubmissionRejectedError(
                f"Node refused transaction: {e}", reason=str(e), cause=e
            )
        except Exception as e:
            raise create_transient_error(self.config.rpc_url, "eth_sendRawTransaction", e)
        return _to_hex(tx_hash)

    async def fetch_transaction(self, tx_id: str) -> Optional[RawEvent]:
        """First wrapper log of an executed transaction; ``None`` until mined."""
        try:
            receipt = await self._call(
                "eth_getTransactionReceipt", self.w3.eth.get_transaction_receipt, tx_id
            )
        except TransactionNotFound:
            return None
        if receipt is None:
            return None

        for log in receipt["logs"]:
            topics = log["topics"]
            if (
                Web3.to_checksum_address(log["address"]) == self.contract_address
                and topics
                and normalize_topic(topics[0]) == ASSET_BURNED_TOPIC
            ):
                return self._to_raw_event(log)

        # executed, but not a bridge transaction
        return RawEvent(
            chain=self.chain,
            tx_id=tx_id,
            block=receipt["blockNumber"],
            index=0,
            payload={},
        )

    async def get_transaction_count(self, address: str) -> int:
        """Pending-inclusive transaction count of ``address``."""
        return await self._call(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count,
            address,
            "pending",
        )

    async def get_gas_price(self) -> int:
        return await self._call("eth_gasPrice", lambda: self.w3.eth.gas_price)

    def _to_raw_event(self, log: Any) -> RawEvent:
        return RawEvent(
            chain=self.chain,
            tx_id=_to_hex(log["transactionHash"]),
            block=log["blockNumber"],
            index=log["logIndex"],
            payload=log,
        )


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)
