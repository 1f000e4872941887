"""
Casper ledger gateway.

JSON-RPC 2.0 over aiohttp against a Casper node (``/rpc``). Understands both
the 1.x block/deploy layouts and the 2.0 ``Version2`` layouts so the relayer
keeps working across the network upgrade.
"""

import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp

from ....errors import (
    ErrorCategory,
    RelayerError,
    SubmissionRejectedError,
    TransientIOError,
    create_transient_error,
)
from ...bridge_types import ChainId, RawEvent, TransactionResult, TxStatus
from ...config import ChainConfig
from ...gateway import LedgerGateway


class CasperRPCError(RelayerError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.NETWORK, **kwargs)
        self.code = code
        self.method = method

    @property
    def is_not_found(self) -> bool:
        return "no such" in self.message.lower()

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"code": self.code, "method": self.method})
        return data


def execution_status(deploy_info: Mapping[str, Any]) -> TransactionResult:
    """Execution outcome from an ``info_get_deploy`` result."""
    execution = (deploy_info.get("execution_info") or {}).get("execution_result")
    if execution is None:
        results = deploy_info.get("execution_results") or []
        execution = results[0].get("result") if results else None
    if not execution:
        return TransactionResult(TxStatus.PENDING, "not executed yet")

    if "Version2" in execution:
        error = execution["Version2"].get("error_message")
        if error is None:
            return TransactionResult(TxStatus.SUCCESS)
        return TransactionResult(TxStatus.REJECTED, error)

    execution = execution.get("Version1", execution)
    if "Success" in execution:
        return TransactionResult(TxStatus.SUCCESS)
    if "Failure" in execution:
        return TransactionResult(
            TxStatus.REJECTED, (execution["Failure"] or {}).get("error_message")
        )
    return TransactionResult(TxStatus.PENDING, "unrecognised execution result")


def block_summary(result: Mapping[str, Any]) -> Tuple[int, List[str]]:
    """Height and deploy hashes of a ``chain_get_block`` result."""
    if "block_with_signatures" in result:
        versioned = result["block_with_signatures"]["block"]
        block = versioned.get("Version2") or versioned.get("Version1")
    else:
        block = result.get("block")
    if not block:
        raise KeyError("block")

    body = block.get("body") or {}
    deploy_hashes = list(body.get("deploy_hashes") or [])
    lanes = body.get("transactions")
    if isinstance(lanes, Mapping):
        for lane in lanes.values():
            for entry in lane:
                if "Deploy" in entry:
                    deploy_hashes.append(entry["Deploy"])
    return block["header"]["height"], deploy_hashes


class CasperGateway(LedgerGateway):
    """``LedgerGateway`` over a Casper node's JSON-RPC endpoint."""

    chain = ChainId.CASPER

    def __init__(self, config: ChainConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.session = session
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
        return self.session

    async def _request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Make a JSON-RPC request to the node."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or {},
        }

        session = await self._get_session()
        try:
            async with session.post(self.config.rpc_url, json=payload) as response:
                if response.status != 200:
                    raise TransientIOError(
                        f"HTTP {response.status} from {method}",
                        endpoint=self.config.rpc_url,
                        operation=method,
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise create_transient_error(self.config.rpc_url, method, e)

        if not isinstance(body, dict):
            raise TransientIOError(
                f"Response to {method} is not a JSON object",
                endpoint=self.config.rpc_url,
                operation=method,
            )

        error = body.get("error")
        if error:
            raise CasperRPCError(
                error.get("message", "unknown RPC error"),
                code=error.get("code"),
                method=method,
            )
        return body.get("result") or {}

    async def _read(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Read-path request; node-side errors count as transient."""
        try:
            return await self._request(method, params)
        except CasperRPCError as e:
            raise create_transient_error(self.config.rpc_url, method, e)

    async def _get_block(self, identifier: Optional[Dict[str, Any]] = None) -> Tuple[int, List[str]]:
        params = {"block_identifier": identifier} if identifier else None
        result = await self._read("chain_get_block", params)
        try:
            return block_summary(result)
        except (KeyError, TypeError) as e:
            raise create_transient_error(self.config.rpc_url, "chain_get_block", e)

    async def _get_deploy(self, deploy_hash: str) -> Optional[Dict[str, Any]]:
        try:
            return await self._request("info_get_deploy", {"deploy_hash": deploy_hash})
        except CasperRPCError as e:
            if e.is_not_found:
                return None
            raise create_transient_error(self.config.rpc_url, "info_get_deploy", e)

    async def get_finalized_head(self) -> int:
        height, _ = await self._get_block()
        return height

    async def scan_range(self, from_exclusive: int, to_inclusive: int) -> List[RawEvent]:
        """Every deploy in blocks ``(from_exclusive, to_inclusive]`` with its execution info."""
        events: List[RawEvent] = []
        for height in range(from_exclusive + 1, to_inclusive + 1):
            _, deploy_hashes = await self._get_block({"Height": height})
            for index, deploy_hash in enumerate(deploy_hashes):
                info = await self._get_deploy(deploy_hash)
                if info is None:
                    raise TransientIOError(
                        f"Deploy {deploy_hash} in block {height} is not indexed yet",
                        endpoint=self.config.rpc_url,
                        operation="info_get_deploy",
                    )
                events.append(
                    RawEvent(
                        chain=self.chain,
                        tx_id=deploy_hash,
                        block=height,
                        index=index,
                        payload={"deploy": info.get("deploy") or {}, "execution": info},
                    )
                )
        return events

    async def get_transaction_result(self, tx_id: str) -> TransactionResult:
        info = await self._get_deploy(tx_id)
        if info is None:
            return TransactionResult(TxStatus.PENDING, "deploy not found")
        return execution_status(info)

    async def broadcast(self, signed_tx: bytes) -> str:
        try:
            deploy = json.loads(signed_tx.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise SubmissionRejectedError(
                f"Deploy is not valid JSON: {e}", reason="malformed deploy", cause=e
            )

        try:
            result = await self._request("account_put_deploy", {"deploy": deploy})
        except CasperRPCError as e:
            if "duplicate" in e.message.lower():
                return deploy["hash"]
            raise SubmissionRejectedError(
                f"Node refused deploy: {e.message}",
                destination_tx_id=deploy.get("hash"),
                reason=e.message,
                cause=e,
            )
        return result.get("deploy_hash") or deploy["hash"]

    async def fetch_transaction(self, tx_id: str) -> Optional[RawEvent]:
        info = await self._get_deploy(tx_id)
        if info is None or execution_status(info).status is TxStatus.PENDING:
            return None

        block = (info.get("execution_info") or {}).get("block_height")
        if block is None:
            results = info.get("execution_results") or [{}]
            block_hash = results[0].get("block_hash")
            block = (await self._get_block({"Hash": block_hash}))[0] if block_hash else 0

        return RawEvent(
            chain=self.chain,
            tx_id=tx_id,
            block=block,
            index=0,
            payload={"deploy": info.get("deploy") or {}, "execution": info},
        )

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
