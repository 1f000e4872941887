"""Decoding of ``lock_cspr`` deploys on the Casper vault contract."""

from typing import Any, Dict, Optional

from web3 import Web3

from ....errors import MalformedEventError
from ...bridge_types import ChainId, DomainEvent, EventKind, RawEvent, TxStatus
from ...proof_builder import derive_nonce
from ...watcher import EventDecoder
from .client import execution_status

LOCK_ENTRY_POINT = "lock_cspr"
REQUIRED_ARGS = ("amount", "destination_chain", "destination_address")


def strip_hash_prefix(contract_hash: str) -> str:
    contract_hash = contract_hash.strip().lower()
    if contract_hash.startswith("hash-"):
        contract_hash = contract_hash[len("hash-") :]
    return contract_hash


class CasperLockDecoder(EventDecoder):
    """Turns successful ``lock_cspr`` calls on one vault into ``LOCKED`` events."""

    chain = ChainId.CASPER

    def __init__(self, vault_hash: str):
        self.vault_hash = strip_hash_prefix(vault_hash)

    def decode(self, raw: RawEvent) -> Optional[DomainEvent]:
        deploy = raw.payload.get("deploy") or {}
        stored = (deploy.get("session") or {}).get("StoredContractByHash")
        if not stored:
            return None
        if strip_hash_prefix(stored.get("hash") or "") != self.vault_hash:
            return None
        if stored.get("entry_point") != LOCK_ENTRY_POINT:
            return None
        if execution_status(raw.payload.get("execution") or {}).status is not TxStatus.SUCCESS:
            return None

        args = self._named_args(stored.get("args"), raw)
        missing = [name for name in REQUIRED_ARGS if args.get(name) in (None, "")]
        if missing:
            raise self._malformed(raw, f"lock_cspr deploy is missing {', '.join(missing)}")

        try:
            amount = int(str(args["amount"]))
        except ValueError:
            raise self._malformed(raw, f"Amount '{args['amount']}' is not an integer")
        if amount <= 0:
            raise self._malformed(raw, "Lock amount must be positive")

        destination_chain = str(args["destination_chain"]).strip().lower()
        if destination_chain != ChainId.ETHEREUM.value:
            raise self._malformed(
                raw, f"Unsupported destination chain '{args['destination_chain']}'"
            )

        destination_address = str(args["destination_address"]).strip()
        if not Web3.is_address(destination_address):
            raise self._malformed(raw, f"'{destination_address}' is not an EVM address")

        derive_nonce(raw.tx_id)

        return DomainEvent(
            kind=EventKind.LOCKED,
            source_chain=ChainId.CASPER,
            source_tx_id=raw.tx_id,
            amount=amount,
            destination_chain=ChainId.ETHEREUM,
            destination_address=Web3.to_checksum_address(destination_address),
            sender_address=(deploy.get("header") or {}).get("account", ""),
            observed_at_block=raw.block,
            log_index=raw.index,
        )

    def _named_args(self, args: Any, raw: RawEvent) -> Dict[str, Any]:
        """``[[name, {"cl_type", "bytes", "parsed"}], ...]`` -> ``{name: parsed}``."""
        if not isinstance(args, list):
            raise self._malformed(raw, "lock_cspr deploy has no argument list")

        named = {}
        for entry in args:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise self._malformed(raw, f"Unreadable runtime argument {entry!r}")
            name, value = entry
            named[name] = value.get("parsed") if isinstance(value, dict) else None
        return named

    def _malformed(self, raw: RawEvent, message: str) -> MalformedEventError:
        return MalformedEventError(message, chain=self.chain.value, tx_id=raw.tx_id)
