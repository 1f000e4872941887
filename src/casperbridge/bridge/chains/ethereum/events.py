"""
Ethereum wrapper contract ABI and burn event decoding.

The wrapped-CSPR contract emits::

    AssetBurned(address indexed user, uint256 amount,
                string destinationChain, string destinationAddress,
                uint256 indexed nonce)

when a holder burns tokens to receive CSPR on Casper.
"""

import re
from typing import Any, Dict, List, Optional

from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import LogTopicError, MismatchedABI

from ....errors import MalformedEventError
from ...bridge_types import ChainId, DomainEvent, EventKind, RawEvent
from ...proof_builder import derive_nonce
from ...watcher import EventDecoder

ASSET_BURNED_SIGNATURE = "AssetBurned(address,uint256,string,string,uint256)"
ASSET_BURNED_TOPIC = Web3.to_hex(Web3.keccak(text=ASSET_BURNED_SIGNATURE))

WRAPPER_ABI: List[Dict[str, Any]] = [
    {
        "type": "event",
        "name": "AssetBurned",
        "anonymous": False,
        "inputs": [
            {"name": "user", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "destinationChain", "type": "string", "indexed": False},
            {"name": "destinationAddress", "type": "string", "indexed": False},
            {"name": "nonce", "type": "uint256", "indexed": True},
        ],
    },
    {
        "type": "event",
        "name": "AssetMinted",
        "anonymous": False,
        "inputs": [
            {"name": "user", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "sourceChain", "type": "string", "indexed": False},
            {"name": "sourceTxHash", "type": "string", "indexed": False},
            {"name": "nonce", "type": "uint256", "indexed": True},
        ],
    },
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "proof",
                "type": "tuple",
                "components": [
                    {"name": "sourceChain", "type": "string"},
                    {"name": "sourceTxHash", "type": "string"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "recipient", "type": "address"},
                    {"name": "nonce", "type": "uint256"},
                    {"name": "validatorSignatures", "type": "bytes[]"},
                ],
            }
        ],
        "outputs": [],
    },
]

# Casper account public key (ed25519 / secp256k1) or account hash
CASPER_ADDRESS_PATTERN = re.compile(
    r"^(01[0-9a-fA-F]{64}|02[0-9a-fA-F]{66}|account-hash-[0-9a-fA-F]{64})$"
)


def normalize_topic(topic: Any) -> str:
    if isinstance(topic, (bytes, bytearray)):
        return Web3.to_hex(topic)
    return str(topic).lower()


class EthereumBurnDecoder(EventDecoder):
    """Decodes ``AssetBurned`` logs of one wrapper contract."""

    chain = ChainId.ETHEREUM

    def __init__(self, contract_address: str):
        self.contract_address = Web3.to_checksum_address(contract_address)
        self._event = (
            Web3()
            .eth.contract(address=self.contract_address, abi=WRAPPER_ABI)
            .events.AssetBurned()
        )

    def decode(self, raw: RawEvent) -> Optional[DomainEvent]:
        log = raw.payload
        topics = log.get("topics") or []
        if not topics or normalize_topic(topics[0]) != ASSET_BURNED_TOPIC:
            return None
        if log.get("removed"):
            return None

        address = log.get("address")
        if address and Web3.to_checksum_address(address) != self.contract_address:
            return None

        try:
            decoded = self._event.process_log(log)
        except (DecodingError, MismatchedABI, LogTopicError, ValueError, TypeError) as e:
            raise MalformedEventError(
                f"AssetBurned log does not decode: {e}",
                chain=self.chain.value,
                tx_id=raw.tx_id,
                cause=e,
            )

        args = decoded["args"]
        amount = args["amount"]
        if amount <= 0:
            raise MalformedEventError(
                "Burn amount must be positive", chain=self.chain.value, tx_id=raw.tx_id
            )

        destination_chain = args["destinationChain"].strip().lower()
        if destination_chain != ChainId.CASPER.value:
            raise MalformedEventError(
                f"Unsupported destination chain '{args['destinationChain']}'",
                chain=self.chain.value,
                tx_id=raw.tx_id,
            )

        destination_address = args["destinationAddress"].strip()
        if not CASPER_ADDRESS_PATTERN.match(destination_address):
            raise MalformedEventError(
                f"'{destination_address}' is not a Casper account",
                chain=self.chain.value,
                tx_id=raw.tx_id,
            )

        derive_nonce(raw.tx_id)

        return DomainEvent(
            kind=EventKind.BURNED,
            source_chain=ChainId.ETHEREUM,
            source_tx_id=raw.tx_id,
            amount=amount,
            destination_chain=ChainId.CASPER,
            destination_address=destination_address,
            sender_address=args["user"],
            observed_at_block=raw.block,
            log_index=raw.index,
        )
