"""
Casper deploys for ``release_cspr``.

Builds the JSON deploy accepted by ``account_put_deploy``. Body and deploy
hashes are BLAKE2b-256 over the node's ``bytesrepr`` encoding, so the small
subset of CLValue serialization the release call needs lives here:

- ``U64``, ``U512``, ``String`` and ``List<ByteArray(n)>`` values
- ``ModuleBytes`` (standard payment) and ``StoredContractByHash`` items
- the deploy header
"""

import json
import struct
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ....crypto.hashing import Blake2bHasher
from ....crypto.signatures import Ed25519Key, SignatureScheme, load_signing_key
from ...bridge_types import BridgeProof, ChainId
from ...config import ChainConfig
from ...executor import TransactionBuilder
from .events import strip_hash_prefix

RELEASE_ENTRY_POINT = "release_cspr"
DEFAULT_TTL_MS = 30 * 60 * 1000
DEFAULT_GAS_PRICE = 1
ED25519_TAG = 0x01

# CLType tags
CL_U64 = 5
CL_U512 = 8
CL_STRING = 10
CL_LIST = 14
CL_BYTE_ARRAY = 15

U512_MAX = 2**512 - 1


def _u32(value: int) -> bytes:
    return struct.pack("<I", value)


def _u64(value: int) -> bytes:
    return struct.pack("<Q", value)


def _string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return _u32(len(encoded)) + encoded


def _u512(value: int) -> bytes:
    if not 0 <= value <= U512_MAX:
        raise ValueError(f"{value} does not fit in U512")
    if value == 0:
        return b"\x00"
    raw = value.to_bytes((value.bit_length() + 7) // 8, "little")
    return bytes([len(raw)]) + raw


@dataclass(frozen=True)
class CLValue:
    """Serialized value plus its CLType, in both bytesrepr and JSON form."""

    cl_type: Any
    type_bytes: bytes
    value_bytes: bytes
    parsed: Any

    def serialize(self) -> bytes:
        return _u32(len(self.value_bytes)) + self.value_bytes + self.type_bytes

    def to_json(self) -> Dict[str, Any]:
        return {
            "cl_type": self.cl_type,
            "bytes": self.value_bytes.hex(),
            "parsed": self.parsed,
        }

    @classmethod
    def u64(cls, value: int) -> "CLValue":
        return cls("U64", bytes([CL_U64]), _u64(value), value)

    @classmethod
    def u512(cls, value: int) -> "CLValue":
        return cls("U512", bytes([CL_U512]), _u512(value), str(value))

    @classmethod
    def string(cls, value: str) -> "CLValue":
        return cls("String", bytes([CL_STRING]), _string(value), value)

    @classmethod
    def byte_array_list(cls, items: Sequence[bytes]) -> "CLValue":
        if not items:
            raise ValueError("Byte array lists must not be empty")
        size = len(items[0])
        if any(len(item) != size for item in items):
            raise ValueError("All byte arrays in a list must share one length")
        return cls(
            {"List": {"ByteArray": size}},
            bytes([CL_LIST, CL_BYTE_ARRAY]) + _u32(size),
            _u32(len(items)) + b"".join(items),
            [item.hex() for item in items],
        )


RuntimeArgs = List[Tuple[str, CLValue]]


def serialize_args(args: RuntimeArgs) -> bytes:
    return _u32(len(args)) + b"".join(_string(name) + value.serialize() for name, value in args)


def args_to_json(args: RuntimeArgs) -> List[List[Any]]:
    return [[name, value.to_json()] for name, value in args]


def serialize_module_bytes(args: RuntimeArgs, module_bytes: bytes = b"") -> bytes:
    return bytes([0]) + _u32(len(module_bytes)) + module_bytes + serialize_args(args)


def serialize_stored_contract_by_hash(contract_hash: bytes, entry_point: str, args: RuntimeArgs) -> bytes:
    return bytes([1]) + contract_hash + _string(entry_point) + serialize_args(args)


def format_timestamp(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{timestamp_ms % 1000:03d}Z"


def format_ttl(ttl_ms: int) -> str:
    if ttl_ms % 60_000 == 0:
        return f"{ttl_ms // 60_000}m"
    return f"{ttl_ms}ms"


def release_args(proof: BridgeProof) -> RuntimeArgs:
    """Runtime arguments of ``release_cspr`` for ``proof``."""
    message = proof.message
    attestations = [
        attestation
        for attestation in proof.attestations
        if attestation.scheme is SignatureScheme.ED25519
    ]
    if not attestations:
        raise ValueError("Release proof carries no ed25519 attestation")

    return [
        ("source_chain", CLValue.string(message.source_chain.value)),
        ("source_tx_hash", CLValue.string(message.source_tx_id)),
        ("amount", CLValue.u512(message.amount)),
        ("recipient", CLValue.string(message.recipient_address)),
        ("nonce", CLValue.u64(message.nonce)),
        (
            "validator_public_keys",
            CLValue.byte_array_list([a.public_key for a in attestations]),
        ),
        (
            "validator_signatures",
            CLValue.byte_array_list([a.signature for a in attestations]),
        ),
    ]


class CasperReleaseBuilder(TransactionBuilder):
    """Signed ``release_cspr`` deploys from the relayer's Casper account."""

    chain = ChainId.CASPER

    def __init__(
        self,
        config: ChainConfig,
        account_key: Optional[Ed25519Key] = None,
        ttl_ms: int = DEFAULT_TTL_MS,
        gas_price: int = DEFAULT_GAS_PRICE,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.key = account_key or load_signing_key(
            SignatureScheme.ED25519, config.transaction_key
        )
        self.vault_hash = bytes.fromhex(strip_hash_prefix(config.verifier_id))
        if len(self.vault_hash) != 32:
            raise ValueError("Vault contract hash must be 32 bytes")
        self.ttl_ms = ttl_ms
        self.gas_price = gas_price
        self.clock = clock

    @property
    def account_id(self) -> str:
        return self.key.account_hex

    async def build(self, proof: BridgeProof) -> bytes:
        return json.dumps(self.make_deploy(proof)).encode("utf-8")

    def transaction_id(self, signed_tx: bytes) -> Optional[str]:
        return json.loads(signed_tx.decode("utf-8"))["hash"]

    def make_deploy(self, proof: BridgeProof) -> Dict[str, Any]:
        """JSON deploy, hashed and approved by the account key."""
        payment_args = [("amount", CLValue.u512(self.config.payment_amount))]
        session_args = release_args(proof)

        body_hash = Blake2bHasher.hash(
            serialize_module_bytes(payment_args)
            + serialize_stored_contract_by_hash(
                self.vault_hash, RELEASE_ENTRY_POINT, session_args
            )
        ).value

        timestamp_ms = int(self.clock() * 1000)
        header_bytes = (
            bytes([ED25519_TAG])
            + self.key.public_key_bytes()
            + _u64(timestamp_ms)
            + _u64(self.ttl_ms)
            + _u64(self.gas_price)
            + body_hash
            + _u32(0)  # dependencies
            + _string(self.config.network_name)
        )
        deploy_hash = Blake2bHasher.hash(header_bytes).value
        signature = self.key.sign(deploy_hash)

        return {
            "hash": deploy_hash.hex(),
            "header": {
                "account": self.key.account_hex,
                "timestamp": format_timestamp(timestamp_ms),
                "ttl": format_ttl(self.ttl_ms),
                "gas_price": self.gas_price,
                "body_hash": body_hash.hex(),
                "dependencies": [],
                "chain_name": self.config.network_name,
            },
            "payment": {
                "ModuleBytes": {"module_bytes": "", "args": args_to_json(payment_args)}
            },
            "session": {
                "StoredContractByHash": {
                    "hash": self.vault_hash.hex(),
                    "entry_point": RELEASE_ENTRY_POINT,
                    "args": args_to_json(session_args),
                }
            },
            "approvals": [
                {
                    "signer": self.key.account_hex,
                    "signature": f"{ED25519_TAG:02x}" + signature.hex(),
                }
            ],
        }
