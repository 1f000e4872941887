"""
Hash functions used by the bridge encodings.

Keccak-256 (Ethereum, including Solidity ``abi.encodePacked`` hashing) and
BLAKE2b-256 (Casper deploy and body hashes).
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Sequence, Union

from web3 import Web3


@dataclass(frozen=True)
class Hash:
    """Immutable 32-byte hash value."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != 32:
            raise ValueError("Hash must be exactly 32 bytes")

    def __str__(self) -> str:
        return self.value.hex()

    def __repr__(self) -> str:
        return f"Hash('{self.value.hex()}')"

    @classmethod
    def from_hex(cls, hex_string: str) -> "Hash":
        """Create a Hash from a hexadecimal string (``0x`` optional)."""
        if hex_string.startswith(("0x", "0X")):
            hex_string = hex_string[2:]
        return cls(bytes.fromhex(hex_string))

    def to_hex(self, prefixed: bool = False) -> str:
        """Convert hash to hexadecimal string."""
        return ("0x" if prefixed else "") + self.value.hex()


class Keccak256Hasher:
    """Keccak-256 as used by the EVM."""

    @staticmethod
    def hash(data: Union[bytes, str]) -> Hash:
        """
        Hash raw data with Keccak-256.

        Args:
            data: Data to hash (bytes or UTF-8 string)

        Returns:
            Hash object containing the digest
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        return Hash(bytes(Web3.keccak(data)))

    @staticmethod
    def solidity_packed(types: Sequence[str], values: Sequence[Any]) -> Hash:
        """
        Keccak-256 over Solidity ``abi.encodePacked(values)``.

        Args:
            types: Solidity type names, one per value
            values: Values to pack

        Returns:
            Hash object matching ``keccak256(abi.encodePacked(...))`` on-chain
        """
        return Hash(bytes(Web3.solidity_keccak(list(types), list(values))))


class Blake2bHasher:
    """BLAKE2b with a 32-byte digest, the Casper hash function."""

    @staticmethod
    def hash(data: Union[bytes, str]) -> Hash:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return Hash(hashlib.blake2b(data, digest_size=32).digest())
