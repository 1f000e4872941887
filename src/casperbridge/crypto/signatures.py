"""
Signing keys for the two attestation schemes the bridge uses.

- secp256k1 with recoverable ECDSA over EIP-191 personal-sign digests
  (Ethereum verifier recovers the signer address).
- Ed25519 over raw message bytes (Casper verifier checks against the
  supplied 32-byte public key).
"""

import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_pem_private_key,
)
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from ..errors import CryptographicError
from .hashing import Keccak256Hasher

# secp256k1 group order
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class SignatureScheme(Enum):
    """Attestation signature schemes."""

    SECP256K1_RECOVERABLE = "secp256k1-recoverable"
    ED25519 = "ed25519"


class SigningKey(ABC):
    """Long-lived private key for one signature scheme."""

    scheme: SignatureScheme

    @abstractmethod
    def public_key_bytes(self) -> bytes:
        """Public key in the encoding the destination verifier expects."""

    @abstractmethod
    def sign(self, payload: bytes) -> bytes:
        """Sign ``payload`` and return the raw signature bytes."""

    @abstractmethod
    def verify(self, payload: bytes, signature: bytes) -> bool:
        """Check a signature produced by this key."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}('{self.public_key_bytes().hex()[:16]}...')"


class Secp256k1RecoverableKey(SigningKey):
    """secp256k1 key signing 32-byte digests with the EIP-191 prefix."""

    scheme = SignatureScheme.SECP256K1_RECOVERABLE

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != 32:
            raise CryptographicError(
                "Private key must be exactly 32 bytes",
                algorithm="secp256k1",
                key_type="private",
            )
        value = int.from_bytes(key_bytes, byteorder="big")
        if not 0 < value < SECP256K1_ORDER:
            raise CryptographicError(
                "Private key is outside the secp256k1 group order",
                algorithm="secp256k1",
                key_type="private",
            )
        self._account = Account.from_key(key_bytes)
        self._ec_key = ec.derive_private_key(value, ec.SECP256K1())

    @classmethod
    def generate(cls) -> "Secp256k1RecoverableKey":
        """Generate a new random key."""
        key = ec.generate_private_key(ec.SECP256K1())
        return cls(key.private_numbers().private_value.to_bytes(32, byteorder="big"))

    @classmethod
    def from_hex(cls, hex_string: str) -> "Secp256k1RecoverableKey":
        return cls(_hex_to_bytes(hex_string))

    @property
    def address(self) -> str:
        """Checksummed EVM address of this key."""
        return self._account.address

    def public_key_bytes(self) -> bytes:
        """Compressed SEC1 public key (33 bytes)."""
        return self._ec_key.public_key().public_bytes(
            Encoding.X962, PublicFormat.CompressedPoint
        )

    def sign(self, payload: bytes) -> bytes:
        """Sign a 32-byte digest; returns 65 bytes ``r || s || v``."""
        if len(payload) != 32:
            raise CryptographicError(
                "Recoverable signatures are taken over 32-byte digests",
                algorithm="secp256k1",
            )
        signed = self._account.sign_message(encode_defunct(primitive=payload))
        return bytes(signed.signature)

    def verify(self, payload: bytes, signature: bytes) -> bool:
        return recover_signer(payload, signature) == self.address

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        """Sign an EVM transaction dict and return the raw envelope."""
        signed = self._account.sign_transaction(transaction)
        raw = getattr(signed, "raw_transaction", None) or getattr(
            signed, "rawTransaction"
        )
        return bytes(raw)


class Ed25519Key(SigningKey):
    """Ed25519 key signing raw message bytes."""

    scheme = SignatureScheme.ED25519

    def __init__(self, key: ed25519.Ed25519PrivateKey):
        self._key = key

    @classmethod
    def generate(cls) -> "Ed25519Key":
        """Generate a new random key."""
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_bytes(cls, key_bytes: bytes) -> "Ed25519Key":
        if len(key_bytes) != 32:
            raise CryptographicError(
                "Ed25519 seed must be exactly 32 bytes",
                algorithm="ed25519",
                key_type="private",
            )
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(key_bytes))

    @classmethod
    def from_hex(cls, hex_string: str) -> "Ed25519Key":
        return cls.from_bytes(_hex_to_bytes(hex_string))

    @classmethod
    def from_pem(cls, pem: bytes) -> "Ed25519Key":
        """Load a PEM key as written by the Casper keygen tooling."""
        key = load_pem_private_key(pem, password=None)
        if not isinstance(key, ed25519.Ed25519PrivateKey):
            raise CryptographicError(
                "PEM file does not hold an Ed25519 key",
                algorithm="ed25519",
                key_type="private",
            )
        return cls(key)

    def public_key_bytes(self) -> bytes:
        """Raw 32-byte public key."""
        return self._key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    @property
    def account_hex(self) -> str:
        """Casper account public key: ``01`` algorithm tag + key hex."""
        return "01" + self.public_key_bytes().hex()

    def sign(self, payload: bytes) -> bytes:
        return self._key.sign(payload)

    def verify(self, payload: bytes, signature: bytes) -> bool:
        return verify_ed25519(self.public_key_bytes(), payload, signature)


def recover_signer(digest: bytes, signature: bytes) -> str:
    """Address that produced a recoverable signature over ``digest``."""
    return Account.recover_message(encode_defunct(primitive=digest), signature=signature)


def address_from_public_key(public_key: bytes) -> str:
    """EVM address for a compressed or uncompressed secp256k1 public key."""
    point = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)
    uncompressed = point.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    raw = Keccak256Hasher.hash(uncompressed[1:]).value[-20:]
    return Web3.to_checksum_address("0x" + raw.hex())


def verify_ed25519(public_key: bytes, payload: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 signature against a raw 32-byte public key."""
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(
            signature, payload
        )
        return True
    except (InvalidSignature, ValueError):
        return False


def verify_signature(
    scheme: SignatureScheme, public_key: bytes, payload: bytes, signature: bytes
) -> bool:
    """Check an attestation the way the destination verifier would."""
    if scheme is SignatureScheme.ED25519:
        return verify_ed25519(public_key, payload, signature)
    try:
        return recover_signer(payload, signature) == address_from_public_key(public_key)
    except (ValueError, TypeError):
        return False


def load_signing_key(scheme: SignatureScheme, reference: Union[str, bytes]) -> SigningKey:
    """
    Load key material for ``scheme``.

    ``reference`` is either hex (``0x`` optional) or a path to a file holding
    hex text or, for Ed25519, a PEM private key.
    """
    if isinstance(reference, bytes):
        material = reference
    elif os.path.isfile(reference):
        with open(reference, "rb") as handle:
            material = handle.read()
    else:
        material = reference.encode("utf-8")

    try:
        if b"-----BEGIN" in material:
            if scheme is not SignatureScheme.ED25519:
                raise CryptographicError(
                    "PEM key material is only supported for ed25519",
                    algorithm=scheme.value,
                )
            return Ed25519Key.from_pem(material)

        key_bytes = _hex_to_bytes(material.decode("utf-8").strip())
    except (ValueError, UnicodeDecodeError) as e:
        raise CryptographicError(
            f"Unreadable {scheme.value} key material: {e}", algorithm=scheme.value
        )

    if scheme is SignatureScheme.ED25519:
        return Ed25519Key.from_bytes(key_bytes)
    return Secp256k1RecoverableKey(key_bytes)


def _hex_to_bytes(hex_string: str) -> bytes:
    if hex_string.startswith(("0x", "0X")):
        hex_string = hex_string[2:]
    return bytes.fromhex(hex_string)
