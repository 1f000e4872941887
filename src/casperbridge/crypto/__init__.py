"""
Cryptographic primitives for the relayer.

This module provides:
- Keccak-256 and BLAKE2b-256 hashing
- secp256k1 recoverable (EIP-191) and Ed25519 signing keys
- Signature verification mirroring the destination verifiers
- Key material loading
"""

from .hashing import Blake2bHasher, Hash, Keccak256Hasher
from .signatures import (
    Ed25519Key,
    Secp256k1RecoverableKey,
    SignatureScheme,
    SigningKey,
    address_from_public_key,
    load_signing_key,
    recover_signer,
    verify_ed25519,
    verify_signature,
)

__all__ = [
    "Hash",
    "Keccak256Hasher",
    "Blake2bHasher",
    "SignatureScheme",
    "SigningKey",
    "Secp256k1RecoverableKey",
    "Ed25519Key",
    "address_from_public_key",
    "load_signing_key",
    "recover_signer",
    "verify_ed25519",
    "verify_signature",
]
