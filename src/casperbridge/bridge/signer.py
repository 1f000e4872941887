"""Attestation signing with one long-lived key per signature scheme."""

from typing import Dict, Mapping

from ..crypto.signatures import (
    SignatureScheme,
    SigningKey,
    load_signing_key,
    verify_signature,
)
from ..errors import CryptographicError
from .bridge_types import CHAIN_PROFILES, Attestation, CanonicalMessage, ChainId
from .config import RelayerConfig
from .proof_builder import encode_message


class Signer:
    """
    Produces attestations over canonical messages.

    The scheme is chosen by the destination chain: the Ethereum verifier
    recovers secp256k1 signatures over an EIP-191 digest, the Casper
    verifier checks Ed25519 signatures over raw message bytes. Keys are
    read-only after construction.
    """

    def __init__(self, keys: Mapping[SignatureScheme, SigningKey]):
        for scheme, key in keys.items():
            if key.scheme is not scheme:
                raise CryptographicError(
                    f"Key registered for {scheme.value} is a {key.scheme.value} key",
                    algorithm=scheme.value,
                )
        self._keys: Dict[SignatureScheme, SigningKey] = dict(keys)

    @classmethod
    def from_config(cls, config: RelayerConfig) -> "Signer":
        """Load the attestation key of every destination chain."""
        keys = {}
        for chain in ChainId:
            scheme = CHAIN_PROFILES[chain].scheme
            keys[scheme] = load_signing_key(scheme, config.chain(chain).attestation_key)
        return cls(keys)

    @property
    def schemes(self):
        return frozenset(self._keys)

    def key_for(self, scheme: SignatureScheme) -> SigningKey:
        try:
            return self._keys[scheme]
        except KeyError:
            raise CryptographicError(
                f"No {scheme.value} key loaded", algorithm=scheme.value
            )

    def sign(self, message: CanonicalMessage, scheme: SignatureScheme) -> Attestation:
        """Sign ``message`` with the ``scheme`` its destination verifier expects."""
        expected = CHAIN_PROFILES[message.destination_chain].scheme
        if scheme is not expected:
            raise CryptographicError(
                f"{message.destination_chain.value} verifies {expected.value} "
                f"signatures, not {scheme.value}",
                algorithm=scheme.value,
            )

        key = self.key_for(scheme)
        signature = key.sign(encode_message(message))
        return Attestation(
            public_key=key.public_key_bytes(), signature=signature, scheme=scheme
        )

    def sign_for_destination(self, message: CanonicalMessage) -> Attestation:
        return self.sign(message, CHAIN_PROFILES[message.destination_chain].scheme)

    @staticmethod
    def verify(message: CanonicalMessage, attestation: Attestation) -> bool:
        """Check ``attestation`` the way the destination verifier does."""
        return verify_signature(
            attestation.scheme,
            attestation.public_key,
            encode_message(message),
            attestation.signature,
        )
