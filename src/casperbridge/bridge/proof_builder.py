"""
Canonical message construction.

Turns a ``DomainEvent`` into the ``CanonicalMessage`` the destination
verifier checks:

- amounts are moved between the two chains' decimal precisions with exact
  integer arithmetic, truncating when the destination unit is coarser
- the nonce is derived from the source transaction id alone
- the byte encoding signed for each destination lives in
  ``MESSAGE_ENCODERS`` and nowhere else

The encodings must match the deployed verifiers byte for byte:

ethereum destination::

    keccak256(abi.encodePacked(string sourceChain, string sourceTxId,
                               uint256 amount, address recipient,
                               uint256 nonce))

casper destination::

    utf8("{sourceChain}|{sourceTxId}|{amount}|{nonce}") || utf8(recipient)
"""

import string
from typing import Callable, Dict, Optional

from web3 import Web3

from ..crypto.hashing import Keccak256Hasher
from ..errors import ConversionError, ErrorContext, MalformedEventError
from .bridge_types import (
    CHAIN_PROFILES,
    CanonicalMessage,
    ChainId,
    DomainEvent,
    decimal_shift,
)

NONCE_HEX_DIGITS = 8
_TX_ID_PREFIXES = ("deploy-", "hash-")
_HEX_DIGITS = frozenset(string.hexdigits)


def convert_amount(amount: int, delta: int, max_amount: Optional[int] = None) -> int:
    """
    Move ``amount`` across a decimal-exponent difference of ``delta``.

    Args:
        amount: Amount in the source smallest unit
        delta: ``destination.decimals - source.decimals``
        max_amount: Largest value the destination can represent

    Returns:
        Amount in the destination smallest unit

    Raises:
        ConversionError: If the result is zero (dust), negative, or above
            ``max_amount``
    """
    if amount < 0:
        raise ConversionError(
            f"Negative amount {amount} cannot be bridged", amount=amount, delta=delta
        )

    if delta >= 0:
        converted = amount * 10**delta
    else:
        converted = amount // 10 ** (-delta)

    if converted == 0:
        raise ConversionError(
            f"Amount {amount} truncates to zero across a shift of {delta} decimals",
            error_code="DUST",
            amount=amount,
            delta=delta,
        )
    if max_amount is not None and converted > max_amount:
        raise ConversionError(
            f"Amount {amount} overflows the destination range after a shift of {delta}",
            error_code="OVERFLOW",
            amount=amount,
            delta=delta,
        )
    return converted


def derive_nonce(source_tx_id: str) -> int:
    """Replay nonce for a source transaction: its first 8 hex digits as an integer."""
    digits = source_tx_id.strip().lower()
    if digits.startswith("0x"):
        digits = digits[2:]
    for prefix in _TX_ID_PREFIXES:
        if digits.startswith(prefix):
            digits = digits[len(prefix) :]

    head = digits[:NONCE_HEX_DIGITS]
    if len(head) < NONCE_HEX_DIGITS or not _HEX_DIGITS.issuperset(head):
        raise MalformedEventError(
            f"Transaction id '{source_tx_id}' does not start with "
            f"{NONCE_HEX_DIGITS} hex digits",
            tx_id=source_tx_id,
        )
    return int(head, 16)


def encode_ethereum_message(message: CanonicalMessage) -> bytes:
    """32-byte digest signed (with the EIP-191 prefix) for ``mint``."""
    return Keccak256Hasher.solidity_packed(
        ["string", "string", "uint256", "address", "uint256"],
        [
            message.source_chain.value,
            message.source_tx_id,
            message.amount,
            Web3.to_checksum_address(message.recipient_address),
            message.nonce,
        ],
    ).value


def encode_casper_message(message: CanonicalMessage) -> bytes:
    """Raw bytes signed with Ed25519 for ``release_cspr``."""
    body = (
        f"{message.source_chain.value}|{message.source_tx_id}|"
        f"{message.amount}|{message.nonce}"
    )
    return body.encode("utf-8") + message.recipient_address.encode("utf-8")


MESSAGE_ENCODERS: Dict[ChainId, Callable[[CanonicalMessage], bytes]] = {
    ChainId.ETHEREUM: encode_ethereum_message,
    ChainId.CASPER: encode_casper_message,
}


def encode_message(message: CanonicalMessage) -> bytes:
    """Bytes the destination verifier checks signatures against."""
    return MESSAGE_ENCODERS[message.destination_chain](message)


class ProofBuilder:
    """Builds canonical messages for one bridge direction."""

    def __init__(self, source: ChainId, destination: ChainId):
        if source is destination:
            raise ValueError("Source and destination chains must differ")
        self.source = source
        self.destination = destination
        self.delta = decimal_shift(source, destination)
        self.max_amount = CHAIN_PROFILES[destination].max_amount

    def build(self, event: DomainEvent) -> CanonicalMessage:
        """Canonical message for ``event``; raises ``ConversionError`` on dust or overflow."""
        if event.source_chain is not self.source or event.destination_chain is not self.destination:
            raise ValueError(
                f"Event {event.source_tx_id} is {event.source_chain.value}->"
                f"{event.destination_chain.value}, builder handles "
                f"{self.source.value}->{self.destination.value}"
            )

        try:
            amount = convert_amount(event.amount, self.delta, self.max_amount)
        except ConversionError as e:
            e.context = ErrorContext(
                chain=self.destination.value,
                component="proof_builder",
                operation="convert_amount",
                source_tx_id=event.source_tx_id,
            )
            raise

        return CanonicalMessage(
            source_chain=self.source,
            source_tx_id=event.source_tx_id,
            amount=amount,
            recipient_address=event.destination_address,
            nonce=derive_nonce(event.source_tx_id),
            destination_chain=self.destination,
        )

    def encode(self, message: CanonicalMessage) -> bytes:
        return encode_message(message)
