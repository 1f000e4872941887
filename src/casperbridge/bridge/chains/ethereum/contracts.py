"""
Wrapper contract ``mint`` transactions.

Builds and signs the legacy (gas price) transaction that calls
``mint((sourceChain, sourceTxHash, amount, recipient, nonce, validatorSignatures))``
on the wrapped-CSPR contract.
"""

from typing import Optional

from web3 import Web3

from ....crypto.signatures import (
    Secp256k1RecoverableKey,
    SignatureScheme,
    load_signing_key,
)
from ...bridge_types import BridgeProof, ChainId
from ...config import ChainConfig
from ...executor import TransactionBuilder
from .client import EthereumGateway
from .events import WRAPPER_ABI


class EthereumMintBuilder(TransactionBuilder):
    """Signed ``mint`` transactions from the relayer's Ethereum account."""

    chain = ChainId.ETHEREUM

    def __init__(
        self,
        config: ChainConfig,
        gateway: EthereumGateway,
        account_key: Optional[Secp256k1RecoverableKey] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.key = account_key or load_signing_key(
            SignatureScheme.SECP256K1_RECOVERABLE, config.transaction_key
        )
        self.contract = Web3().eth.contract(
            address=Web3.to_checksum_address(config.verifier_id), abi=WRAPPER_ABI
        )
        self._last_sequence: Optional[int] = None
        self._pending_sequence: Optional[int] = None

    @property
    def account_id(self) -> str:
        return self.key.address

    async def next_sequence(self) -> int:
        """Account nonce for the next transaction.

        The node's pending count can lag a transaction this relayer has just
        sent, so a sequence the node accepted is never reused. A sequence
        whose transaction was refused is handed out again.
        """
        pending = await self.gateway.get_transaction_count(self.key.address)
        if self._last_sequence is None:
            return pending
        return max(pending, self._last_sequence + 1)

    async def build(self, proof: BridgeProof) -> bytes:
        message = proof.message
        signatures = [
            attestation.signature
            for attestation in proof.attestations
            if attestation.scheme is SignatureScheme.SECP256K1_RECOVERABLE
        ]
        if not signatures:
            raise ValueError("Mint proof carries no secp256k1 attestation")

        data = self.contract.encode_abi(
            "mint",
            args=[
                (
                    message.source_chain.value,
                    message.source_tx_id,
                    message.amount,
                    Web3.to_checksum_address(message.recipient_address),
                    message.nonce,
                    signatures,
                )
            ],
        )

        sequence = await self.next_sequence()
        gas_price = await self.gateway.get_gas_price()
        transaction = {
            "to": self.contract.address,
            "data": data,
            "value": 0,
            "gas": self.config.gas_limit,
            "gasPrice": gas_price,
            "nonce": sequence,
            "chainId": self.config.chain_id,
        }

        signed = self.key.sign_transaction(transaction)
        self._pending_sequence = sequence
        return signed

    def transaction_id(self, signed_tx: bytes) -> Optional[str]:
        return Web3.to_hex(Web3.keccak(signed_tx))

    def commit_sequence(self) -> None:
        if self._pending_sequence is not None:
            self._last_sequence = self._pending_sequence
        self._pending_sequence = None

    def release_sequence(self) -> None:
        self._pending_sequence = None
