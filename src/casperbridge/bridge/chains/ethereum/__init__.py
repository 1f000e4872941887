"""
Ethereum side of the bridge.

- ``EthereumGateway``: web3-backed ledger gateway
- ``EthereumBurnDecoder``: ``AssetBurned`` log decoding
- ``EthereumMintBuilder``: signed ``mint`` transactions
"""

from .client import EthereumGateway
from .contracts import EthereumMintBuilder
from .events import ASSET_BURNED_TOPIC, WRAPPER_ABI, EthereumBurnDecoder

__all__ = [
    "EthereumGateway",
    "EthereumBurnDecoder",
    "EthereumMintBuilder",
    "ASSET_BURNED_TOPIC",
    "WRAPPER_ABI",
]
