"""
Casper side of the bridge.

- ``CasperGateway``: aiohttp JSON-RPC ledger gateway
- ``CasperLockDecoder``: ``lock_cspr`` deploy decoding
- ``CasperReleaseBuilder``: signed ``release_cspr`` deploys
"""

from .client import CasperGateway, CasperRPCError, block_summary, execution_status
from .deploys import CasperReleaseBuilder, CLValue
from .events import CasperLockDecoder

__all__ = [
    "CasperGateway",
    "CasperRPCError",
    "CasperLockDecoder",
    "CasperReleaseBuilder",
    "CLValue",
    "block_summary",
    "execution_status",
]
