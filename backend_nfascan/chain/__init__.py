"""
Chain provider package: the boundary to BNB Smart Chain.

JSON-RPC reads (blocks, balances, bytecode, eth_call), the rate-limited
explorer API (verified source, tx history) and off-chain token metadata.
Payloads are coerced into frozen dataclasses here so the sync pipeline
never handles raw JSON.
"""

from backend_nfascan.chain.client import BscChainProvider
from backend_nfascan.chain.models import (
    ChainBlock,
    ChainTransaction,
    ExplorerTransaction,
    TokenInfo,
    VerifiedSource,
)
from backend_nfascan.chain.provider import ChainProvider

__all__ = [
    "BscChainProvider",
    "ChainBlock",
    "ChainProvider",
    "ChainTransaction",
    "ExplorerTransaction",
    "TokenInfo",
    "VerifiedSource",
]
