"""
Chain data provider interface consumed by the sync pipeline.

Two upstreams sit behind it: JSON-RPC (blocks, balances, bytecode, eth_call)
and a rate-limited block-explorer API (verified source, tx history). The
pipeline depends only on this protocol; BscChainProvider is the concrete one.
"""

from __future__ import annotations

from typing import Any, Protocol

from backend_nfascan.chain.models import ChainBlock, ExplorerTransaction, VerifiedSource


class ChainProvider(Protocol):
    async def get_latest_height(self) -> int:
        """Current chain head."""
        ...

    async def get_block(self, height: int) -> ChainBlock | None:
        """Block with full transactions; None if not yet produced."""
        ...

    async def get_balance(self, address: str) -> str:
        """Native balance formatted as "<amount> BNB"."""
        ...

    async def get_runtime_bytecode(self, address: str) -> str:
        """Lowercased deployed bytecode; "0x" for EOAs."""
        ...

    async def get_verified_source(self, address: str) -> VerifiedSource | None:
        ...

    async def get_transaction_history(
        self,
        address: str,
        *,
        start_block: int = 0,
        end_block: int = 99_999_999,
        page: int = 1,
        page_size: int = 100,
        sort: str = "desc",
    ) -> list[ExplorerTransaction]:
        ...

    async def fetch_offchain_metadata(self, uri: str) -> dict[str, Any] | None:
        """Parsed JSON or None on any failure."""
        ...

    async def call_contract(self, address: str, data: str) -> str:
        """eth_call against latest; raises ContractCallReverted on revert."""
        ...
