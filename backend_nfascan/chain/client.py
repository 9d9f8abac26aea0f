"""
BscChainProvider: concrete ChainProvider for BNB Smart Chain.

Composes the JSON-RPC client, the rate-limited explorer client and the
metadata fetcher. Share one instance across the sync pipeline so every
explorer request goes through the same pacing gate.
"""

from __future__ import annotations

from typing import Any

import httpx

from backend_nfascan.chain.explorer_client import ExplorerClient
from backend_nfascan.chain.metadata import fetch_offchain_metadata
from backend_nfascan.chain.models import ChainBlock, ExplorerTransaction, VerifiedSource
from backend_nfascan.chain.rpc_client import JsonRpcClient
from backend_nfascan.config.env import DEFAULT_IPFS_GATEWAY, mask_url
from backend_nfascan.config.settings import Settings
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)


class BscChainProvider:
    def __init__(
        self,
        rpc: JsonRpcClient,
        explorer: ExplorerClient,
        *,
        metadata_client: httpx.AsyncClient | None = None,
        ipfs_gateway: str = DEFAULT_IPFS_GATEWAY,
    ) -> None:
        self._rpc = rpc
        self._explorer = explorer
        self._metadata_client = metadata_client or httpx.AsyncClient()
        self._owns_metadata_client = metadata_client is None
        self._ipfs_gateway = ipfs_gateway

    @classmethod
    def from_settings(cls, settings: Settings) -> "BscChainProvider":
        logger.info(
            "chain_provider_configured",
            rpc_url=mask_url(settings.rpc_url),
            explorer_url=settings.explorer_api_url,
            chain_id=settings.explorer_chain_id,
            explorer_min_interval_sec=settings.explorer_min_interval_sec,
            has_api_key=bool(settings.explorer_api_key),
        )
        return cls(
            JsonRpcClient(settings.rpc_url, timeout_sec=settings.request_timeout_sec),
            ExplorerClient(
                settings.explorer_api_url,
                settings.explorer_api_key,
                chain_id=settings.explorer_chain_id,
                min_interval_sec=settings.explorer_min_interval_sec,
                timeout_sec=settings.request_timeout_sec,
            ),
            ipfs_gateway=settings.ipfs_gateway,
        )

    async def aclose(self) -> None:
        await self._rpc.aclose()
        await self._explorer.aclose()
        if self._owns_metadata_client:
            await self._metadata_client.aclose()

    async def __aenter__(self) -> "BscChainProvider":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def get_latest_height(self) -> int:
        return await self._rpc.get_latest_height()

    async def get_block(self, height: int) -> ChainBlock | None:
        return await self._rpc.get_block(height)

    async def get_balance(self, address: str) -> str:
        return await self._rpc.get_balance(address)

    async def get_runtime_bytecode(self, address: str) -> str:
        return await self._rpc.get_runtime_bytecode(address)

    async def get_verified_source(self, address: str) -> VerifiedSource | None:
        return await self._explorer.get_verified_source(address)

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
        return await self._explorer.get_transaction_history(
            address,
            start_block=start_block,
            end_block=end_block,
            page=page,
            page_size=page_size,
            sort=sort,
        )

    async def fetch_offchain_metadata(self, uri: str) -> dict[str, Any] | None:
        return await fetch_offchain_metadata(
            self._metadata_client, uri, gateway=self._ipfs_gateway
        )

    async def call_contract(self, address: str, data: str) -> str:
        return await self._rpc.eth_call(address, data)
