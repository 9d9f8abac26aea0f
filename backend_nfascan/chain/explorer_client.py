"""
Block-explorer API client (Etherscan v2 multichain endpoint, chainid=56).

All requests pass through one RateLimiter: a single pacing gate with a fixed
minimum interval between requests, shared by every caller of the client.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from backend_nfascan.chain.models import ExplorerTransaction, VerifiedSource
from backend_nfascan.core.exceptions import ExplorerError
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

DEFAULT_MIN_INTERVAL_SEC = 0.22
DEFAULT_TIMEOUT_SEC = 20.0


class RateLimiter:
    """Minimum interval between acquires; callers are serialized on a lock."""

    def __init__(self, min_interval_sec: float) -> None:
        self._interval = max(0.0, min_interval_sec)
        self._last_acquire = 0.0
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_acquire
            if elapsed < self._interval:
                await asyncio.sleep(self._interval - elapsed)
            self._last_acquire = time.monotonic()


class ExplorerClient:
    """
    Rate-limited explorer client: verified source (getsourcecode) and
    normal transaction history (txlist).
    """

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        *,
        chain_id: str = "56",
        min_interval_sec: float = DEFAULT_MIN_INTERVAL_SEC,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        if not api_url.strip():
            raise ValueError("api_url must be non-empty")
        self._api_url = api_url.strip()
        self._api_key = api_key
        self._chain_id = chain_id
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._owns_client = client is None
        self._rate_limiter = rate_limiter or RateLimiter(min_interval_sec)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, params: dict[str, str]) -> dict[str, Any]:
        await self._rate_limiter.acquire()
        query = {"chainid": self._chain_id, **params, "apikey": self._api_key}
        try:
            resp = await self._client.get(self._api_url, params=query)
        except httpx.HTTPError as e:
            raise ExplorerError(f"Explorer transport error: {e}") from e
        if resp.status_code >= 400:
            raise ExplorerError(f"Explorer API error: {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ExplorerError(f"Explorer returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ExplorerError("Explorer returned a non-object response")
        return data

    async def get_verified_source(self, address: str) -> VerifiedSource | None:
        data = await self._get(
            {"module": "contract", "action": "getsourcecode", "address": address}
        )
        result = data.get("result")
        if not isinstance(result, list) or not result or not isinstance(result[0], dict):
            return None
        return VerifiedSource.from_explorer(result[0])

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
        data = await self._get(
            {
                "module": "account",
                "action": "txlist",
                "address": address,
                "startblock": str(start_block),
                "endblock": str(end_block),
                "page": str(page),
                "offset": str(page_size),
                "sort": sort,
            }
        )
        result = data.get("result")
        # "No transactions found" / rate-limit messages come back as a string result
        if not isinstance(result, list):
            return []
        txs: list[ExplorerTransaction] = []
        for item in result:
            if not isinstance(item, dict) or not item.get("hash"):
                continue
            try:
                txs.append(ExplorerTransaction.from_explorer(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("explorer_skip_invalid_tx", address=address, error=str(e))
        return txs
