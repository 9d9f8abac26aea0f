"""
EVM JSON-RPC client (BNB Smart Chain).

Responsibilities:
- Send JSON-RPC 2.0 requests over a shared httpx.AsyncClient.
- Normalize transport failures and `error` members into RpcError.
- Surface eth_call reverts as ContractCallReverted (token-does-not-exist signal).
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from backend_nfascan.chain.models import ChainBlock
from backend_nfascan.chain.units import format_balance
from backend_nfascan.core.exceptions import ContractCallReverted, RpcError
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 20.0


def _build_rpc_body(request_id: int, method: str, params: list[Any]) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params,
    }


class JsonRpcClient:
    """
    Thin async JSON-RPC client. One httpx.AsyncClient is reused for all calls;
    pass `client` to inject a preconfigured one (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip()
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._owns_client = client is None
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(
        self,
        method: str,
        params: list[Any] | None = None,
        *,
        error_cls: type[RpcError] = RpcError,
    ) -> Any:
        """Perform one JSON-RPC call; raise `error_cls` on an RPC error member."""
        body = _build_rpc_body(next(self._ids), method, params or [])
        try:
            resp = await self._client.post(self._rpc_url, json=body)
        except httpx.HTTPError as e:
            raise RpcError(f"BSC RPC transport error: {e}") from e
        if resp.status_code >= 400:
            raise RpcError(f"BSC RPC error: {resp.status_code}", code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise RpcError(f"BSC RPC returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise RpcError("BSC RPC returned a non-object response")
        err = data.get("error")
        if err:
            message = err.get("message", err) if isinstance(err, dict) else err
            code = err.get("code") if isinstance(err, dict) else None
            logger.debug("rpc_error_response", method=method, code=code, error=str(message))
            raise error_cls(f"BSC RPC error: {message}", code=code)
        return data.get("result")

    async def get_latest_height(self) -> int:
        result = await self.call("eth_blockNumber")
        if not isinstance(result, str):
            raise RpcError(f"BSC RPC returned no block number: {result!r}")
        try:
            return int(result, 16)
        except ValueError as e:
            raise RpcError(f"BSC RPC returned a malformed block number: {result!r}") from e

    async def get_block(self, height: int) -> ChainBlock | None:
        result = await self.call("eth_getBlockByNumber", [hex(height), True])
        if not result:
            return None
        return ChainBlock.from_rpc(result)

    async def get_balance(self, address: str) -> str:
        result = await self.call("eth_getBalance", [address, "latest"])
        return format_balance(result or "0x0")

    async def get_runtime_bytecode(self, address: str) -> str:
        code = await self.call("eth_getCode", [address, "latest"])
        return code.lower() if isinstance(code, str) else "0x"

    async def eth_call(self, to: str, data: str) -> str:
        """eth_call against latest. Reverts and empty returns raise ContractCallReverted."""
        result = await self.call(
            "eth_call",
            [{"to": to, "data": data}, "latest"],
            error_cls=ContractCallReverted,
        )
        if not isinstance(result, str) or result in ("", "0x"):
            raise ContractCallReverted(f"eth_call to {to} returned no data")
        return result
