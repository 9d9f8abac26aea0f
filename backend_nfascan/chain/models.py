"""
Data models for provider responses.

Every JSON-RPC / explorer payload is validated and coerced once here, at the
boundary; the sync pipeline only sees these frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backend_nfascan.chain.units import hex_to_int, is_contract_call


def _lower_or_none(value: Any) -> str | None:
    if not value or not isinstance(value, str):
        return None
    return value.lower()


@dataclass(frozen=True)
class ChainTransaction:
    """Transaction as embedded in eth_getBlockByNumber(..., true)."""

    hash: str
    from_address: str
    to_address: str | None
    value_wei: int
    gas: int
    gas_price_wei: int
    input: str
    block_number: int | None = None

    @property
    def is_contract_call(self) -> bool:
        """Has a recipient and non-empty call data."""
        return bool(self.to_address) and is_contract_call(self.input)

    @classmethod
    def from_rpc(cls, item: dict[str, Any]) -> "ChainTransaction":
        return cls(
            hash=str(item["hash"]),
            from_address=str(item.get("from") or "").lower(),
            to_address=_lower_or_none(item.get("to")),
            value_wei=hex_to_int(item.get("value")),
            gas=hex_to_int(item.get("gas")),
            gas_price_wei=hex_to_int(item.get("gasPrice")),
            input=str(item.get("input") or "0x"),
            block_number=hex_to_int(item["blockNumber"]) if item.get("blockNumber") else None,
        )


@dataclass(frozen=True)
class ChainBlock:
    """Block header plus full transaction objects."""

    number: int
    hash: str
    parent_hash: str | None
    miner: str | None
    gas_used: int
    gas_limit: int
    timestamp: int
    """Unix timestamp (seconds)."""
    transactions: tuple[ChainTransaction, ...] = field(default_factory=tuple)

    @property
    def tx_count(self) -> int:
        return len(self.transactions)

    @classmethod
    def from_rpc(cls, result: dict[str, Any]) -> "ChainBlock":
        txs: list[ChainTransaction] = []
        for item in result.get("transactions") or []:
            # Hash-only entries appear when full transactions were not requested
            if isinstance(item, dict) and item.get("hash"):
                txs.append(ChainTransaction.from_rpc(item))
        return cls(
            number=hex_to_int(result.get("number")),
            hash=str(result.get("hash") or ""),
            parent_hash=result.get("parentHash"),
            miner=_lower_or_none(result.get("miner")),
            gas_used=hex_to_int(result.get("gasUsed")),
            gas_limit=hex_to_int(result.get("gasLimit")),
            timestamp=hex_to_int(result.get("timestamp")),
            transactions=tuple(txs),
        )


@dataclass(frozen=True)
class VerifiedSource:
    """Explorer getsourcecode result for one contract."""

    source_code: str
    contract_name: str
    compiler_version: str
    abi: str
    license_type: str
    optimization_used: str = ""
    implementation_address: str | None = None
    is_proxy: bool = False

    @property
    def is_verified(self) -> bool:
        return bool(self.source_code)

    @classmethod
    def from_explorer(cls, item: dict[str, Any]) -> "VerifiedSource":
        implementation = (item.get("Implementation") or "").strip()
        return cls(
            source_code=item.get("SourceCode") or "",
            contract_name=item.get("ContractName") or "",
            compiler_version=item.get("CompilerVersion") or "",
            abi=item.get("ABI") or "",
            license_type=item.get("LicenseType") or "",
            optimization_used=item.get("OptimizationUsed") or "",
            implementation_address=implementation.lower() or None,
            is_proxy=str(item.get("Proxy") or "") == "1" or bool(implementation),
        )


@dataclass(frozen=True)
class ExplorerTransaction:
    """Explorer txlist row (normal transactions of an address)."""

    hash: str
    block_number: int
    from_address: str
    to_address: str | None
    value_wei: int
    gas: int
    gas_used: int | None
    gas_price_wei: int
    input: str
    receipt_status: str = ""
    function_name: str = ""
    method_id: str = ""
    logs: str = ""

    @property
    def status(self) -> str:
        return "confirmed" if self.receipt_status == "1" else "failed"

    @classmethod
    def from_explorer(cls, item: dict[str, Any]) -> "ExplorerTransaction":
        logs = item.get("logs") or ""
        return cls(
            hash=str(item["hash"]),
            block_number=hex_to_int(item.get("blockNumber")),
            from_address=str(item.get("from") or "").lower(),
            to_address=_lower_or_none(item.get("to")),
            value_wei=hex_to_int(item.get("value")),
            gas=hex_to_int(item.get("gas")),
            gas_used=hex_to_int(item["gasUsed"]) if item.get("gasUsed") else None,
            gas_price_wei=hex_to_int(item.get("gasPrice")),
            input=str(item.get("input") or "0x"),
            receipt_status=str(item.get("txreceipt_status") or ""),
            function_name=str(item.get("functionName") or ""),
            method_id=str(item.get("methodId") or ""),
            logs=logs if isinstance(logs, str) else str(logs),
        )


@dataclass(frozen=True)
class TokenInfo:
    """One registry token (ERC-721 style): id, owner, token URI and off-chain metadata."""

    token_id: int
    owner: str
    token_uri: str = ""
    metadata: dict[str, Any] | None = None

    @property
    def name(self) -> str | None:
        value = (self.metadata or {}).get("name")
        return value if isinstance(value, str) and value else None

    @property
    def description(self) -> str | None:
        value = (self.metadata or {}).get("description")
        return value if isinstance(value, str) and value else None

    @property
    def service_names(self) -> list[str]:
        """Names of declared services (metadata.services[].name)."""
        services = (self.metadata or {}).get("services") or []
        if not isinstance(services, list):
            return []
        return [
            str(s.get("name"))
            for s in services
            if isinstance(s, dict) and s.get("name")
        ]
