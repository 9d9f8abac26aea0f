"""
Pytest fixtures for NFA Scan tests. Temporary SQLite DB per test and an
in-memory chain provider so no test touches the network.
"""

from __future__ import annotations

from typing import Any

import pytest
from eth_abi import encode

from backend_nfascan.chain.models import (
    ChainBlock,
    ChainTransaction,
    ExplorerTransaction,
    VerifiedSource,
)
from backend_nfascan.core.exceptions import ContractCallReverted, ExplorerError, RpcError

CALLER = "0x" + "c" * 40


def encode_abi_string(text: str) -> str:
    """eth_call result for a single `string` return value."""
    return "0x" + encode(["string"], [text]).hex()


def encode_abi_address(address: str) -> str:
    return "0x" + encode(["address"], [address]).hex()


def make_tx(
    tx_hash: str,
    to: str | None,
    call_data: str = "0x",
    *,
    sender: str = CALLER,
    value_wei: int = 0,
    gas: int = 21_000,
    gas_price_wei: int = 3_000_000_000,
) -> ChainTransaction:
    return ChainTransaction(
        hash=tx_hash,
        from_address=sender,
        to_address=to,
        value_wei=value_wei,
        gas=gas,
        gas_price_wei=gas_price_wei,
        input=call_data,
    )


def make_block(number: int, txs: list[ChainTransaction] | None = None) -> ChainBlock:
    return ChainBlock(
        number=number,
        hash=f"0xblock{number:x}",
        parent_hash=f"0xblock{number - 1:x}",
        miner="0x" + "a" * 40,
        gas_used=1_500_000,
        gas_limit=30_000_000,
        timestamp=1_700_000_000 + number * 3,
        transactions=tuple(txs or ()),
    )


def make_explorer_tx(
    tx_hash: str,
    call_data: str,
    *,
    to: str = "0x" + "b" * 40,
    block_number: int = 100,
    function_name: str = "",
    logs: str = "",
    receipt_status: str = "1",
) -> ExplorerTransaction:
    return ExplorerTransaction(
        hash=tx_hash,
        block_number=block_number,
        from_address=CALLER,
        to_address=to,
        value_wei=0,
        gas=90_000,
        gas_used=60_000,
        gas_price_wei=1_000_000_000,
        input=call_data,
        receipt_status=receipt_status,
        function_name=function_name,
        logs=logs,
    )


def make_source(
    source_code: str = "",
    *,
    name: str = "",
    abi: str = "",
    compiler: str = "v0.8.24+commit.e11b9ed9",
    license_type: str = "MIT",
    implementation: str | None = None,
) -> VerifiedSource:
    return VerifiedSource(
        source_code=source_code,
        contract_name=name,
        compiler_version=compiler,
        abi=abi,
        license_type=license_type,
        implementation_address=implementation,
        is_proxy=implementation is not None,
    )


class FakeProvider:
    """
    In-memory ChainProvider. Fill the dicts, then hand it to the pipeline.
    Names in `failing` make the matching method raise a ProviderError.
    """

    def __init__(self, head: int = 0) -> None:
        self.head = head
        self.blocks: dict[int, ChainBlock] = {}
        self.balances: dict[str, str] = {}
        self.bytecode: dict[str, str] = {}
        self.sources: dict[str, VerifiedSource] = {}
        self.histories: dict[str, list[ExplorerTransaction]] = {}
        self.contract_calls: dict[tuple[str, str], str] = {}
        self.metadata: dict[str, dict[str, Any]] = {}
        self.failing: set[str] = set()
        self.failing_heights: set[int] = set()
        self.block_requests: list[int] = []
        self.enrich_requests: list[str] = []
        self.contract_call_log: list[tuple[str, str]] = []

    def _maybe_fail(self, name: str) -> None:
        if name in self.failing:
            if name in ("get_verified_source", "get_transaction_history"):
                raise ExplorerError(f"{name} unavailable")
            raise RpcError(f"{name} unavailable")

    async def get_latest_height(self) -> int:
        self._maybe_fail("get_latest_height")
        return self.head

    async def get_block(self, height: int) -> ChainBlock | None:
        self.block_requests.append(height)
        self._maybe_fail("get_block")
        if height in self.failing_heights:
            raise RpcError(f"block {height} unavailable")
        return self.blocks.get(height)

    async def get_balance(self, address: str) -> str:
        self.enrich_requests.append(address)
        self._maybe_fail("get_balance")
        return self.balances.get(address, "0.000000 BNB")

    async def get_runtime_bytecode(self, address: str) -> str:
        self._maybe_fail("get_runtime_bytecode")
        return self.bytecode.get(address, "0x")

    async def get_verified_source(self, address: str) -> VerifiedSource | None:
        self._maybe_fail("get_verified_source")
        return self.sources.get(address)

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
        self._maybe_fail("get_transaction_history")
        return list(self.histories.get(address, []))[:page_size]

    async def fetch_offchain_metadata(self, uri: str) -> dict[str, Any] | None:
        return self.metadata.get(uri)

    async def call_contract(self, address: str, data: str) -> str:
        self.contract_call_log.append((address.lower(), data))
        result = self.contract_calls.get((address.lower(), data))
        if result is None:
            raise ContractCallReverted(f"execution reverted: {address} {data[:10]}")
        return result


@pytest.fixture
def db(tmp_path):
    """Fresh Database over a temporary SQLite file."""
    from backend_nfascan.database import get_database

    return get_database(tmp_path / "test.db")


@pytest.fixture
def provider():
    return FakeProvider(head=1_000)


@pytest.fixture
def client(db):
    """FastAPI TestClient over the temp DB; chain head pinned to 1010."""
    from fastapi.testclient import TestClient

    from backend_nfascan.api_server.server import app, get_chain_head, get_db

    async def _chain_head() -> int | None:
        return 1_010

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_chain_head] = _chain_head
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
