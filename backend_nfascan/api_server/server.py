"""
FastAPI server: read-only API over the database.

Sync status and lag, protocol stats, agent/block/transaction lookups,
agent permissions and learning snapshots, and search. Reads from the
database only (plus one chain-head read for the lag figure); all sync work
happens in the sync service.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from backend_nfascan.analysis_engine.trust import calculate_trust_score, trust_level
from backend_nfascan.chain.rpc_client import JsonRpcClient
from backend_nfascan.config.env import get_db_path as env_db_path
from backend_nfascan.config.env import get_rpc_url
from backend_nfascan.core.exceptions import ProviderError
from backend_nfascan.database import (
    AgentRecord,
    BlockRecord,
    Database,
    EventRecord,
    PermissionRecord,
    ReceiptRecord,
    SnapshotRecord,
    get_database,
)
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

NETWORK_NAME = "BNB Smart Chain Mainnet"
CHAIN_HEAD_TIMEOUT_SEC = 5.0


# -----------------------------------------------------------------------------
# Config and dependencies
# -----------------------------------------------------------------------------


def get_db_path() -> Path:
    return env_db_path()


def get_db() -> Database:
    """Dependency: Database instance over the configured SQLite file."""
    return get_database(get_db_path())


async def get_chain_head() -> int | None:
    """Dependency: current chain head, or None when the RPC is unreachable."""
    client = JsonRpcClient(get_rpc_url(), timeout_sec=CHAIN_HEAD_TIMEOUT_SEC)
    try:
        return await client.get_latest_height()
    except ProviderError as e:
        logger.warning("api_chain_head_failed", error=str(e))
        return None
    finally:
        await client.aclose()


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class SyncStatusResponse(BaseModel):
    """GET /sync/status: cursor, chain head and lag."""

    last_synced_block: int = Field(..., description="Last block height fully synced")
    last_sync_at: int | None = Field(None, description="Unix timestamp of the last successful pass")
    chain_head: int | None = Field(None, description="Latest chain height, null if RPC unreachable")
    lag: int | None = Field(None, description="chain_head - last_synced_block (>= 0)")
    total_agents: int
    total_events: int
    total_blocks: int
    network: str = NETWORK_NAME
    source: str = Field(..., description="'live' once a pass has persisted the cursor, else 'none'")


class StatsResponse(BaseModel):
    total_agents: int
    verified_agents: int
    total_events: int
    total_receipts: int
    total_permissions: int
    total_blocks: int
    total_snapshots: int
    latest_block: int
    method_breakdown: dict[str, int] = Field(default_factory=dict)


class ProtocolStatsResponse(BaseModel):
    """GET /bap578/stats: agent types, ERC-8004 registrations, learning models, chains."""

    total_agents: int
    merkle_learning_agents: int
    json_light_agents: int
    erc8004_registered: int
    total_merkle_roots: int
    learning_model_breakdown: dict[str, int]
    chain_coverage: dict[str, int]


class AgentResponse(BaseModel):
    address: str
    name: str
    description: str | None = None
    owner: str
    status: str
    version: str
    logic_address: str | None = None
    metadata_uri: str | None = None
    learning_root: str | None = None
    compiler: str | None = None
    license: str | None = None
    verified: bool
    balance: str | None = None
    agent_type: str
    erc8004_id: str | None = None
    learning_model: str | None = None
    chain_support: list[str] = Field(default_factory=list)
    mint_fee: str | None = None
    total_events: int
    total_receipts: int
    created_at: int | None = None
    trust_score: int = Field(..., ge=0, le=100)
    trust_level: str

    @classmethod
    def from_record(cls, agent: AgentRecord) -> "AgentResponse":
        score = calculate_trust_score(agent)
        return cls(**agent.to_dict(), trust_score=score, trust_level=trust_level(score).value)


class EventResponse(BaseModel):
    id: int | None = None
    agent_address: str
    type: str
    tx_hash: str
    block_number: int
    from_address: str | None = None
    to_address: str | None = None
    value: str | None = None
    gas_used: str | None = None
    gas_price: str | None = None
    status: str
    method: str | None = None
    details: dict[str, Any] | None = None
    timestamp: int | None = None

    @classmethod
    def from_record(cls, event: EventRecord) -> "EventResponse":
        return cls(**event.to_dict())


class BlockResponse(BaseModel):
    block_number: int
    hash: str
    parent_hash: str | None = None
    agent_count: int
    event_count: int
    gas_used: str | None = None
    gas_limit: str | None = None
    validator: str | None = None
    timestamp: int | None = None
    events: list[EventResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, block: BlockRecord, events: list[EventRecord]) -> "BlockResponse":
        return cls(
            block_number=block.block_number,
            hash=block.hash,
            parent_hash=block.parent_hash,
            agent_count=block.agent_count,
            event_count=block.event_count,
            gas_used=block.gas_used,
            gas_limit=block.gas_limit,
            validator=block.validator,
            timestamp=block.timestamp,
            events=[EventResponse.from_record(e) for e in events],
        )


class ReceiptResponse(BaseModel):
    id: int | None = None
    agent_address: str
    action: str
    tx_hash: str
    from_address: str
    to_address: str
    block_number: int
    value: str | None = None
    status: str
    gas_used: str | None = None
    timestamp: int | None = None

    @classmethod
    def from_record(cls, receipt: ReceiptRecord) -> "ReceiptResponse":
        return cls(**asdict(receipt))


class PermissionResponse(BaseModel):
    id: int | None = None
    agent_address: str
    name: str
    granted_to: str
    scope: str
    active: bool
    granted_at: int | None = None

    @classmethod
    def from_record(cls, permission: PermissionRecord) -> "PermissionResponse":
        return cls(**asdict(permission))


class SnapshotResponse(BaseModel):
    """Learning snapshot; parent_hash is the previous root in the agent's chain."""

    id: int | None = None
    agent_address: str
    root_hash: str
    parent_hash: str | None = None
    size: int
    block_number: int
    metadata: dict[str, Any] | None = None
    created_at: int | None = None

    @classmethod
    def from_record(cls, snapshot: SnapshotRecord) -> "SnapshotResponse":
        return cls(**asdict(snapshot))


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------

app = FastAPI(
    title="NFA Scan API",
    description="Read-only API for BAP-578 agents, blocks and sync status on BNB Smart Chain.",
    version="0.1.0",
)


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness check: API is up."""
    return {"status": "ok"}


@app.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(
    db: Database = Depends(get_db),
    chain_head: int | None = Depends(get_chain_head),
) -> SyncStatusResponse:
    state = db.get_sync_state()
    stats = db.get_stats()
    last_synced = state.last_synced_block if state is not None else 0
    lag = max(0, chain_head - last_synced) if chain_head is not None else None
    return SyncStatusResponse(
        last_synced_block=last_synced,
        last_sync_at=state.last_sync_at if state is not None else None,
        chain_head=chain_head,
        lag=lag,
        total_agents=stats["total_agents"],
        total_events=stats["total_events"],
        total_blocks=stats["total_blocks"],
        source="live" if state is not None and state.is_live else "none",
    )


@app.get("/stats", response_model=StatsResponse)
def stats(db: Database = Depends(get_db)) -> StatsResponse:
    return StatsResponse(**db.get_stats(), method_breakdown=db.get_method_breakdown())


@app.get("/bap578/stats", response_model=ProtocolStatsResponse)
def protocol_stats(db: Database = Depends(get_db)) -> ProtocolStatsResponse:
    return ProtocolStatsResponse(**db.get_protocol_stats())


@app.get("/agents", response_model=list[AgentResponse])
def list_agents(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
) -> list[AgentResponse]:
    """Agents, newest first."""
    return [AgentResponse.from_record(a) for a in db.get_agents(limit=limit, offset=offset)]


@app.get("/agents/verified", response_model=list[AgentResponse])
def list_verified_agents(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
) -> list[AgentResponse]:
    return [AgentResponse.from_record(a) for a in db.get_verified_agents(limit=limit, offset=offset)]


@app.get("/agents/top", response_model=list[AgentResponse])
def list_top_agents(
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
) -> list[AgentResponse]:
    """Agents with the most recorded events."""
    return [AgentResponse.from_record(a) for a in db.get_top_agents(limit=limit)]


def _require_agent(address: str, db: Database) -> AgentRecord:
    agent = db.get_agent_by_address(address.strip())
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


@app.get("/agents/{address}", response_model=AgentResponse)
def get_agent(address: str, db: Database = Depends(get_db)) -> AgentResponse:
    return AgentResponse.from_record(_require_agent(address, db))


@app.get("/agents/{address}/events", response_model=list[EventResponse])
def get_agent_events(
    address: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Database = Depends(get_db),
) -> list[EventResponse]:
    agent = _require_agent(address, db)
    return [EventResponse.from_record(e) for e in db.get_events_by_agent(agent.address, limit=limit)]


@app.get("/agents/{address}/receipts", response_model=list[ReceiptResponse])
def get_agent_receipts(
    address: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Database = Depends(get_db),
) -> list[ReceiptResponse]:
    agent = _require_agent(address, db)
    return [ReceiptResponse.from_record(r) for r in db.get_receipts_by_agent(agent.address, limit=limit)]


@app.get("/agents/{address}/permissions", response_model=list[PermissionResponse])
def get_agent_permissions(address: str, db: Database = Depends(get_db)) -> list[PermissionResponse]:
    agent = _require_agent(address, db)
    return [PermissionResponse.from_record(p) for p in db.get_permissions_by_agent(agent.address)]


@app.get("/agents/{address}/snapshots", response_model=list[SnapshotResponse])
def get_agent_snapshots(address: str, db: Database = Depends(get_db)) -> list[SnapshotResponse]:
    """Learning snapshots, latest first."""
    agent = _require_agent(address, db)
    return [SnapshotResponse.from_record(s) for s in db.get_snapshots_by_agent(agent.address)]


@app.get("/blocks", response_model=list[BlockResponse])
def list_blocks(
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
) -> list[BlockResponse]:
    """Latest blocks first, without their events."""
    return [BlockResponse.from_record(b, []) for b in db.get_blocks(limit=limit, offset=offset)]


@app.get("/blocks/{height}", response_model=BlockResponse)
def get_block(height: int, db: Database = Depends(get_db)) -> BlockResponse:
    block = db.get_block(height)
    if block is None:
        raise HTTPException(status_code=404, detail="Block not found")
    return BlockResponse.from_record(block, db.get_events_by_block(height))


@app.get("/blocks/{height}/events", response_model=list[EventResponse])
def get_block_events(
    height: int,
    limit: int = Query(500, ge=1, le=1000),
    db: Database = Depends(get_db),
) -> list[EventResponse]:
    if db.get_block(height) is None:
        raise HTTPException(status_code=404, detail="Block not found")
    return [EventResponse.from_record(e) for e in db.get_events_by_block(height, limit=limit)]


@app.get("/events", response_model=list[EventResponse])
def list_events(
    limit: int = Query(50, ge=1, le=500),
    db: Database = Depends(get_db),
) -> list[EventResponse]:
    return [EventResponse.from_record(e) for e in db.get_recent_events(limit=limit)]


@app.get("/receipts", response_model=list[ReceiptResponse])
def list_receipts(
    limit: int = Query(50, ge=1, le=500),
    db: Database = Depends(get_db),
) -> list[ReceiptResponse]:
    return [ReceiptResponse.from_record(r) for r in db.get_recent_receipts(limit=limit)]


@app.get("/tx/{tx_hash}", response_model=EventResponse)
def get_transaction(tx_hash: str, db: Database = Depends(get_db)) -> EventResponse:
    event = db.get_event_by_tx_hash(tx_hash.strip())
    if event is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return EventResponse.from_record(event)


@app.get("/search", response_model=list[AgentResponse])
def search(
    q: str = Query("", max_length=128),
    db: Database = Depends(get_db),
) -> list[AgentResponse]:
    """Agents whose name, address or description contains q (case-insensitive)."""
    return [AgentResponse.from_record(a) for a in db.search_agents(q)]
