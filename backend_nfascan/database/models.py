"""
Domain models for database entities.

Blocks, agents, events, receipts, permissions, learning snapshots and the
sync cursor. No ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

AGENT_STATUSES = ("active", "paused", "inactive")
EVENT_STATUSES = ("confirmed", "failed", "pending")


def _check_event_status(status: str) -> None:
    if status not in EVENT_STATUSES:
        raise ValueError(f"Unknown transaction status {status!r}; expected one of {EVENT_STATUSES}")


@dataclass
class BlockRecord:
    """One block row; block_number is the identity key."""

    block_number: int
    hash: str
    parent_hash: str | None = None
    agent_count: int = 0
    """Contract-call transactions seen in the block."""
    event_count: int = 0
    """Total transactions in the block."""
    gas_used: str | None = None
    gas_limit: str | None = None
    validator: str | None = None
    timestamp: int | None = None
    """Unix timestamp (seconds) of the block."""


@dataclass
class AgentRecord:
    """Agent keyed by address. Counters are owned by event/receipt inserts."""

    address: str
    name: str
    owner: str
    description: str | None = None
    status: str = "active"
    version: str = "1.0.0"
    logic_address: str | None = None
    metadata_uri: str | None = None
    learning_root: str | None = None
    compiler: str | None = None
    license: str | None = None
    verified: bool = False
    balance: str | None = None
    agent_type: str = "json_light"
    erc8004_id: str | None = None
    learning_model: str | None = None
    chain_support: list[str] = field(default_factory=list)
    mint_fee: str | None = None
    total_events: int = 0
    total_receipts: int = 0
    created_at: int | None = None

    def __post_init__(self) -> None:
        if self.status not in AGENT_STATUSES:
            raise ValueError(f"Unknown agent status {self.status!r}; expected one of {AGENT_STATUSES}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "description": self.description,
            "owner": self.owner,
            "status": self.status,
            "version": self.version,
            "logic_address": self.logic_address,
            "metadata_uri": self.metadata_uri,
            "learning_root": self.learning_root,
            "compiler": self.compiler,
            "license": self.license,
            "verified": self.verified,
            "balance": self.balance,
            "agent_type": self.agent_type,
            "erc8004_id": self.erc8004_id,
            "learning_model": self.learning_model,
            "chain_support": list(self.chain_support),
            "mint_fee": self.mint_fee,
            "total_events": self.total_events,
            "total_receipts": self.total_receipts,
            "created_at": self.created_at,
        }


@dataclass
class EventRecord:
    """Transaction attributed to an agent."""

    agent_address: str
    type: str
    tx_hash: str
    block_number: int
    from_address: str | None = None
    to_address: str | None = None
    value: str | None = None
    gas_used: str | None = None
    gas_price: str | None = None
    status: str = "confirmed"
    method: str | None = None
    details: dict[str, Any] | None = None
    timestamp: int | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        _check_event_status(self.status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_address": self.agent_address,
            "type": self.type,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "gas_used": self.gas_used,
            "gas_price": self.gas_price,
            "status": self.status,
            "method": self.method,
            "details": self.details,
            "timestamp": self.timestamp,
        }


@dataclass
class ReceiptRecord:
    """Contract-call view of a transaction attributed to an agent."""

    agent_address: str
    action: str
    tx_hash: str
    from_address: str
    to_address: str
    block_number: int
    value: str | None = None
    status: str = "confirmed"
    gas_used: str | None = None
    timestamp: int | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        _check_event_status(self.status)


@dataclass
class PermissionRecord:
    agent_address: str
    name: str
    granted_to: str
    scope: str
    active: bool = True
    granted_at: int | None = None
    id: int | None = None


@dataclass
class SnapshotRecord:
    """Claimed Merkle learning checkpoint; parent_hash links to a previous root."""

    agent_address: str
    root_hash: str
    size: int
    block_number: int
    parent_hash: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: int | None = None
    id: int | None = None


@dataclass
class SyncState:
    """Single-row sync cursor."""

    last_synced_block: int = 0
    last_sync_at: int | None = None
    is_live: bool = False
