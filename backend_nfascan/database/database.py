"""
Database abstraction layer for blocks, agents, events/receipts, permissions,
learning snapshots and the sync cursor.

MVP uses SQLite; designed so the backend can be swapped via a different
Backend implementation. All access goes through the abstract interface.
Writes are read-then-upsert, last writer wins; the single-flight scheduler
is the only writer in practice.
"""

from __future__ import annotations

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterator

from backend_nfascan.core.exceptions import (
    DuplicateRecordError,
    SnapshotChainError,
    StorageError,
)
from backend_nfascan.database.models import (
    AgentRecord,
    BlockRecord,
    EventRecord,
    PermissionRecord,
    ReceiptRecord,
    SnapshotRecord,
    SyncState,
)
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Schema (SQLite)
# -----------------------------------------------------------------------------

SCHEMA_BLOCKS = """
CREATE TABLE IF NOT EXISTS blocks (
    block_number INTEGER PRIMARY KEY,
    hash TEXT NOT NULL,
    parent_hash TEXT,
    agent_count INTEGER NOT NULL DEFAULT 0,
    event_count INTEGER NOT NULL DEFAULT 0,
    gas_used TEXT,
    gas_limit TEXT,
    validator TEXT,
    timestamp INTEGER
);
"""

SCHEMA_AGENTS = """
CREATE TABLE IF NOT EXISTS agents (
    address TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    owner TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    version TEXT NOT NULL DEFAULT '1.0.0',
    logic_address TEXT,
    metadata_uri TEXT,
    learning_root TEXT,
    compiler TEXT,
    license TEXT,
    verified INTEGER NOT NULL DEFAULT 0,
    total_events INTEGER NOT NULL DEFAULT 0,
    total_receipts INTEGER NOT NULL DEFAULT 0,
    balance TEXT,
    agent_type TEXT NOT NULL DEFAULT 'json_light',
    erc8004_id TEXT,
    learning_model TEXT,
    chain_support_json TEXT,
    mint_fee TEXT,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_agents_created ON agents(created_at);
CREATE INDEX IF NOT EXISTS ix_agents_total_events ON agents(total_events);
"""

SCHEMA_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_address TEXT NOT NULL REFERENCES agents(address),
    type TEXT NOT NULL,
    tx_hash TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    from_address TEXT,
    to_address TEXT,
    value TEXT,
    gas_used TEXT,
    gas_price TEXT,
    status TEXT NOT NULL DEFAULT 'confirmed',
    method TEXT,
    details_json TEXT,
    timestamp INTEGER,
    UNIQUE(agent_address, tx_hash)
);
CREATE INDEX IF NOT EXISTS ix_events_tx_hash ON events(tx_hash);
CREATE INDEX IF NOT EXISTS ix_events_block ON events(block_number);
"""

SCHEMA_RECEIPTS = """
CREATE TABLE IF NOT EXISTS receipts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_address TEXT NOT NULL REFERENCES agents(address),
    action TEXT NOT NULL,
    tx_hash TEXT NOT NULL,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    value TEXT,
    status TEXT NOT NULL DEFAULT 'confirmed',
    block_number INTEGER NOT NULL,
    gas_used TEXT,
    timestamp INTEGER,
    UNIQUE(agent_address, tx_hash)
);
CREATE INDEX IF NOT EXISTS ix_receipts_agent ON receipts(agent_address);
"""

SCHEMA_PERMISSIONS = """
CREATE TABLE IF NOT EXISTS permissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_address TEXT NOT NULL REFERENCES agents(address),
    name TEXT NOT NULL,
    granted_to TEXT NOT NULL,
    scope TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    granted_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_permissions_agent ON permissions(agent_address);
"""

SCHEMA_SNAPSHOTS = """
CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_address TEXT NOT NULL REFERENCES agents(address),
    root_hash TEXT NOT NULL,
    parent_hash TEXT,
    size INTEGER NOT NULL,
    block_number INTEGER NOT NULL,
    metadata_json TEXT,
    created_at INTEGER NOT NULL,
    UNIQUE(agent_address, root_hash)
);
"""

SCHEMA_SYNC_STATE = """
CREATE TABLE IF NOT EXISTS sync_state (
    id TEXT PRIMARY KEY DEFAULT 'main',
    last_synced_block INTEGER NOT NULL DEFAULT 0,
    last_sync_at INTEGER,
    is_live INTEGER NOT NULL DEFAULT 0
);
"""

ALL_SCHEMAS = (
    SCHEMA_BLOCKS,
    SCHEMA_AGENTS,
    SCHEMA_EVENTS,
    SCHEMA_RECEIPTS,
    SCHEMA_PERMISSIONS,
    SCHEMA_SNAPSHOTS,
    SCHEMA_SYNC_STATE,
)

SYNC_STATE_ID = "main"


def _dumps(value: Any) -> str | None:
    return json.dumps(value) if value is not None else None


def _loads(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _row_to_block(row: sqlite3.Row) -> BlockRecord:
    return BlockRecord(
        block_number=row["block_number"],
        hash=row["hash"],
        parent_hash=row["parent_hash"],
        agent_count=row["agent_count"],
        event_count=row["event_count"],
        gas_used=row["gas_used"],
        gas_limit=row["gas_limit"],
        validator=row["validator"],
        timestamp=row["timestamp"],
    )


def _row_to_agent(row: sqlite3.Row) -> AgentRecord:
    chains = _loads(row["chain_support_json"])
    return AgentRecord(
        address=row["address"],
        name=row["name"],
        description=row["description"],
        owner=row["owner"],
        status=row["status"],
        version=row["version"],
        logic_address=row["logic_address"],
        metadata_uri=row["metadata_uri"],
        learning_root=row["learning_root"],
        compiler=row["compiler"],
        license=row["license"],
        verified=bool(row["verified"]),
        balance=row["balance"],
        agent_type=row["agent_type"],
        erc8004_id=row["erc8004_id"],
        learning_model=row["learning_model"],
        chain_support=list(chains) if isinstance(chains, list) else [],
        mint_fee=row["mint_fee"],
        total_events=row["total_events"],
        total_receipts=row["total_receipts"],
        created_at=row["created_at"],
    )


def _row_to_event(row: sqlite3.Row) -> EventRecord:
    details = _loads(row["details_json"])
    return EventRecord(
        id=row["id"],
        agent_address=row["agent_address"],
        type=row["type"],
        tx_hash=row["tx_hash"],
        block_number=row["block_number"],
        from_address=row["from_address"],
        to_address=row["to_address"],
        value=row["value"],
        gas_used=row["gas_used"],
        gas_price=row["gas_price"],
        status=row["status"],
        method=row["method"],
        details=details if isinstance(details, dict) else None,
        timestamp=row["timestamp"],
    )


def _row_to_receipt(row: sqlite3.Row) -> ReceiptRecord:
    return ReceiptRecord(
        id=row["id"],
        agent_address=row["agent_address"],
        action=row["action"],
        tx_hash=row["tx_hash"],
        from_address=row["from_address"],
        to_address=row["to_address"],
        value=row["value"],
        status=row["status"],
        block_number=row["block_number"],
        gas_used=row["gas_used"],
        timestamp=row["timestamp"],
    )


def _row_to_permission(row: sqlite3.Row) -> PermissionRecord:
    return PermissionRecord(
        id=row["id"],
        agent_address=row["agent_address"],
        name=row["name"],
        granted_to=row["granted_to"],
        scope=row["scope"],
        active=bool(row["active"]),
        granted_at=row["granted_at"],
    )


def _row_to_snapshot(row: sqlite3.Row) -> SnapshotRecord:
    metadata = _loads(row["metadata_json"])
    return SnapshotRecord(
        id=row["id"],
        agent_address=row["agent_address"],
        root_hash=row["root_hash"],
        parent_hash=row["parent_hash"],
        size=row["size"],
        block_number=row["block_number"],
        metadata=metadata if isinstance(metadata, dict) else None,
        created_at=row["created_at"],
    )


def _insert_error(e: sqlite3.IntegrityError, what: str) -> StorageError:
    if "UNIQUE" in str(e):
        return DuplicateRecordError(f"Duplicate {what}: {e}")
    return StorageError(f"Failed to insert {what}: {e}")


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract interface for persistence."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    @abstractmethod
    def upsert_block(self, block: BlockRecord) -> None:
        """Insert or overwrite a block by height."""
        ...

    @abstractmethod
    def get_block(self, block_number: int) -> BlockRecord | None:
        ...

    @abstractmethod
    def get_blocks(self, *, limit: int = 20, offset: int = 0) -> list[BlockRecord]:
        """Blocks, highest first."""
        ...

    @abstractmethod
    def upsert_agent(self, agent: AgentRecord) -> None:
        """Insert or merge an agent by address; counters and created_at are kept."""
        ...

    @abstractmethod
    def get_agent(self, address: str) -> AgentRecord | None:
        ...

    @abstractmethod
    def list_agents(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        verified_only: bool = False,
        order_by_events: bool = False,
    ) -> list[AgentRecord]:
        ...

    @abstractmethod
    def search_agents(self, query: str, *, limit: int = 50) -> list[AgentRecord]:
        """Case-insensitive substring match on name, address and description."""
        ...

    @abstractmethod
    def event_exists(self, tx_hash: str) -> bool:
        ...

    @abstractmethod
    def insert_event(self, event: EventRecord) -> int:
        """Insert an event and bump the agent's total_events. Returns row id."""
        ...

    @abstractmethod
    def get_events(
        self,
        *,
        tx_hash: str | None = None,
        agent_address: str | None = None,
        block_number: int | None = None,
        limit: int = 100,
    ) -> list[EventRecord]:
        """Events matching all given filters, newest first."""
        ...

    @abstractmethod
    def insert_receipt(self, receipt: ReceiptRecord) -> int:
        """Insert a receipt and bump the agent's total_receipts. Returns row id."""
        ...

    @abstractmethod
    def get_receipts(self, agent_address: str | None = None, *, limit: int = 100) -> list[ReceiptRecord]:
        """Newest first; all agents when agent_address is None."""
        ...

    @abstractmethod
    def insert_permission(self, permission: PermissionRecord) -> int:
        ...

    @abstractmethod
    def get_permissions(self, agent_address: str) -> list[PermissionRecord]:
        ...

    @abstractmethod
    def deactivate_permissions(self, agent_address: str, granted_to: str, name: str) -> int:
        """Mark matching active grants inactive. Returns rows changed."""
        ...

    @abstractmethod
    def insert_snapshot(self, snapshot: SnapshotRecord) -> int:
        """Append a snapshot; rejects a repeated root or an unknown parent."""
        ...

    @abstractmethod
    def get_snapshots(self, agent_address: str) -> list[SnapshotRecord]:
        ...

    @abstractmethod
    def get_sync_state(self) -> SyncState | None:
        ...

    @abstractmethod
    def set_sync_state(self, state: SyncState) -> None:
        ...

    @abstractmethod
    def count(self, table: str, *, where: str = "", params: tuple[Any, ...] = ()) -> int:
        ...

    @abstractmethod
    def get_method_counts(self) -> dict[str, int]:
        ...

    @abstractmethod
    def get_agent_facets(self) -> list[tuple[str, str | None, list[str]]]:
        """(agent_type, learning_model, chain_support) for every agent."""
        ...

    @abstractmethod
    def clear_all(self) -> None:
        """Delete every row in every table."""
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


class SQLiteBackend(DatabaseBackend):
    """SQLite implementation; single file, one connection per operation."""

    COUNTABLE_TABLES = ("blocks", "agents", "events", "receipts", "permissions", "snapshots")

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in ALL_SCHEMAS:
                cur.executescript(stmt)

    # --- Blocks ---

    def upsert_block(self, block: BlockRecord) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO blocks (block_number, hash, parent_hash, agent_count, event_count,
                                    gas_used, gas_limit, validator, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(block_number) DO UPDATE SET
                    hash = excluded.hash,
                    parent_hash = excluded.parent_hash,
                    agent_count = excluded.agent_count,
                    event_count = excluded.event_count,
                    gas_used = excluded.gas_used,
                    gas_limit = excluded.gas_limit,
                    validator = excluded.validator,
                    timestamp = excluded.timestamp
                """,
                (
                    block.block_number,
                    block.hash,
                    block.parent_hash,
                    block.agent_count,
                    block.event_count,
                    block.gas_used,
                    block.gas_limit,
                    block.validator,
                    block.timestamp,
                ),
            )

    def get_block(self, block_number: int) -> BlockRecord | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM blocks WHERE block_number = ?", (block_number,))
            row = cur.fetchone()
        return _row_to_block(row) if row is not None else None

    def get_blocks(self, *, limit: int = 20, offset: int = 0) -> list[BlockRecord]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM blocks ORDER BY block_number DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = cur.fetchall()
        return [_row_to_block(row) for row in rows]

    # --- Agents ---

    def upsert_agent(self, agent: AgentRecord) -> None:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO agents (address, name, description, owner, status, version,
                                    logic_address, metadata_uri, learning_root, compiler, license,
                                    verified, balance, agent_type, erc8004_id, learning_model,
                                    chain_support_json, mint_fee, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    owner = excluded.owner,
                    status = excluded.status,
                    version = excluded.version,
                    logic_address = excluded.logic_address,
                    metadata_uri = excluded.metadata_uri,
                    learning_root = excluded.learning_root,
                    compiler = excluded.compiler,
                    license = excluded.license,
                    verified = excluded.verified,
                    balance = excluded.balance,
                    agent_type = excluded.agent_type,
                    erc8004_id = excluded.erc8004_id,
                    learning_model = excluded.learning_model,
                    chain_support_json = excluded.chain_support_json,
                    mint_fee = excluded.mint_fee
                """,
                (
                    agent.address,
                    agent.name,
                    agent.description,
                    agent.owner,
                    agent.status,
                    agent.version,
                    agent.logic_address,
                    agent.metadata_uri,
                    agent.learning_root,
                    agent.compiler,
                    agent.license,
                    int(agent.verified),
                    agent.balance,
                    agent.agent_type,
                    agent.erc8004_id,
                    agent.learning_model,
                    json.dumps(list(agent.chain_support)),
                    agent.mint_fee,
                    agent.created_at or now,
                ),
            )

    def get_agent(self, address: str) -> AgentRecord | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM agents WHERE address = ?", (address,))
            row = cur.fetchone()
        return _row_to_agent(row) if row is not None else None

    def list_agents(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        verified_only: bool = False,
        order_by_events: bool = False,
    ) -> list[AgentRecord]:
        sql = "SELECT * FROM agents"
        if verified_only:
            sql += " WHERE verified = 1"
        if order_by_events:
            sql += " ORDER BY total_events DESC, address"
        else:
            sql += " ORDER BY created_at DESC, address"
        sql += " LIMIT ? OFFSET ?"
        with self._cursor() as cur:
            cur.execute(sql, (limit, offset))
            rows = cur.fetchall()
        return [_row_to_agent(row) for row in rows]

    def search_agents(self, query: str, *, limit: int = 50) -> list[AgentRecord]:
        term = f"%{query}%"
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT * FROM agents
                WHERE name LIKE ? OR address LIKE ? OR description LIKE ?
                ORDER BY created_at DESC, address
                LIMIT ?
                """,
                (term, term, term, limit),
            )
            rows = cur.fetchall()
        return [_row_to_agent(row) for row in rows]

    # --- Events / receipts ---

    def event_exists(self, tx_hash: str) -> bool:
        with self._cursor() as cur:
            cur.execute("SELECT 1 FROM events WHERE tx_hash = ? LIMIT 1", (tx_hash,))
            return cur.fetchone() is not None

    def insert_event(self, event: EventRecord) -> int:
        with self._cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO events (agent_address, type, tx_hash, block_number, from_address,
                                        to_address, value, gas_used, gas_price, status, method,
                                        details_json, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.agent_address,
                        event.type,
                        event.tx_hash,
                        event.block_number,
                        event.from_address,
                        event.to_address,
                        event.value,
                        event.gas_used,
                        event.gas_price,
                        event.status,
                        event.method,
                        _dumps(event.details),
                        event.timestamp if event.timestamp is not None else int(time.time()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise _insert_error(e, "event") from e
            row_id = cur.lastrowid or 0
            cur.execute(
                "UPDATE agents SET total_events = total_events + 1 WHERE address = ?",
                (event.agent_address,),
            )
            return row_id

    def get_events(
        self,
        *,
        tx_hash: str | None = None,
        agent_address: str | None = None,
        block_number: int | None = None,
        limit: int = 100,
    ) -> list[EventRecord]:
        sql = "SELECT * FROM events WHERE 1 = 1"
        params: list[Any] = []
        if tx_hash is not None:
            sql += " AND tx_hash = ?"
            params.append(tx_hash)
        if agent_address is not None:
            sql += " AND agent_address = ?"
            params.append(agent_address)
        if block_number is not None:
            sql += " AND block_number = ?"
            params.append(block_number)
        sql += " ORDER BY COALESCE(timestamp, 0) DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_row_to_event(row) for row in rows]

    def insert_receipt(self, receipt: ReceiptRecord) -> int:
        with self._cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO receipts (agent_address, action, tx_hash, from_address, to_address,
                                          value, status, block_number, gas_used, timestamp)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        receipt.agent_address,
                        receipt.action,
                        receipt.tx_hash,
                        receipt.from_address,
                        receipt.to_address,
                        receipt.value,
                        receipt.status,
                        receipt.block_number,
                        receipt.gas_used,
                        receipt.timestamp if receipt.timestamp is not None else int(time.time()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise _insert_error(e, "receipt") from e
            row_id = cur.lastrowid or 0
            cur.execute(
                "UPDATE agents SET total_receipts = total_receipts + 1 WHERE address = ?",
                (receipt.agent_address,),
            )
            return row_id

    def get_receipts(self, agent_address: str | None = None, *, limit: int = 100) -> list[ReceiptRecord]:
        sql = "SELECT * FROM receipts"
        params: list[Any] = []
        if agent_address is not None:
            sql += " WHERE agent_address = ?"
            params.append(agent_address)
        sql += " ORDER BY COALESCE(timestamp, 0) DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_row_to_receipt(row) for row in rows]

    # --- Permissions / snapshots ---

    def insert_permission(self, permission: PermissionRecord) -> int:
        with self._cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO permissions (agent_address, name, granted_to, scope, active, granted_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        permission.agent_address,
                        permission.name,
                        permission.granted_to,
                        permission.scope,
                        int(permission.active),
                        permission.granted_at or int(time.time()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise _insert_error(e, "permission") from e
            return cur.lastrowid or 0

    def get_permissions(self, agent_address: str) -> list[PermissionRecord]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM permissions WHERE agent_address = ? ORDER BY granted_at DESC, id DESC",
                (agent_address,),
            )
            rows = cur.fetchall()
        return [_row_to_permission(row) for row in rows]

    def deactivate_permissions(self, agent_address: str, granted_to: str, name: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE permissions SET active = 0
                WHERE agent_address = ? AND granted_to = ? AND name = ? AND active = 1
                """,
                (agent_address, granted_to, name),
            )
            return cur.rowcount

    def insert_snapshot(self, snapshot: SnapshotRecord) -> int:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM snapshots WHERE agent_address = ? AND root_hash = ?",
                (snapshot.agent_address, snapshot.root_hash),
            )
            if cur.fetchone() is not None:
                raise SnapshotChainError(
                    f"Root {snapshot.root_hash} already recorded for {snapshot.agent_address}"
                )
            if snapshot.parent_hash:
                cur.execute(
                    "SELECT 1 FROM snapshots WHERE agent_address = ? AND root_hash = ?",
                    (snapshot.agent_address, snapshot.parent_hash),
                )
                if cur.fetchone() is None:
                    raise SnapshotChainError(
                        f"Parent {snapshot.parent_hash} is not a known root of {snapshot.agent_address}"
                    )
            try:
                cur.execute(
                    """
                    INSERT INTO snapshots (agent_address, root_hash, parent_hash, size,
                                           block_number, metadata_json, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        snapshot.agent_address,
                        snapshot.root_hash,
                        snapshot.parent_hash,
                        snapshot.size,
                        snapshot.block_number,
                        _dumps(snapshot.metadata),
                        snapshot.created_at or int(time.time()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise _insert_error(e, "snapshot") from e
            return cur.lastrowid or 0

    def get_snapshots(self, agent_address: str) -> list[SnapshotRecord]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM snapshots WHERE agent_address = ? ORDER BY block_number DESC, id DESC",
                (agent_address,),
            )
            rows = cur.fetchall()
        return [_row_to_snapshot(row) for row in rows]

    # --- Sync state ---

    def get_sync_state(self) -> SyncState | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT last_synced_block, last_sync_at, is_live FROM sync_state WHERE id = ?",
                (SYNC_STATE_ID,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return SyncState(
            last_synced_block=row["last_synced_block"],
            last_sync_at=row["last_sync_at"],
            is_live=bool(row["is_live"]),
        )

    def set_sync_state(self, state: SyncState) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO sync_state (id, last_synced_block, last_sync_at, is_live)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    last_synced_block = excluded.last_synced_block,
                    last_sync_at = excluded.last_sync_at,
                    is_live = excluded.is_live
                """,
                (SYNC_STATE_ID, state.last_synced_block, state.last_sync_at, int(state.is_live)),
            )

    # --- Aggregates ---

    def count(self, table: str, *, where: str = "", params: tuple[Any, ...] = ()) -> int:
        if table not in self.COUNTABLE_TABLES:
            raise ValueError(f"Unknown table: {table}")
        sql = f"SELECT COUNT(*) AS n FROM {table}"
        if where:
            sql += f" WHERE {where}"
        with self._cursor() as cur:
            cur.execute(sql, params)
            return int(cur.fetchone()["n"])

    def get_method_counts(self) -> dict[str, int]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT method, COUNT(*) AS n FROM events
                WHERE method IS NOT NULL
                GROUP BY method ORDER BY n DESC, method
                """
            )
            return {row["method"]: int(row["n"]) for row in cur.fetchall()}

    def get_agent_facets(self) -> list[tuple[str, str | None, list[str]]]:
        with self._cursor() as cur:
            cur.execute("SELECT agent_type, learning_model, chain_support_json FROM agents")
            rows = cur.fetchall()
        out: list[tuple[str, str | None, list[str]]] = []
        for row in rows:
            chains = _loads(row["chain_support_json"])
            out.append(
                (row["agent_type"], row["learning_model"], chains if isinstance(chains, list) else [])
            )
        return out

    def clear_all(self) -> None:
        with self._cursor() as cur:
            for table in ("receipts", "snapshots", "permissions", "events", "agents", "blocks", "sync_state"):
                cur.execute(f"DELETE FROM {table}")


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Persisted store for the sync pipeline and the read API.

    Uses a Backend (SQLite for MVP). Agent address and block height are the
    sole identity keys; all writes for the same key merge.
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        self._backend.ensure_schema()

    # --- Blocks ---

    def upsert_block(self, block: BlockRecord) -> None:
        self._backend.upsert_block(block)

    def get_block(self, block_number: int) -> BlockRecord | None:
        return self._backend.get_block(block_number)

    def get_blocks(self, *, limit: int = 20, offset: int = 0) -> list[BlockRecord]:
        return self._backend.get_blocks(limit=limit, offset=offset)

    def count_blocks(self) -> int:
        return self._backend.count("blocks")

    # --- Agents ---

    def upsert_agent(self, agent: AgentRecord) -> AgentRecord:
        """
        Insert or merge by address. Every non-counter field is replaced with
        the given value; total_events, total_receipts and created_at are kept.
        Returns the stored record.
        """
        agent = replace(agent, address=agent.address.lower())
        self._backend.upsert_agent(agent)
        stored = self._backend.get_agent(agent.address)
        if stored is None:
            raise StorageError(f"Agent {agent.address} missing after upsert")
        return stored

    def get_agent_by_address(self, address: str) -> AgentRecord | None:
        return self._backend.get_agent(address.lower())

    def get_agents(self, *, limit: int = 50, offset: int = 0) -> list[AgentRecord]:
        return self._backend.list_agents(limit=limit, offset=offset)

    def get_verified_agents(self, *, limit: int = 50, offset: int = 0) -> list[AgentRecord]:
        return self._backend.list_agents(limit=limit, offset=offset, verified_only=True)

    def get_top_agents(self, *, limit: int = 20) -> list[AgentRecord]:
        """Agents with the most events."""
        return self._backend.list_agents(limit=limit, order_by_events=True)

    def search_agents(self, query: str, *, limit: int = 50) -> list[AgentRecord]:
        query = query.strip()
        if not query:
            return []
        return self._backend.search_agents(query, limit=limit)

    def count_agents(self, *, verified_only: bool = False) -> int:
        if verified_only:
            return self._backend.count("agents", where="verified = 1")
        return self._backend.count("agents")

    # --- Events / receipts ---

    def event_exists(self, tx_hash: str) -> bool:
        return self._backend.event_exists(tx_hash)

    def create_event(self, event: EventRecord) -> int:
        """Insert and bump the agent's event counter. Raises DuplicateRecordError."""
        return self._backend.insert_event(event)

    def get_event_by_tx_hash(self, tx_hash: str) -> EventRecord | None:
        events = self._backend.get_events(tx_hash=tx_hash, limit=1)
        return events[0] if events else None

    def get_events_by_agent(self, address: str, *, limit: int = 100) -> list[EventRecord]:
        return self._backend.get_events(agent_address=address.lower(), limit=limit)

    def get_events_by_block(self, block_number: int, *, limit: int = 500) -> list[EventRecord]:
        return self._backend.get_events(block_number=block_number, limit=limit)

    def get_recent_events(self, *, limit: int = 50) -> list[EventRecord]:
        """Latest events across all agents."""
        return self._backend.get_events(limit=limit)

    def create_receipt(self, receipt: ReceiptRecord) -> int:
        """Insert and bump the agent's receipt counter. Raises DuplicateRecordError."""
        return self._backend.insert_receipt(receipt)

    def get_receipts_by_agent(self, address: str, *, limit: int = 100) -> list[ReceiptRecord]:
        return self._backend.get_receipts(address.lower(), limit=limit)

    def get_recent_receipts(self, *, limit: int = 50) -> list[ReceiptRecord]:
        return self._backend.get_receipts(limit=limit)

    # --- Permissions / snapshots ---

    def create_permission(self, permission: PermissionRecord) -> int:
        return self._backend.insert_permission(permission)

    def get_permissions_by_agent(self, address: str) -> list[PermissionRecord]:
        return self._backend.get_permissions(address.lower())

    def revoke_permission(self, address: str, granted_to: str, name: str) -> int:
        return self._backend.deactivate_permissions(address.lower(), granted_to.lower(), name)

    def create_snapshot(self, snapshot: SnapshotRecord) -> int:
        """
        Append a learning snapshot. The root must be new for the agent and the
        parent (if any) must already be one of its roots, so each agent's
        chain stays acyclic. Raises SnapshotChainError otherwise.
        """
        return self._backend.insert_snapshot(snapshot)

    def get_snapshots_by_agent(self, address: str) -> list[SnapshotRecord]:
        return self._backend.get_snapshots(address.lower())

    # --- Sync state ---

    def get_sync_state(self) -> SyncState | None:
        return self._backend.get_sync_state()

    def get_last_synced_height(self) -> int:
        state = self._backend.get_sync_state()
        return state.last_synced_block if state is not None else 0

    def set_last_synced_height(self, height: int) -> None:
        """Persist the cursor; also stamps last_sync_at and marks the source live."""
        self._backend.set_sync_state(
            SyncState(last_synced_block=height, last_sync_at=int(time.time()), is_live=True)
        )

    # --- Aggregates / maintenance ---

    def clear_all(self) -> None:
        """Delete all data. Only used at first boot when the cursor is 0."""
        logger.warning("database_clear_all")
        self._backend.clear_all()

    def get_stats(self) -> dict[str, int]:
        latest = self._backend.get_blocks(limit=1)
        return {
            "total_agents": self._backend.count("agents"),
            "verified_agents": self._backend.count("agents", where="verified = 1"),
            "total_events": self._backend.count("events"),
            "total_receipts": self._backend.count("receipts"),
            "total_permissions": self._backend.count("permissions"),
            "total_blocks": self._backend.count("blocks"),
            "total_snapshots": self._backend.count("snapshots"),
            "latest_block": latest[0].block_number if latest else 0,
        }

    def get_protocol_stats(self) -> dict[str, Any]:
        """BAP-578 breakdown: agent types, ERC-8004 registrations, learning models, chains."""
        facets = self._backend.get_agent_facets()
        learning_models: dict[str, int] = {}
        chain_coverage: dict[str, int] = {}
        for _agent_type, model, chains in facets:
            if model:
                learning_models[model] = learning_models.get(model, 0) + 1
            for chain in chains:
                if chain:
                    chain_coverage[chain] = chain_coverage.get(chain, 0) + 1
        return {
            "total_agents": len(facets),
            "merkle_learning_agents": sum(1 for f in facets if f[0] == "merkle_learning"),
            "json_light_agents": sum(1 for f in facets if f[0] == "json_light"),
            "erc8004_registered": self._backend.count("agents", where="erc8004_id IS NOT NULL"),
            "total_merkle_roots": self._backend.count("snapshots"),
            "learning_model_breakdown": learning_models,
            "chain_coverage": chain_coverage,
        }

    def get_method_breakdown(self) -> dict[str, int]:
        """Event count per derived method name, most frequent first."""
        return self._backend.get_method_counts()


def get_database(path: str | Path | None = None) -> Database:
    """
    Return a Database instance (SQLite) with the schema ensured.

    path: Path to the SQLite file. Default: "nfascan.db" in cwd.
    """
    if path is None:
        path = Path("nfascan.db")
    backend = SQLiteBackend(path)
    db = Database(backend)
    db.ensure_schema()
    return db
