"""
Database abstraction layer: blocks, agents, events/receipts, permissions, snapshots, sync cursor.

SQLite via Database and get_database(); backend is swappable.
"""

from backend_nfascan.database.database import (
    Database,
    DatabaseBackend,
    SQLiteBackend,
    get_database,
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

__all__ = [
    "AgentRecord",
    "BlockRecord",
    "Database",
    "DatabaseBackend",
    "EventRecord",
    "PermissionRecord",
    "ReceiptRecord",
    "SQLiteBackend",
    "SnapshotRecord",
    "SyncState",
    "get_database",
]
