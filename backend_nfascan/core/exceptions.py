"""
Application-level exceptions.

Provider errors are transient and degrade to fallbacks at the call site;
ContractCallReverted doubles as the "token does not exist" signal when scanning
registries. Storage errors mark persistence conflicts the sync layer expects
(duplicates) or rejects (snapshot chain violations).
"""

from __future__ import annotations


class NfaScanError(Exception):
    """Base class for all NFA Scan errors."""


class ProviderError(NfaScanError):
    """Upstream data source failed (network, timeout, rate limit, non-2xx)."""


class RpcError(ProviderError):
    """JSON-RPC transport error or an `error` member in the response."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ContractCallReverted(RpcError):
    """eth_call reverted or returned no data (e.g. ownerOf on an unminted token)."""


class ExplorerError(ProviderError):
    """Block-explorer API request failed."""


class StorageError(NfaScanError):
    """Persistence layer failure."""


class DuplicateRecordError(StorageError):
    """Insert conflicted with an existing row (duplicate key)."""


class SnapshotChainError(StorageError):
    """Snapshot would break the per-agent parent-hash chain (cycle or unknown parent)."""
