"""
Chain sync pipeline: block walker, contract enricher, scheduler, registry discovery.
"""

from backend_nfascan.sync.block_walker import BlockWalker, BlockWalkResult
from backend_nfascan.sync.discovery import AgentDiscoverySync, DiscoveryConfig, DiscoveryResult
from backend_nfascan.sync.enricher import ContractEnricher
from backend_nfascan.sync.scheduler import SyncConfig, SyncPassResult, SyncScheduler

__all__ = [
    "AgentDiscoverySync",
    "BlockWalkResult",
    "BlockWalker",
    "ContractEnricher",
    "DiscoveryConfig",
    "DiscoveryResult",
    "SyncConfig",
    "SyncPassResult",
    "SyncScheduler",
]
