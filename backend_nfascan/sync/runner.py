"""
Sync service runner: process lifecycle for the sync pipeline.

- run_sync_service(): async; first-boot clear, initial catch-up, periodic
  pass, one agent-discovery run, then idle until stopped.
- run_sync_thread(): blocking wrapper with its own event loop, used as a
  thread target by main.py so the API keeps the main thread.
"""

from __future__ import annotations

import asyncio
import threading

from backend_nfascan.chain.client import BscChainProvider
from backend_nfascan.config.settings import Settings
from backend_nfascan.database import Database, get_database
from backend_nfascan.scan_logging import get_logger
from backend_nfascan.sync.block_walker import BlockWalker
from backend_nfascan.sync.discovery import AgentDiscoverySync, DiscoveryConfig
from backend_nfascan.sync.enricher import ContractEnricher
from backend_nfascan.sync.scheduler import SyncConfig, SyncScheduler

logger = get_logger(__name__)

STOP_POLL_INTERVAL_SEC = 1.0


def build_scheduler(provider: BscChainProvider, db: Database, settings: Settings) -> SyncScheduler:
    walker = BlockWalker(provider, db, chain_id=settings.chain_label)
    enricher = ContractEnricher(provider, db, chain_id=settings.chain_label)
    config = SyncConfig(
        blocks_per_sync=settings.blocks_per_sync,
        interval_sec=settings.sync_interval_sec,
    )
    return SyncScheduler(provider, db, walker, enricher, config)


async def _wait_for_stop(stop_event: threading.Event | None) -> None:
    while stop_event is None or not stop_event.is_set():
        await asyncio.sleep(STOP_POLL_INTERVAL_SEC)


async def run_sync_service(settings: Settings, stop_event: threading.Event | None = None) -> None:
    """Run the sync pipeline until stop_event is set (forever when None)."""
    db = get_database(settings.db_path)
    async with BscChainProvider.from_settings(settings) as provider:
        scheduler = build_scheduler(provider, db, settings)

        if db.get_last_synced_height() == 0:
            logger.info("sync_first_boot", message="No sync cursor; clearing store before live sync")
            db.clear_all()

        await scheduler.run_initial_sync()
        scheduler.start_periodic()

        if settings.discovery_enabled:
            try:
                await AgentDiscoverySync(
                    provider, db, DiscoveryConfig(chain_id=settings.chain_label)
                ).run()
            except Exception:
                logger.exception("discovery_failed")

        try:
            await _wait_for_stop(stop_event)
        finally:
            await scheduler.stop_periodic()
    logger.info("sync_service_stopped")


def run_sync_thread(settings: Settings, stop_event: threading.Event | None = None) -> None:
    """Thread target: run the sync service on a fresh event loop."""
    try:
        asyncio.run(run_sync_service(settings, stop_event))
    except Exception:
        logger.exception("sync_service_crashed")
