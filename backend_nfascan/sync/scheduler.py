"""
Sync scheduler: initial catch-up and the recurring incremental pass.

Owns its state (busy flag, periodic task). Single-flight: a pass requested
while another is running is dropped, not queued. A failed pass releases the
busy flag without advancing the cursor; the next pass resumes from the last
persisted height.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from backend_nfascan.chain.provider import ChainProvider
from backend_nfascan.database import Database
from backend_nfascan.scan_logging import get_logger
from backend_nfascan.sync.block_walker import BlockWalker
from backend_nfascan.sync.enricher import ContractEnricher

logger = get_logger(__name__)

DEFAULT_BLOCKS_PER_SYNC = 20
DEFAULT_INITIAL_ENRICH_LIMIT = 15
DEFAULT_PERIODIC_MAX_BLOCKS = 5
DEFAULT_PERIODIC_ENRICH_LIMIT = 5
DEFAULT_INTERVAL_SEC = 60.0


@dataclass
class SyncConfig:
    """Batch sizes and cadence for the sync passes."""

    blocks_per_sync: int = DEFAULT_BLOCKS_PER_SYNC
    initial_enrich_limit: int = DEFAULT_INITIAL_ENRICH_LIMIT
    periodic_max_blocks: int = DEFAULT_PERIODIC_MAX_BLOCKS
    periodic_enrich_limit: int = DEFAULT_PERIODIC_ENRICH_LIMIT
    interval_sec: float = DEFAULT_INTERVAL_SEC


@dataclass
class SyncPassResult:
    start_block: int
    end_block: int
    blocks_walked: int = 0
    blocks_failed: int = 0
    contracts: list[str] = field(default_factory=list)
    enriched: int = 0


class SyncScheduler:
    def __init__(
        self,
        provider: ChainProvider,
        db: Database,
        walker: BlockWalker,
        enricher: ContractEnricher,
        config: SyncConfig | None = None,
    ) -> None:
        self._provider = provider
        self._db = db
        self._walker = walker
        self._enricher = enricher
        self._config = config or SyncConfig()
        self._busy = False
        self._periodic_task: asyncio.Task[None] | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_periodic_running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    async def run_initial_sync(self) -> SyncPassResult | None:
        """
        Catch up one batch: from cursor + 1 (or blocks_per_sync below head on
        first run) for blocks_per_sync heights, capped at head. Returns None
        when skipped (busy) or failed.
        """
        if self._busy:
            logger.info("sync_skipped_busy", pass_name="initial")
            return None
        self._busy = True
        try:
            cursor = self._db.get_last_synced_height()
            head = await self._provider.get_latest_height()
            batch = self._config.blocks_per_sync
            start = cursor + 1 if cursor > 0 else max(0, head - batch)
            end = min(start + batch - 1, head)
            logger.info("sync_initial_started", chain_head=head, last_synced=cursor, start_block=start, end_block=end)
            if end < start:
                return SyncPassResult(start_block=start, end_block=cursor)
            result = await self._run_pass(start, end, self._config.initial_enrich_limit)
            logger.info(
                "sync_initial_complete",
                start_block=start,
                end_block=end,
                contracts=len(result.contracts),
                enriched=result.enriched,
                blocks_failed=result.blocks_failed,
            )
            return result
        except Exception:
            logger.exception("sync_initial_failed")
            return None
        finally:
            self._busy = False

    async def run_periodic_pass(self) -> SyncPassResult | None:
        """
        Walk up to periodic_max_blocks new heights. With no cursor yet, start
        periodic_max_blocks below head like the first catch-up. No-op when busy
        or at head.
        """
        if self._busy:
            logger.debug("sync_skipped_busy", pass_name="periodic")
            return None
        self._busy = True
        try:
            cursor = self._db.get_last_synced_height()
            head = await self._provider.get_latest_height()
            if head <= cursor:
                return None
            batch = self._config.periodic_max_blocks
            if cursor > 0:
                start = cursor + 1
                end = min(cursor + batch, head)
            else:
                # No cursor yet (initial sync failed): start near the head, not at genesis
                start = max(0, head - batch)
                end = min(start + batch - 1, head)
            result = await self._run_pass(start, end, self._config.periodic_enrich_limit)
            logger.info(
                "sync_periodic_complete",
                start_block=start,
                end_block=end,
                contracts=len(result.contracts),
                enriched=result.enriched,
            )
            return result
        except Exception:
            logger.exception("sync_periodic_failed")
            return None
        finally:
            self._busy = False

    async def _run_pass(self, start: int, end: int, enrich_limit: int) -> SyncPassResult:
        result = SyncPassResult(start_block=start, end_block=end)
        seen: set[str] = set()
        for height in range(start, end + 1):
            try:
                walk = await self._walker.process_block(height)
            except Exception as e:
                result.blocks_failed += 1
                logger.warning("sync_block_failed", block_number=height, error=str(e))
                continue
            result.blocks_walked += 1
            for address in walk.contract_addresses:
                if address not in seen:
                    seen.add(address)
                    result.contracts.append(address)
            logger.debug(
                "sync_block_done",
                block_number=height,
                tx_count=walk.tx_count,
                contracts=len(walk.contract_addresses),
            )
        for address in result.contracts[:enrich_limit]:
            if await self._enricher.enrich(address) is not None:
                result.enriched += 1
        self._db.set_last_synced_height(end)
        return result

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.interval_sec)
            await self.run_periodic_pass()

    def start_periodic(self) -> None:
        """Start the recurring pass on the running loop. Idempotent."""
        if self.is_periodic_running:
            return
        self._periodic_task = asyncio.get_running_loop().create_task(self._periodic_loop())
        logger.info("sync_periodic_started", interval_sec=self._config.interval_sec)

    async def stop_periodic(self) -> None:
        task = self._periodic_task
        self._periodic_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("sync_periodic_stopped")

    async def get_sync_lag(self) -> int:
        """Chain head minus last synced height, never negative."""
        head = await self._provider.get_latest_height()
        return max(0, head - self._db.get_last_synced_height())
