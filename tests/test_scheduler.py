"""
Tests for SyncScheduler: catch-up window, resume from the cursor, periodic
pass, single-flight and failure handling.
"""

from __future__ import annotations

import asyncio

from conftest import FakeProvider, make_block, make_tx

from backend_nfascan.sync.block_walker import BlockWalker
from backend_nfascan.sync.enricher import ContractEnricher
from backend_nfascan.sync.scheduler import SyncConfig, SyncScheduler

EXECUTE_ACTION = "0x55150c16" + "0" * 64


class SlowProvider(FakeProvider):
    """Yields to the loop on every block fetch so passes can overlap."""

    async def get_block(self, height):
        await asyncio.sleep(0.01)
        return await super().get_block(height)


def _scheduler(provider, db, **config) -> SyncScheduler:
    cfg = SyncConfig(**{"blocks_per_sync": 5, "interval_sec": 0.01, **config})
    return SyncScheduler(
        provider,
        db,
        BlockWalker(provider, db),
        ContractEnricher(provider, db),
        cfg,
    )


def _fill_blocks(provider: FakeProvider, heights, contract_for=None) -> None:
    for h in heights:
        txs = []
        if contract_for is not None:
            txs.append(make_tx(f"0xtx{h}", contract_for(h), EXECUTE_ACTION))
        provider.blocks[h] = make_block(h, txs)


def test_first_run_walks_window_below_head(db):
    provider = FakeProvider(head=1_000)
    _fill_blocks(provider, range(990, 1_001))
    scheduler = _scheduler(provider, db)

    result = asyncio.run(scheduler.run_initial_sync())

    assert (result.start_block, result.end_block) == (995, 999)
    assert provider.block_requests == [995, 996, 997, 998, 999]
    assert result.blocks_walked == 5
    assert db.get_last_synced_height() == 999
    assert scheduler.is_busy is False


def test_resume_from_cursor(db):
    """After a cursor of H, the next pass starts at H + 1."""
    provider = FakeProvider(head=1_000)
    _fill_blocks(provider, range(500, 520))
    db.set_last_synced_height(500)

    result = asyncio.run(_scheduler(provider, db).run_initial_sync())

    assert provider.block_requests == [501, 502, 503, 504, 505]
    assert result.end_block == 505
    assert db.get_last_synced_height() == 505


def test_initial_sync_capped_at_head(db):
    provider = FakeProvider(head=502)
    _fill_blocks(provider, range(500, 503))
    db.set_last_synced_height(500)

    result = asyncio.run(_scheduler(provider, db).run_initial_sync())

    assert provider.block_requests == [501, 502]
    assert result.end_block == 502


def test_initial_sync_at_head_walks_nothing(db):
    provider = FakeProvider(head=500)
    db.set_last_synced_height(500)

    result = asyncio.run(_scheduler(provider, db).run_initial_sync())

    assert result.blocks_walked == 0
    assert provider.block_requests == []
    assert db.get_last_synced_height() == 500


def test_periodic_pass(db):
    provider = FakeProvider(head=507)
    _fill_blocks(provider, range(500, 510))
    db.set_last_synced_height(505)
    scheduler = _scheduler(provider, db, periodic_max_blocks=5)

    result = asyncio.run(scheduler.run_periodic_pass())
    assert provider.block_requests == [506, 507]
    assert result.end_block == 507
    assert db.get_last_synced_height() == 507

    # At head: no-op
    assert asyncio.run(scheduler.run_periodic_pass()) is None
    assert db.get_last_synced_height() == 507


def test_periodic_pass_bounded(db):
    provider = FakeProvider(head=600)
    _fill_blocks(provider, range(500, 601))
    db.set_last_synced_height(500)

    asyncio.run(_scheduler(provider, db, periodic_max_blocks=3).run_periodic_pass())

    assert provider.block_requests == [501, 502, 503]
    assert db.get_last_synced_height() == 503


def test_periodic_pass_without_cursor_starts_near_head(db):
    provider = FakeProvider(head=1_000)
    _fill_blocks(provider, range(990, 1_001))

    result = asyncio.run(_scheduler(provider, db, periodic_max_blocks=5).run_periodic_pass())

    assert provider.block_requests == [995, 996, 997, 998, 999]
    assert (result.start_block, result.end_block) == (995, 999)
    assert db.get_last_synced_height() == 999


def test_busy_scheduler_skips_pass(db):
    provider = FakeProvider(head=1_000)
    scheduler = _scheduler(provider, db)
    scheduler._busy = True

    assert asyncio.run(scheduler.run_initial_sync()) is None
    assert asyncio.run(scheduler.run_periodic_pass()) is None
    assert provider.block_requests == []
    assert db.get_last_synced_height() == 0


def test_overlapping_passes_single_flight(db):
    provider = SlowProvider(head=1_000)
    _fill_blocks(provider, range(990, 1_001))
    scheduler = _scheduler(provider, db)

    async def run():
        return await asyncio.gather(scheduler.run_initial_sync(), scheduler.run_periodic_pass())

    initial, periodic = asyncio.run(run())

    assert initial is not None
    assert periodic is None
    assert provider.block_requests == [995, 996, 997, 998, 999]


def test_failed_pass_keeps_cursor(db):
    provider = FakeProvider(head=1_000)
    provider.failing = {"get_latest_height"}
    db.set_last_synced_height(700)
    scheduler = _scheduler(provider, db)

    assert asyncio.run(scheduler.run_initial_sync()) is None
    assert asyncio.run(scheduler.run_periodic_pass()) is None
    assert db.get_last_synced_height() == 700
    assert scheduler.is_busy is False


def test_block_failure_counted_and_pass_continues(db):
    provider = FakeProvider(head=1_000)
    _fill_blocks(provider, range(500, 520))
    provider.failing_heights.add(503)
    db.set_last_synced_height(500)

    result = asyncio.run(_scheduler(provider, db).run_initial_sync())

    assert result.blocks_failed == 1
    assert result.blocks_walked == 4
    assert db.get_block(503) is None
    assert db.get_block(504) is not None


def test_enrich_limit_and_dedup(db):
    provider = FakeProvider(head=1_000)
    contracts = {501: "0x" + "1" * 40, 502: "0x" + "2" * 40, 503: "0x" + "1" * 40, 504: "0x" + "3" * 40}
    _fill_blocks(provider, range(501, 506), contract_for=lambda h: contracts.get(h, "0x" + "4" * 40))
    db.set_last_synced_height(500)

    result = asyncio.run(_scheduler(provider, db, initial_enrich_limit=2).run_initial_sync())

    assert result.contracts == ["0x" + "1" * 40, "0x" + "2" * 40, "0x" + "3" * 40, "0x" + "4" * 40]
    assert result.enriched == 2
    assert provider.enrich_requests == ["0x" + "1" * 40, "0x" + "2" * 40]


def test_periodic_task_start_and_stop(db):
    provider = FakeProvider(head=503)
    _fill_blocks(provider, range(500, 504))
    db.set_last_synced_height(500)
    scheduler = _scheduler(provider, db)

    async def run():
        scheduler.start_periodic()
        scheduler.start_periodic()
        assert scheduler.is_periodic_running is True
        for _ in range(100):
            if db.get_last_synced_height() == 503:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop_periodic()

    asyncio.run(run())
    assert scheduler.is_periodic_running is False
    assert db.get_last_synced_height() == 503


def test_get_sync_lag(db):
    provider = FakeProvider(head=1_000)
    db.set_last_synced_height(990)
    scheduler = _scheduler(provider, db)
    assert asyncio.run(scheduler.get_sync_lag()) == 10
    provider.head = 900
    assert asyncio.run(scheduler.get_sync_lag()) == 0
