"""
Tests for BlockWalker: block rows, contract-call candidates, events/receipts,
per-block caps and idempotent re-walks.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import CALLER, FakeProvider, make_block, make_tx
from eth_abi import encode

from backend_nfascan.core.exceptions import RpcError
from backend_nfascan.database import AgentRecord
from backend_nfascan.sync.block_walker import BlockWalker, permission_name, placeholder_agent

AGENT_A = "0x" + "1" * 40
AGENT_B = "0x" + "2" * 40
AGENT_C = "0x" + "3" * 40
EOA = "0x" + "9" * 40

EXECUTE_ACTION = "0x55150c16" + "0" * 64
ERC20_TRANSFER = "0xa9059cbb" + "0" * 128
UNKNOWN_CALL = "0xdeadbeef" + "0" * 64


def _mixed_block(number: int = 100):
    return make_block(
        number,
        [
            make_tx("0xt1", AGENT_A, EXECUTE_ACTION),
            make_tx("0xt2", AGENT_A, ERC20_TRANSFER, value_wei=10**18),
            make_tx("0xt3", AGENT_B, UNKNOWN_CALL),
            make_tx("0xt4", EOA, "0x", value_wei=5 * 10**17),
            make_tx("0xt5", None, "0x6080604052"),
        ],
    )


def test_process_block_records_calls(db):
    provider = FakeProvider(head=100)
    provider.blocks[100] = _mixed_block()
    walker = BlockWalker(provider, db)

    result = asyncio.run(walker.process_block(100))

    assert result.contract_addresses == [AGENT_A, AGENT_B]
    assert result.tx_count == 5
    block = db.get_block(100)
    assert block.agent_count == 3
    assert block.event_count == 5
    assert block.gas_limit == "30,000,000"
    assert block.validator == "0x" + "a" * 40

    agent = db.get_agent_by_address(AGENT_A)
    assert agent.name == "Contract 0x11111111..."
    assert agent.owner == CALLER
    assert agent.agent_type == "json_light"
    assert agent.chain_support == ["bsc_mainnet"]
    assert (agent.total_events, agent.total_receipts) == (2, 2)
    assert db.get_agent_by_address(EOA) is None

    event = db.get_event_by_tx_hash("0xt1")
    assert event.method == "executeAction"
    assert event.details == {"bap578": True}
    assert event.type == "transaction"
    assert event.gas_used == "21000"
    assert event.gas_price == "3.00 Gwei"
    assert event.timestamp == block.timestamp
    assert db.get_event_by_tx_hash("0xt2").value == "1.000000 BNB"
    assert db.get_event_by_tx_hash("0xt3").method == "call_0xdeadbeef"
    assert db.get_event_by_tx_hash("0xt4") is None
    assert db.get_receipts_by_agent(AGENT_B)[0].action == "contract_call"


def test_process_block_twice_is_idempotent(db):
    provider = FakeProvider(head=100)
    provider.blocks[100] = _mixed_block()
    walker = BlockWalker(provider, db)

    asyncio.run(walker.process_block(100))
    first = db.get_stats()
    second_result = asyncio.run(walker.process_block(100))

    assert second_result.contract_addresses == [AGENT_A, AGENT_B]
    assert db.get_stats() == first
    assert first["total_events"] == 3
    assert first["total_receipts"] == 3
    assert db.get_agent_by_address(AGENT_A).total_events == 2


def test_existing_agent_not_overwritten(db):
    db.upsert_agent(AgentRecord(address=AGENT_A, name="KnownAgent", owner=EOA, agent_type="merkle_learning"))
    provider = FakeProvider(head=100)
    provider.blocks[100] = _mixed_block()
    asyncio.run(BlockWalker(provider, db).process_block(100))

    agent = db.get_agent_by_address(AGENT_A)
    assert agent.name == "KnownAgent"
    assert agent.owner == EOA
    assert agent.agent_type == "merkle_learning"
    assert agent.total_events == 2


def test_max_contracts_per_block(db):
    provider = FakeProvider(head=7)
    provider.blocks[7] = make_block(
        7,
        [
            make_tx("0xc1", AGENT_A, EXECUTE_ACTION),
            make_tx("0xc2", AGENT_B, EXECUTE_ACTION),
            make_tx("0xc3", AGENT_C, EXECUTE_ACTION),
            make_tx("0xc4", AGENT_A, EXECUTE_ACTION),
        ],
    )
    walker = BlockWalker(provider, db, max_contracts_per_block=2)

    result = asyncio.run(walker.process_block(7))

    assert result.contract_addresses == [AGENT_A, AGENT_B]
    assert db.get_agent_by_address(AGENT_C) is None
    assert db.get_event_by_tx_hash("0xc3") is None
    assert db.get_agent_by_address(AGENT_A).total_events == 2
    # agent_count counts every contract call, not just recorded ones
    assert db.get_block(7).agent_count == 4


def test_max_txs_per_block(db):
    provider = FakeProvider(head=8)
    provider.blocks[8] = make_block(
        8, [make_tx(f"0xs{i}", AGENT_A, EXECUTE_ACTION) for i in range(6)]
    )
    walker = BlockWalker(provider, db, max_txs_per_block=4)

    asyncio.run(walker.process_block(8))

    assert db.get_agent_by_address(AGENT_A).total_events == 4
    assert db.get_event_by_tx_hash("0xs4") is None


def test_missing_block_writes_nothing(db):
    walker = BlockWalker(FakeProvider(head=5), db)
    result = asyncio.run(walker.process_block(99))
    assert result.contract_addresses == []
    assert result.tx_count == 0
    assert db.count_blocks() == 0


def test_provider_error_propagates(db):
    provider = FakeProvider(head=5)
    provider.failing_heights.add(3)
    with pytest.raises(RpcError):
        asyncio.run(BlockWalker(provider, db).process_block(3))
    assert db.get_block(3) is None


def test_placeholder_agent():
    agent = placeholder_agent("0xABCDEF0123456789ABCDEF0123456789ABCDEF01", owner=CALLER, chain_id="bsc_testnet")
    assert agent.address == "0xabcdef0123456789abcdef0123456789abcdef01"
    assert agent.name == "Contract 0xabcdef01..."
    assert agent.verified is False
    assert agent.chain_support == ["bsc_testnet"]


GRANTEE = "0x" + "d" * 40
ROOT_1 = bytes([1]) * 32
ROOT_2 = bytes([2]) * 32


def _learning_update(root: bytes, proof_len: int = 2) -> str:
    return "0x976a605b" + encode(
        ["uint256", "bytes32", "bytes32[]"], [7, root, [bytes([9]) * 32] * proof_len]
    ).hex()


def _permission_call(selector: str, level: int) -> str:
    return selector + encode(["uint256", "address", "uint8"], [7, GRANTEE, level]).hex()


def test_learning_updates_build_snapshot_chain(db):
    provider = FakeProvider(head=101)
    provider.blocks[100] = make_block(100, [make_tx("0xl1", AGENT_A, _learning_update(ROOT_1, 3))])
    provider.blocks[101] = make_block(101, [make_tx("0xl2", AGENT_A, _learning_update(ROOT_2))])
    walker = BlockWalker(provider, db)

    asyncio.run(walker.process_block(100))
    asyncio.run(walker.process_block(101))

    latest, first = db.get_snapshots_by_agent(AGENT_A)
    assert first.root_hash == "0x" + ROOT_1.hex()
    assert first.parent_hash is None
    assert first.size == 3
    assert first.metadata == {"token_id": 7, "tx_hash": "0xl1"}
    assert latest.root_hash == "0x" + ROOT_2.hex()
    assert latest.parent_hash == first.root_hash
    assert latest.block_number == 101
    assert db.get_agent_by_address(AGENT_A).learning_root == latest.root_hash
    assert db.get_event_by_tx_hash("0xl2").method == "updateLearningTree"


def test_repeated_learning_root_is_skipped(db):
    provider = FakeProvider(head=101)
    provider.blocks[100] = make_block(100, [make_tx("0xl1", AGENT_A, _learning_update(ROOT_1))])
    provider.blocks[101] = make_block(101, [make_tx("0xl2", AGENT_A, _learning_update(ROOT_1))])
    walker = BlockWalker(provider, db)

    asyncio.run(walker.process_block(100))
    asyncio.run(walker.process_block(101))

    assert len(db.get_snapshots_by_agent(AGENT_A)) == 1
    # The call itself is still recorded
    assert db.get_event_by_tx_hash("0xl2") is not None


def test_undecodable_learning_update_is_plain_event(db):
    provider = FakeProvider(head=100)
    provider.blocks[100] = make_block(100, [make_tx("0xl1", AGENT_A, "0x976a605b" + "00" * 8)])

    asyncio.run(BlockWalker(provider, db).process_block(100))

    assert db.get_snapshots_by_agent(AGENT_A) == []
    assert db.get_event_by_tx_hash("0xl1").details == {"bap578": True}


def test_permission_grant_and_revoke(db):
    provider = FakeProvider(head=101)
    provider.blocks[100] = make_block(
        100,
        [
            make_tx("0xg1", AGENT_A, _permission_call("0x78a9e84a", 0)),
            make_tx("0xg2", AGENT_A, _permission_call("0x78a9e84a", 5)),
        ],
    )
    provider.blocks[101] = make_block(101, [make_tx("0xr1", AGENT_A, _permission_call("0xed665272", 0))])
    walker = BlockWalker(provider, db)

    asyncio.run(walker.process_block(100))
    granted = {p.name: p for p in db.get_permissions_by_agent(AGENT_A)}
    assert set(granted) == {"execute", "monitor"}
    assert granted["execute"].granted_to == GRANTEE
    assert granted["execute"].scope == "token #7"
    assert granted["execute"].granted_at == 1_700_000_000 + 100 * 3
    assert all(p.active for p in granted.values())

    asyncio.run(walker.process_block(101))
    active = {p.name: p.active for p in db.get_permissions_by_agent(AGENT_A)}
    assert active == {"execute": False, "monitor": True}


def test_permission_name():
    assert permission_name(0) == "execute"
    assert permission_name(6) == "configure"
    assert permission_name(42) == "level_42"
