"""
Tests for the read-only FastAPI endpoints over a temporary database.
"""

from __future__ import annotations

import httpx

from backend_nfascan.api_server import server
from backend_nfascan.chain.rpc_client import JsonRpcClient
from backend_nfascan.database import (
    AgentRecord,
    BlockRecord,
    EventRecord,
    PermissionRecord,
    ReceiptRecord,
    SnapshotRecord,
)

AGENT = "0x" + "b" * 40
OWNER = "0x" + "c" * 40


def _seed(db) -> None:
    db.upsert_agent(
        AgentRecord(
            address=AGENT,
            name="LearningAgent",
            owner=OWNER,
            description="BAP-578 compliant agent (score: 86/100).",
            verified=True,
            agent_type="merkle_learning",
            learning_model="rag",
            erc8004_id="erc8004:bsc:9",
            chain_support=["bsc_mainnet"],
        )
    )
    db.upsert_block(BlockRecord(block_number=1_000, hash="0xb1000", agent_count=1, event_count=4, timestamp=1_700_000_000))
    db.create_event(
        EventRecord(
            agent_address=AGENT,
            type="transaction",
            tx_hash="0xtx1",
            block_number=1_000,
            from_address=OWNER,
            to_address=AGENT,
            value="0 BNB",
            method="executeAction",
            details={"bap578": True},
            timestamp=1_700_000_000,
        )
    )


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_sync_status_before_first_pass(client):
    data = client.get("/sync/status").json()
    assert data["last_synced_block"] == 0
    assert data["source"] == "none"
    assert data["chain_head"] == 1_010
    assert data["lag"] == 1_010
    assert data["network"] == "BNB Smart Chain Mainnet"


def test_sync_status_after_pass(client, db):
    _seed(db)
    db.set_last_synced_height(1_000)
    data = client.get("/sync/status").json()
    assert data["last_synced_block"] == 1_000
    assert data["lag"] == 10
    assert data["source"] == "live"
    assert data["last_sync_at"] is not None
    assert data["total_agents"] == 1
    assert data["total_events"] == 1
    assert data["total_blocks"] == 1


def test_sync_status_chain_head_unavailable(client, db):
    from backend_nfascan.api_server.server import app, get_chain_head

    async def _no_head():
        return None

    app.dependency_overrides[get_chain_head] = _no_head
    data = client.get("/sync/status").json()
    assert data["chain_head"] is None
    assert data["lag"] is None


def test_stats(client, db):
    _seed(db)
    data = client.get("/stats").json()
    assert data["total_agents"] == 1
    assert data["verified_agents"] == 1
    assert data["latest_block"] == 1_000
    assert data["method_breakdown"] == {"executeAction": 1}


def test_protocol_stats(client, db):
    _seed(db)
    data = client.get("/bap578/stats").json()
    assert data["merkle_learning_agents"] == 1
    assert data["json_light_agents"] == 0
    assert data["erc8004_registered"] == 1
    assert data["learning_model_breakdown"] == {"rag": 1}
    assert data["chain_coverage"] == {"bsc_mainnet": 1}


def test_get_agent(client, db):
    _seed(db)
    r = client.get(f"/agents/{AGENT.upper().replace('0X', '0x')}")
    assert r.status_code == 200
    data = r.json()
    assert data["address"] == AGENT
    assert data["name"] == "LearningAgent"
    assert data["total_events"] == 1
    # verified 30 + identity 25 + merkle 20 + model 10 + chain 5
    assert data["trust_score"] == 90
    assert data["trust_level"] == "high"


def test_get_agent_not_found(client):
    r = client.get("/agents/0x" + "0" * 40)
    assert r.status_code == 404
    assert r.json()["detail"] == "Agent not found"


def test_get_agent_events(client, db):
    _seed(db)
    events = client.get(f"/agents/{AGENT}/events", params={"limit": 10}).json()
    assert [e["tx_hash"] for e in events] == ["0xtx1"]
    assert events[0]["details"] == {"bap578": True}
    assert client.get(f"/agents/{AGENT}/events", params={"limit": 0}).status_code == 422
    assert client.get("/agents/0xnope/events").status_code == 404


def test_get_block(client, db):
    _seed(db)
    data = client.get("/blocks/1000").json()
    assert data["hash"] == "0xb1000"
    assert data["agent_count"] == 1
    assert [e["tx_hash"] for e in data["events"]] == ["0xtx1"]
    assert client.get("/blocks/999").status_code == 404
    assert client.get("/blocks/not-a-number").status_code == 422


def test_get_transaction(client, db):
    _seed(db)
    data = client.get("/tx/0xtx1").json()
    assert data["method"] == "executeAction"
    assert data["agent_address"] == AGENT
    r = client.get("/tx/0xmissing")
    assert r.status_code == 404
    assert r.json()["detail"] == "Transaction not found"


def test_search(client, db):
    _seed(db)
    assert [a["name"] for a in client.get("/search", params={"q": "learning"}).json()] == ["LearningAgent"]
    assert client.get("/search", params={"q": "router"}).json() == []
    assert client.get("/search").json() == []


def test_sync_status_null_block_number(client, monkeypatch):
    def _null_height(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

    def _client(url, *, timeout_sec):
        transport = httpx.MockTransport(_null_height)
        return JsonRpcClient(url, timeout_sec=timeout_sec, client=httpx.AsyncClient(transport=transport))

    monkeypatch.setattr(server, "JsonRpcClient", _client)
    server.app.dependency_overrides.pop(server.get_chain_head)

    r = client.get("/sync/status")
    assert r.status_code == 200
    assert r.json()["chain_head"] is None
    assert r.json()["lag"] is None


def _seed_activity(db) -> None:
    _seed(db)
    db.create_receipt(
        ReceiptRecord(
            agent_address=AGENT,
            action="contract_call",
            tx_hash="0xtx1",
            from_address=OWNER,
            to_address=AGENT,
            block_number=1_000,
            value="0 BNB",
            timestamp=1_700_000_000,
        )
    )
    db.create_permission(
        PermissionRecord(
            agent_address=AGENT,
            name="execute",
            granted_to=OWNER,
            scope="token #9",
            granted_at=1_700_000_000,
        )
    )
    db.create_snapshot(
        SnapshotRecord(agent_address=AGENT, root_hash="0xroot1", size=4, block_number=1_000)
    )
    db.create_snapshot(
        SnapshotRecord(
            agent_address=AGENT,
            root_hash="0xroot2",
            parent_hash="0xroot1",
            size=6,
            block_number=1_001,
            metadata={"token_id": 9},
        )
    )


def test_list_agents(client, db):
    _seed(db)
    db.upsert_agent(AgentRecord(address="0x" + "e" * 40, name="Router", owner=OWNER))
    data = client.get("/agents").json()
    assert {a["name"] for a in data} == {"LearningAgent", "Router"}
    assert len(client.get("/agents", params={"limit": 1}).json()) == 1
    assert client.get("/agents", params={"offset": -1}).status_code == 422

    verified = client.get("/agents/verified").json()
    assert [a["address"] for a in verified] == [AGENT]

    top = client.get("/agents/top", params={"limit": 5}).json()
    assert top[0]["address"] == AGENT
    assert top[0]["total_events"] == 1


def test_agent_receipts_permissions_snapshots(client, db):
    _seed_activity(db)

    receipts = client.get(f"/agents/{AGENT}/receipts").json()
    assert [r["action"] for r in receipts] == ["contract_call"]

    permissions = client.get(f"/agents/{AGENT}/permissions").json()
    assert permissions[0]["name"] == "execute"
    assert permissions[0]["active"] is True

    snapshots = client.get(f"/agents/{AGENT}/snapshots").json()
    assert [s["root_hash"] for s in snapshots] == ["0xroot2", "0xroot1"]
    assert snapshots[0]["parent_hash"] == "0xroot1"
    assert snapshots[0]["metadata"] == {"token_id": 9}

    for sub in ("receipts", "permissions", "snapshots"):
        assert client.get(f"/agents/0xnope/{sub}").status_code == 404


def test_list_blocks_and_block_events(client, db):
    _seed(db)
    db.upsert_block(BlockRecord(block_number=1_001, hash="0xb1001", timestamp=1_700_000_003))
    blocks = client.get("/blocks").json()
    assert [b["block_number"] for b in blocks] == [1_001, 1_000]
    assert blocks[1]["events"] == []

    events = client.get("/blocks/1000/events").json()
    assert [e["tx_hash"] for e in events] == ["0xtx1"]
    assert client.get("/blocks/1001/events").json() == []
    assert client.get("/blocks/999/events").status_code == 404


def test_recent_events_and_receipts(client, db):
    _seed_activity(db)
    assert [e["tx_hash"] for e in client.get("/events").json()] == ["0xtx1"]
    receipts = client.get("/receipts", params={"limit": 10}).json()
    assert [r["agent_address"] for r in receipts] == [AGENT]
    assert client.get("/events", params={"limit": 0}).status_code == 422
