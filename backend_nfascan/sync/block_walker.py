"""
Block walker: one block height → Block row, contract-call candidates, events/receipts.

Per-block work is bounded: at most max_contracts_per_block distinct call
targets are recorded and at most max_txs_per_block transactions are scanned.
Re-walking a height is safe (block upsert by height, tx-hash existence check
before event/receipt insert). Learning-tree and permission calls also update
the agent's snapshots and permission rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from backend_nfascan.analysis_engine.compliance import AgentType
from backend_nfascan.analysis_engine.selectors import (
    BAP578_CALL_ARGS,
    BAP578_METHOD_SELECTORS,
    call_selector,
    derive_method_name,
    is_bap578_call,
)
from backend_nfascan.chain.abi import decode_call_args
from backend_nfascan.chain.models import ChainBlock, ChainTransaction
from backend_nfascan.chain.provider import ChainProvider
from backend_nfascan.chain.units import format_gas, format_native_value, gwei_from_wei
from backend_nfascan.core.exceptions import DuplicateRecordError, SnapshotChainError, StorageError
from backend_nfascan.database import (
    AgentRecord,
    BlockRecord,
    Database,
    EventRecord,
    PermissionRecord,
    ReceiptRecord,
    SnapshotRecord,
)
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_CONTRACTS_PER_BLOCK = 5
DEFAULT_MAX_TXS_PER_BLOCK = 50
DEFAULT_CHAIN_ID = "bsc_mainnet"

EVENT_TYPE_TRANSACTION = "transaction"
RECEIPT_ACTION_CONTRACT_CALL = "contract_call"

# grantPermission/revokePermission level → permission name
PERMISSION_NAMES = (
    "execute",
    "read_state",
    "write_state",
    "delegate",
    "upgrade",
    "monitor",
    "configure",
)


@dataclass
class BlockWalkResult:
    contract_addresses: list[str] = field(default_factory=list)
    """Distinct call targets recorded in this block, in first-seen order."""
    tx_count: int = 0


def placeholder_agent(address: str, owner: str, chain_id: str = DEFAULT_CHAIN_ID) -> AgentRecord:
    """Minimal agent for a contract first seen as a call target; enrichment fills it in."""
    address = address.lower()
    return AgentRecord(
        address=address,
        name=f"Contract {address[:10]}...",
        owner=owner,
        agent_type=AgentType.JSON_LIGHT.value,
        verified=False,
        chain_support=[chain_id],
    )


def _block_record(block: ChainBlock, contract_calls: int) -> BlockRecord:
    return BlockRecord(
        block_number=block.number,
        hash=block.hash,
        parent_hash=block.parent_hash,
        agent_count=contract_calls,
        event_count=block.tx_count,
        gas_used=format_gas(block.gas_used),
        gas_limit=format_gas(block.gas_limit),
        validator=block.miner,
        timestamp=block.timestamp,
    )


class BlockWalker:
    def __init__(
        self,
        provider: ChainProvider,
        db: Database,
        *,
        max_contracts_per_block: int = DEFAULT_MAX_CONTRACTS_PER_BLOCK,
        max_txs_per_block: int = DEFAULT_MAX_TXS_PER_BLOCK,
        chain_id: str = DEFAULT_CHAIN_ID,
    ) -> None:
        self._provider = provider
        self._db = db
        self._max_contracts = max_contracts_per_block
        self._max_txs = max_txs_per_block
        self._chain_id = chain_id

    async def process_block(self, height: int) -> BlockWalkResult:
        """
        Fetch and record one block. Returns the recorded contract-call targets
        and the block's transaction count; a block not yet produced yields an
        empty result and writes nothing. Provider errors propagate to the caller.
        """
        block = await self._provider.get_block(height)
        if block is None:
            logger.debug("block_not_found", block_number=height)
            return BlockWalkResult()

        self._db.upsert_block(_block_record(block, 0))

        contract_calls = [tx for tx in block.transactions if tx.is_contract_call]
        candidates: list[str] = []
        for tx in contract_calls:
            if len(candidates) >= self._max_contracts:
                break
            if tx.to_address and tx.to_address not in candidates:
                candidates.append(tx.to_address)

        recorded = set(candidates)
        for tx in block.transactions[: self._max_txs]:
            if tx.is_contract_call and tx.to_address in recorded:
                self._record_call(tx, block)

        self._db.upsert_block(_block_record(block, len(contract_calls)))
        logger.debug(
            "block_processed",
            block_number=block.number,
            tx_count=block.tx_count,
            contract_calls=len(contract_calls),
            candidates=len(candidates),
        )
        return BlockWalkResult(contract_addresses=candidates, tx_count=block.tx_count)

    def _ensure_agent(self, address: str, first_caller: str) -> AgentRecord:
        agent = self._db.get_agent_by_address(address)
        if agent is not None:
            return agent
        return self._db.upsert_agent(placeholder_agent(address, first_caller, self._chain_id))

    def _record_call(self, tx: ChainTransaction, block: ChainBlock) -> None:
        if self._db.event_exists(tx.hash):
            return
        to_address = tx.to_address or ""
        try:
            agent = self._ensure_agent(to_address, tx.from_address)
            method = derive_method_name(tx.input)
            self._db.create_event(
                EventRecord(
                    agent_address=agent.address,
                    type=EVENT_TYPE_TRANSACTION,
                    tx_hash=tx.hash,
                    block_number=block.number,
                    from_address=tx.from_address,
                    to_address=to_address,
                    value=format_native_value(tx.value_wei),
                    gas_used=str(tx.gas),
                    gas_price=gwei_from_wei(tx.gas_price_wei),
                    status="confirmed",
                    method=method,
                    details={"bap578": is_bap578_call(tx.input)},
                    timestamp=block.timestamp,
                )
            )
            self._db.create_receipt(
                ReceiptRecord(
                    agent_address=agent.address,
                    action=RECEIPT_ACTION_CONTRACT_CALL,
                    tx_hash=tx.hash,
                    from_address=tx.from_address,
                    to_address=to_address,
                    value=format_native_value(tx.value_wei),
                    status="confirmed",
                    block_number=block.number,
                    gas_used=str(tx.gas),
                    timestamp=block.timestamp,
                )
            )
        except DuplicateRecordError:
            # Expected when a height is re-walked after a partial pass
            return
        except StorageError as e:
            logger.warning(
                "block_tx_record_failed",
                block_number=block.number,
                tx_hash=tx.hash,
                address=to_address,
                error=str(e),
            )
            return
        self._apply_bap578_call(agent, tx, block)

    def _apply_bap578_call(self, agent: AgentRecord, tx: ChainTransaction, block: ChainBlock) -> None:
        """
        Learning-tree updates become snapshots (and the agent's learning_root);
        permission grants and revocations update the permission rows. Calls
        whose arguments do not decode are left as plain events.
        """
        selector = call_selector(tx.input)
        types = BAP578_CALL_ARGS.get(selector or "")
        if types is None:
            return
        args = decode_call_args(tx.input, types)
        if args is None:
            logger.debug("bap578_args_undecodable", tx_hash=tx.hash, address=agent.address)
            return
        try:
            if selector == BAP578_METHOD_SELECTORS["updateLearningTree"]:
                self._record_learning_update(agent, tx, block, args)
            elif selector == BAP578_METHOD_SELECTORS["grantPermission"]:
                token_id, grantee, level = args
                self._db.create_permission(
                    PermissionRecord(
                        agent_address=agent.address,
                        name=permission_name(level),
                        granted_to=grantee,
                        scope=f"token #{token_id}",
                        granted_at=block.timestamp,
                    )
                )
            else:
                _, grantee, level = args
                revoked = self._db.revoke_permission(agent.address, grantee, permission_name(level))
                logger.debug("permission_revoked", address=agent.address, granted_to=grantee, rows=revoked)
        except StorageError as e:
            logger.warning(
                "bap578_call_apply_failed",
                block_number=block.number,
                tx_hash=tx.hash,
                address=agent.address,
                error=str(e),
            )

    def _record_learning_update(
        self, agent: AgentRecord, tx: ChainTransaction, block: ChainBlock, args: tuple[Any, ...]
    ) -> None:
        token_id, root, proof = args
        previous = self._db.get_snapshots_by_agent(agent.address)
        try:
            self._db.create_snapshot(
                SnapshotRecord(
                    agent_address=agent.address,
                    root_hash=root,
                    parent_hash=previous[0].root_hash if previous else None,
                    size=len(proof),
                    block_number=block.number,
                    metadata={"token_id": token_id, "tx_hash": tx.hash},
                    created_at=block.timestamp,
                )
            )
        except SnapshotChainError as e:
            logger.info("learning_snapshot_skipped", address=agent.address, tx_hash=tx.hash, reason=str(e))
            return
        current = self._db.get_agent_by_address(agent.address) or agent
        self._db.upsert_agent(replace(current, learning_root=root))


def permission_name(level: int) -> str:
    if 0 <= level < len(PERMISSION_NAMES):
        return PERMISSION_NAMES[level]
    return f"level_{level}"
