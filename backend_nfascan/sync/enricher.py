"""
Contract enricher: one address → balance, bytecode, verified source, recent
history (fetched concurrently) → classification → merged agent upsert.

Each sub-fetch degrades to its own fallback on provider failure, so one
flaky upstream call never aborts enrichment of the contract.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from backend_nfascan.analysis_engine.compliance import Classification, classify_contract
from backend_nfascan.chain.models import ExplorerTransaction, VerifiedSource
from backend_nfascan.chain.provider import ChainProvider
from backend_nfascan.core.exceptions import ProviderError
from backend_nfascan.database import AgentRecord, Database
from backend_nfascan.scan_logging import bind_address, get_logger
from backend_nfascan.sync.block_walker import DEFAULT_CHAIN_ID

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_HISTORY_PAGE_SIZE = 50
EMPTY_BYTECODE = "0x"


async def _fetch_or(label: str, address: str, coro: Awaitable[T], fallback: T) -> T:
    try:
        return await coro
    except ProviderError as e:
        logger.warning("enrich_fetch_failed", fetch=label, address=address, error=str(e))
        return fallback


def build_description(
    address: str,
    source: VerifiedSource | None,
    classification: Classification,
) -> str:
    """Human-readable summary: score, detected modules, verification, selector hits, behaviour note."""
    compliance = classification.compliance
    parts: list[str] = []
    if compliance.score > 0:
        parts.append(f"BAP-578 compliant agent (score: {compliance.score}/100).")
        if compliance.has_learning_module:
            parts.append("Learning module detected.")
        if compliance.has_permission_system:
            parts.append("Permission system detected.")
        if compliance.has_memory_module:
            parts.append("Memory module detected.")
    if source is not None and source.is_verified:
        name = f" ({source.contract_name})" if source.contract_name else ""
        parts.append(f"Verified BSC contract{name}. Compiler: {source.compiler_version or 'unknown'}.")
    else:
        parts.append(f"Unverified BSC contract at {address}.")
    if classification.bytecode_methods:
        parts.append(f"Bytecode selector hits: {', '.join(classification.bytecode_methods)}.")
    if classification.behavior_note:
        parts.append(classification.behavior_note)
    return " ".join(parts)


def _owner_for(address: str, existing: AgentRecord | None) -> str:
    """Registry-discovered agents keep their token holder; any other contract owns itself."""
    if existing is not None and existing.erc8004_id:
        return existing.owner
    return address


class ContractEnricher:
    def __init__(
        self,
        provider: ChainProvider,
        db: Database,
        *,
        chain_id: str = DEFAULT_CHAIN_ID,
        history_page_size: int = DEFAULT_HISTORY_PAGE_SIZE,
    ) -> None:
        self._provider = provider
        self._db = db
        self._chain_id = chain_id
        self._history_page_size = history_page_size

    async def enrich(self, address: str) -> AgentRecord | None:
        """
        Classify one contract and upsert the consolidated agent. Returns the
        stored agent, or None when an unexpected error skipped this contract.
        """
        address = address.lower()
        try:
            return await self._enrich(address)
        except Exception:
            logger.exception("enrich_contract_failed", address=address)
            return None

    async def _enrich(self, address: str) -> AgentRecord:
        balance, bytecode, source, history = await asyncio.gather(
            _fetch_or("balance", address, self._provider.get_balance(address), None),
            _fetch_or("bytecode", address, self._provider.get_runtime_bytecode(address), EMPTY_BYTECODE),
            _fetch_or("source", address, self._provider.get_verified_source(address), None),
            _fetch_or(
                "history",
                address,
                self._provider.get_transaction_history(
                    address, page=1, page_size=self._history_page_size, sort="desc"
                ),
                [],
            ),
        )
        history_list: list[ExplorerTransaction] = list(history or [])
        classification = classify_contract(source, bytecode, history_list)
        compliance = classification.compliance

        verified = source is not None and source.is_verified
        existing = self._db.get_agent_by_address(address)
        logic_address = (
            source.implementation_address
            if source is not None and source.is_proxy and source.implementation_address
            else None
        )
        agent = AgentRecord(
            address=address,
            name=source.contract_name if source is not None and source.contract_name else f"Contract {address[:10]}...",
            description=build_description(address, source, classification),
            owner=_owner_for(address, existing),
            status=existing.status if existing is not None else "active",
            version=existing.version if existing is not None else "1.0.0",
            logic_address=logic_address,
            metadata_uri=existing.metadata_uri if existing is not None else None,
            learning_root=existing.learning_root if existing is not None else None,
            compiler=(source.compiler_version or None) if source is not None else None,
            license=(source.license_type or None) if source is not None else None,
            verified=verified,
            balance=balance,
            agent_type=compliance.agent_type.value,
            erc8004_id=existing.erc8004_id if existing is not None else None,
            learning_model=classification.learning_model,
            chain_support=[self._chain_id],
            mint_fee=existing.mint_fee if existing is not None else None,
        )
        stored = self._db.upsert_agent(agent)
        log = bind_address(address, __name__)
        if compliance.score > 0:
            log.info(
                "bap578_agent_detected",
                name=stored.name,
                score=compliance.score,
                agent_type=compliance.agent_type.value,
            )
        else:
            log.debug("contract_enriched", verified=verified)
        return stored
