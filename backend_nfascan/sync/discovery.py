"""
Agent discovery over the two known registries.

The ERC-8004 Identity Registry is enumerated 1..totalSupply (its supply is
trusted). The BAP-578 NFA contract is scanned token by token up to a hard
cap, stopping after a run of consecutive misses. Token IDs are then
cross-referenced and materialized as synthetic agents with deterministic
addresses; registry transaction history is stored as events.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from backend_nfascan.analysis_engine.compliance import AgentType
from backend_nfascan.analysis_engine.selectors import derive_method_name
from backend_nfascan.chain.abi import Erc721Reader
from backend_nfascan.chain.models import ExplorerTransaction, TokenInfo
from backend_nfascan.chain.provider import ChainProvider
from backend_nfascan.chain.units import format_native_value, gwei_from_wei
from backend_nfascan.core.exceptions import DuplicateRecordError, ProviderError, StorageError
from backend_nfascan.database import AgentRecord, Database, EventRecord
from backend_nfascan.scan_logging import get_logger
from backend_nfascan.sync.block_walker import DEFAULT_CHAIN_ID, EVENT_TYPE_TRANSACTION

logger = get_logger(__name__)

ERC8004_IDENTITY_REGISTRY = "0xBE6745f74DF1427a073154345040a37558059eBb"
ERC8004_REPUTATION_REGISTRY = "0x0dEe18C860514147518604911166E034e4C83623"
BAP578_NFA_CONTRACT = "0xf2954d349D7FF9E0d4322d750c7c2921b0445fdf"
NFA_MARKETPLACE = "0x0260A2fa1d0Ea88F8165f5B0b61349F7735e4250"

ERC8004_ADDRESS_PREFIX = "0x8004agent"
NFA_ADDRESS_PREFIX = "0xbap578nfa"
# Zero-pad widths for token IDs in the synthetic addresses
ERC8004_ID_WIDTH = 28
NFA_ID_WIDTH = 26

PROTOCOL_LICENSE = "MIT"
NFA_COMPILER = "BAP-578 NFA"
ERC8004_COMPILER = "ERC-8004"
NFA_MINT_FEE = "Free"
ERC8004_MINT_FEE = "10 U"


def erc8004_agent_address(token_id: int) -> str:
    return f"{ERC8004_ADDRESS_PREFIX}{str(token_id).zfill(ERC8004_ID_WIDTH)}".lower()


def nfa_agent_address(token_id: int) -> str:
    return f"{NFA_ADDRESS_PREFIX}{str(token_id).zfill(NFA_ID_WIDTH)}".lower()


def erc8004_id(token_id: int) -> str:
    return f"erc8004:bsc:{token_id}"


def learning_model_from_services(token: TokenInfo) -> str:
    """MCP service → mcp, A2A → hybrid, anything else → rag."""
    services = token.service_names
    if "MCP" in services:
        return "mcp"
    if "A2A" in services:
        return "hybrid"
    return "rag"


@dataclass
class DiscoveryConfig:
    identity_registry: str = ERC8004_IDENTITY_REGISTRY
    reputation_registry: str = ERC8004_REPUTATION_REGISTRY
    nfa_contract: str = BAP578_NFA_CONTRACT
    marketplace: str = NFA_MARKETPLACE
    max_scan_id: int = 200
    max_consecutive_missing: int = 20
    call_delay_sec: float = 0.1
    """Pause between sequential calls for one token."""
    miss_delay_sec: float = 0.05
    registry_tx_delay_sec: float = 0.3
    history_page_size: int = 100
    chain_id: str = DEFAULT_CHAIN_ID

    def protocol_contracts(self) -> dict[str, str]:
        """Address → display name for the protocol's own contracts."""
        return {
            self.identity_registry: "ERC-8004 Identity Registry",
            self.reputation_registry: "ERC-8004 Reputation Registry",
            self.nfa_contract: "BAP-578 NFA Registry",
            self.marketplace: "BAP-578 NFA Marketplace",
        }


@dataclass
class DiscoveryResult:
    erc8004_agents: int = 0
    nfa_agents: int = 0
    linked_agents: int = 0
    """Token IDs present in both registries."""
    standalone_nfas: int = 0
    protocol_contracts_created: int = 0
    registry_events_stored: int = 0
    errors: list[str] = field(default_factory=list)


class AgentDiscoverySync:
    def __init__(
        self,
        provider: ChainProvider,
        db: Database,
        config: DiscoveryConfig | None = None,
    ) -> None:
        self._provider = provider
        self._db = db
        self._config = config or DiscoveryConfig()
        self._reader = Erc721Reader(provider)

    async def run(self) -> DiscoveryResult:
        cfg = self._config
        logger.info("discovery_started", identity_registry=cfg.identity_registry, nfa_contract=cfg.nfa_contract)
        result = DiscoveryResult()

        erc8004_tokens, nfa_tokens = await asyncio.gather(
            self.fetch_erc8004_tokens(), self.scan_nfa_tokens()
        )
        result.erc8004_agents = len(erc8004_tokens)
        result.nfa_agents = len(nfa_tokens)

        nfa_by_id = {t.token_id: t for t in nfa_tokens}
        erc8004_ids = {t.token_id for t in erc8004_tokens}

        for token in erc8004_tokens:
            nfa = nfa_by_id.get(token.token_id)
            try:
                self._db.upsert_agent(self._erc8004_agent(token, nfa))
            except StorageError as e:
                result.errors.append(f"erc8004:{token.token_id}: {e}")
                logger.warning("discovery_store_failed", token_id=token.token_id, registry="erc8004", error=str(e))
                continue
            if nfa is not None:
                result.linked_agents += 1

        for nfa in nfa_tokens:
            if nfa.token_id in erc8004_ids:
                continue
            try:
                self._db.upsert_agent(self._standalone_nfa_agent(nfa))
                result.standalone_nfas += 1
            except StorageError as e:
                result.errors.append(f"nfa:{nfa.token_id}: {e}")
                logger.warning("discovery_store_failed", token_id=nfa.token_id, registry="nfa", error=str(e))

        result.protocol_contracts_created = self._ensure_protocol_contracts()
        result.registry_events_stored = await self.sync_registry_transactions()

        logger.info(
            "discovery_complete",
            erc8004_agents=result.erc8004_agents,
            nfa_agents=result.nfa_agents,
            linked_agents=result.linked_agents,
            standalone_nfas=result.standalone_nfas,
            registry_events=result.registry_events_stored,
        )
        return result

    # --- Enumeration ---

    async def _fetch_token(self, contract: str, token_id: int) -> TokenInfo:
        """ownerOf (raises on a missing token), then best-effort tokenURI and metadata."""
        owner = await self._reader.owner_of(contract, token_id)
        await asyncio.sleep(self._config.call_delay_sec)
        try:
            uri = await self._reader.token_uri(contract, token_id)
        except ProviderError:
            uri = ""
        await asyncio.sleep(self._config.call_delay_sec)
        metadata: dict[str, Any] | None = None
        if uri:
            try:
                metadata = await self._provider.fetch_offchain_metadata(uri)
            except ProviderError:
                metadata = None
        return TokenInfo(token_id=token_id, owner=owner, token_uri=uri, metadata=metadata)

    async def fetch_erc8004_tokens(self) -> list[TokenInfo]:
        contract = self._config.identity_registry
        try:
            total = await self._reader.total_supply(contract)
        except ProviderError as e:
            logger.warning("discovery_total_supply_failed", contract=contract, error=str(e))
            total = 0
        logger.info("erc8004_total_supply", total=total)
        tokens: list[TokenInfo] = []
        for token_id in range(1, total + 1):
            try:
                tokens.append(await self._fetch_token(contract, token_id))
            except ProviderError as e:
                logger.warning("erc8004_token_failed", token_id=token_id, error=str(e))
        return tokens

    async def scan_nfa_tokens(self) -> list[TokenInfo]:
        """
        Try 1..max_scan_id; a failed ownerOf counts as a miss and the scan
        stops after max_consecutive_missing misses in a row.
        """
        cfg = self._config
        tokens: list[TokenInfo] = []
        consecutive_missing = 0
        for token_id in range(1, cfg.max_scan_id + 1):
            try:
                tokens.append(await self._fetch_token(cfg.nfa_contract, token_id))
                consecutive_missing = 0
            except ProviderError:
                consecutive_missing += 1
                await asyncio.sleep(cfg.miss_delay_sec)
                if consecutive_missing >= cfg.max_consecutive_missing:
                    logger.info("nfa_scan_stopped", last_token_id=token_id, found=len(tokens))
                    break
        return tokens

    # --- Materialization ---

    def _erc8004_agent(self, token: TokenInfo, nfa: TokenInfo | None) -> AgentRecord:
        is_nfa = nfa is not None
        return AgentRecord(
            address=erc8004_agent_address(token.token_id),
            name=token.name or f"Agent #{token.token_id}",
            description=_erc8004_description(token, is_nfa),
            owner=token.owner.lower(),
            status="active",
            version="1.0.0",
            logic_address=self._config.nfa_contract.lower() if is_nfa else None,
            metadata_uri=token.token_uri or None,
            compiler=NFA_COMPILER if is_nfa else ERC8004_COMPILER,
            license=PROTOCOL_LICENSE,
            verified=True,
            balance="0 BNB" if is_nfa else None,
            agent_type=(AgentType.MERKLE_LEARNING if is_nfa else AgentType.JSON_LIGHT).value,
            erc8004_id=erc8004_id(token.token_id),
            learning_model=learning_model_from_services(token) if is_nfa else None,
            chain_support=[self._config.chain_id],
            mint_fee=NFA_MINT_FEE if is_nfa else ERC8004_MINT_FEE,
        )

    def _standalone_nfa_agent(self, nfa: TokenInfo) -> AgentRecord:
        if nfa.description:
            description = (
                f"{nfa.description} BAP-578 NFA (ID: {nfa.token_id}) "
                "with autonomous execution capabilities."
            )
        else:
            description = f"BAP-578 Non-Fungible Agent (NFA ID: {nfa.token_id}) on BNB Chain."
        return AgentRecord(
            address=nfa_agent_address(nfa.token_id),
            name=nfa.name or f"NFA Agent #{nfa.token_id}",
            description=description,
            owner=nfa.owner.lower(),
            logic_address=self._config.nfa_contract.lower(),
            metadata_uri=nfa.token_uri or None,
            compiler=NFA_COMPILER,
            license=PROTOCOL_LICENSE,
            verified=True,
            agent_type=AgentType.MERKLE_LEARNING.value,
            erc8004_id=None,
            learning_model=learning_model_from_services(nfa),
            chain_support=[self._config.chain_id],
            mint_fee=NFA_MINT_FEE,
        )

    def _protocol_agent(self, address: str, name: str) -> AgentRecord:
        address = address.lower()
        return AgentRecord(
            address=address,
            name=name,
            description=f"Official {name} on BNB Chain.",
            owner=address,
            compiler="Solidity",
            license=PROTOCOL_LICENSE,
            verified=True,
            agent_type=AgentType.MERKLE_LEARNING.value,
            chain_support=[self._config.chain_id],
        )

    def _ensure_protocol_contracts(self) -> int:
        created = 0
        for address, name in self._config.protocol_contracts().items():
            if self._db.get_agent_by_address(address) is None:
                self._db.upsert_agent(self._protocol_agent(address, name))
                created += 1
        return created

    # --- Registry history ---

    async def sync_registry_transactions(self) -> int:
        """Store recent txs of the NFA contract and identity registry as events."""
        cfg = self._config
        names = cfg.protocol_contracts()
        stored = 0
        for contract in (cfg.nfa_contract, cfg.identity_registry):
            try:
                txs = await self._provider.get_transaction_history(
                    contract, page=1, page_size=cfg.history_page_size, sort="desc"
                )
            except ProviderError as e:
                logger.warning("registry_history_failed", contract=contract, error=str(e))
                continue
            if txs:
                agent = self._db.get_agent_by_address(contract)
                if agent is None:
                    agent = self._db.upsert_agent(self._protocol_agent(contract, names[contract]))
                count = self._store_registry_txs(agent.address, txs)
                stored += count
                logger.info("registry_transactions_stored", contract=contract, stored=count)
            await asyncio.sleep(cfg.registry_tx_delay_sec)
        return stored

    def _store_registry_txs(self, agent_address: str, txs: list[ExplorerTransaction]) -> int:
        stored = 0
        for tx in txs:
            if self._db.event_exists(tx.hash):
                continue
            try:
                self._db.create_event(
                    EventRecord(
                        agent_address=agent_address,
                        type=EVENT_TYPE_TRANSACTION,
                        tx_hash=tx.hash,
                        block_number=tx.block_number,
                        from_address=tx.from_address,
                        to_address=tx.to_address,
                        value=format_native_value(tx.value_wei),
                        gas_used=str(tx.gas_used if tx.gas_used is not None else tx.gas),
                        gas_price=gwei_from_wei(tx.gas_price_wei),
                        status=tx.status,
                        method=derive_method_name(tx.input),
                    )
                )
                stored += 1
            except DuplicateRecordError:
                continue
            except StorageError as e:
                logger.warning("registry_tx_store_failed", tx_hash=tx.hash, error=str(e))
        return stored


def _erc8004_description(token: TokenInfo, is_nfa: bool) -> str:
    parts: list[str] = []
    if token.description:
        parts.append(token.description)
    parts.append(f"ERC-8004 registered agent (ID: {token.token_id}).")
    if is_nfa:
        parts.append("Upgraded to BAP-578 NFA with autonomous execution capabilities.")
    services = token.service_names
    if services:
        parts.append(f"Services: {', '.join(services)}.")
    if (token.metadata or {}).get("x402Support"):
        parts.append("X402 payment support enabled.")
    return " ".join(parts)
