"""
Rule-based BAP-578 compliance classification for one contract.

Table-driven and network-free: verified source / ABI text, runtime bytecode
and recent explorer history in, a scored classification out. Missing or
malformed evidence degrades to "no evidence" (score 0, json_light); nothing
here raises on bad input.

The behaviour cross-check is advisory only: it produces a sentence for the
agent description and never moves the score.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from backend_nfascan.analysis_engine.selectors import (
    BAP578_SELECTORS,
    derive_method_name,
    selectors_in_bytecode,
)
from backend_nfascan.chain.models import ExplorerTransaction, VerifiedSource


class AgentType(str, Enum):
    MERKLE_LEARNING = "merkle_learning"
    JSON_LIGHT = "json_light"


CORE_FUNCTIONS: tuple[str, ...] = (
    "executeAction",
    "fundAgent",
    "getState",
    "pause",
    "unpause",
    "terminate",
    "setLogicAddress",
    "getAgentMetadata",
    "updateAgentMetadata",
)
LEARNING_FUNCTIONS: tuple[str, ...] = ("updateLearningTree", "getLearningMetrics", "verifyLearning")
PERMISSION_FUNCTIONS: tuple[str, ...] = ("grantPermission", "revokePermission", "hasPermission")
MEMORY_FUNCTIONS: tuple[str, ...] = ("registerMemoryModule", "getMemoryModule")

SIGNATURE_MARKERS: tuple[str, ...] = (
    "bap578",
    "bap-578",
    "nonfungibleagent",
    "non_fungible_agent",
    "ibap578",
)

# Score weights per matched function / flag
CORE_WEIGHT = 12
LEARNING_WEIGHT = 15
PERMISSION_WEIGHT = 8
MEMORY_WEIGHT = 5
SIGNATURE_WEIGHT = 20
MAX_SCORE = 100

# Gate: below this many core matches, only the signature flag can score
MIN_CORE_MATCHES = 3
MIN_LEARNING_MATCHES = 2
MIN_PERMISSION_MATCHES = 2
MIN_MEMORY_MATCHES = 1

EVENT_HINTS: dict[str, tuple[str, ...]] = {
    "updateLearningTree": ("updatelearningtree", "learning", "merkle", "snapshot"),
    "verifyLearning": ("verifylearning", "learningverified", "proof"),
}

LEARNING_MODEL_METHOD = "updateLearningTree"


@dataclass
class ComplianceResult:
    """Scored classification plus the match counts that produced it."""

    agent_type: AgentType = AgentType.JSON_LIGHT
    score: int = 0
    """0-100; nonzero only when the gate passes."""
    has_learning_module: bool = False
    has_permission_system: bool = False
    has_memory_module: bool = False
    core_matches: int = 0
    learning_matches: int = 0
    permission_matches: int = 0
    memory_matches: int = 0
    signature_flag: bool = False

    @property
    def is_compliant(self) -> bool:
        return self.score > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_type": self.agent_type.value,
            "score": self.score,
            "has_learning_module": self.has_learning_module,
            "has_permission_system": self.has_permission_system,
            "has_memory_module": self.has_memory_module,
            "core_matches": self.core_matches,
            "learning_matches": self.learning_matches,
            "permission_matches": self.permission_matches,
            "memory_matches": self.memory_matches,
            "signature_flag": self.signature_flag,
        }


@dataclass(frozen=True)
class BehaviorCheck:
    has_calls: bool
    has_event_hints: bool


@dataclass
class Classification:
    """Everything the enricher needs from one classification run."""

    compliance: ComplianceResult
    learning_model: str | None = None
    bytecode_selectors: list[str] = field(default_factory=list)
    behavior_note: str | None = None

    @property
    def bytecode_methods(self) -> list[str]:
        return [BAP578_SELECTORS[s] for s in self.bytecode_selectors if s in BAP578_SELECTORS]


def parse_abi_function_names(abi_text: str | None) -> set[str]:
    """Function names from an ABI JSON array. Absent or malformed ABI → empty set."""
    if not abi_text:
        return set()
    try:
        abi = json.loads(abi_text)
    except (TypeError, ValueError):
        return set()
    if not isinstance(abi, list):
        return set()
    names: set[str] = set()
    for item in abi:
        if isinstance(item, dict) and item.get("type") == "function" and item.get("name"):
            names.add(str(item["name"]))
    return names


def _count_matches(functions: Sequence[str], abi_names: set[str], source: str) -> int:
    # A hit in either the ABI set or the lowercased source counts once
    return sum(1 for fn in functions if fn in abi_names or fn.lower() in source)


def _has_signature(source: str, contract_name: str) -> bool:
    if any(marker in source for marker in SIGNATURE_MARKERS):
        return True
    if "merkle" in source and "learning" in source:
        return True
    return "agent" in contract_name and ("executeaction" in source or "fundagent" in source)


def check_compliance(source: VerifiedSource | None) -> ComplianceResult:
    """
    Score a contract against the BAP-578 interface groups.

    Score = min(100, 12c + 15l + 8p + 5m + 20s), computed only when
    c >= 3 or the signature flag is set; partial keyword coincidence
    alone stays at 0.
    """
    result = ComplianceResult()
    if source is None:
        return result

    abi_names = parse_abi_function_names(source.abi)
    src = (source.source_code or "").lower()
    name = (source.contract_name or "").lower()

    result.core_matches = _count_matches(CORE_FUNCTIONS, abi_names, src)
    result.learning_matches = _count_matches(LEARNING_FUNCTIONS, abi_names, src)
    result.permission_matches = _count_matches(PERMISSION_FUNCTIONS, abi_names, src)
    result.memory_matches = _count_matches(MEMORY_FUNCTIONS, abi_names, src)
    result.signature_flag = _has_signature(src, name)

    result.has_learning_module = result.learning_matches >= MIN_LEARNING_MATCHES
    result.has_permission_system = result.permission_matches >= MIN_PERMISSION_MATCHES
    result.has_memory_module = result.memory_matches >= MIN_MEMORY_MATCHES

    if result.core_matches >= MIN_CORE_MATCHES or result.signature_flag:
        raw = (
            result.core_matches * CORE_WEIGHT
            + result.learning_matches * LEARNING_WEIGHT
            + result.permission_matches * PERMISSION_WEIGHT
            + result.memory_matches * MEMORY_WEIGHT
            + (SIGNATURE_WEIGHT if result.signature_flag else 0)
        )
        result.score = min(MAX_SCORE, raw)

    if result.has_learning_module or (result.signature_flag and "merkle" in src):
        result.agent_type = AgentType.MERKLE_LEARNING
    else:
        result.agent_type = AgentType.JSON_LIGHT
    return result


def derive_learning_model(source: VerifiedSource | None, score: int) -> str | None:
    """Learning-model tag guessed from source keywords; first rule that fires wins."""
    if source is None or not source.source_code or score == 0:
        return None
    src = source.source_code.lower()
    if "reinforcement" in src or "reward" in src:
        return "reinforcement"
    if "fine_tune" in src or "finetune" in src or "training" in src:
        return "fine_tuning"
    if "rag" in src and ("retrieval" in src or "vault" in src):
        return "rag"
    if "hybrid" in src or "ensemble" in src:
        return "hybrid"
    if "mcp" in src or "model_context" in src:
        return "mcp"
    return None


def check_behavior_consistency(
    method: str, txs: Sequence[ExplorerTransaction]
) -> BehaviorCheck:
    """
    Do recent calls to `method` carry matching hints in the explorer's
    functionName / logs / methodId text?
    """
    matched = [tx for tx in txs if derive_method_name(tx.input) == method]
    if not matched:
        return BehaviorCheck(has_calls=False, has_event_hints=False)
    hints = EVENT_HINTS.get(method, ())
    for tx in matched:
        haystack = f"{tx.function_name} {tx.logs} {tx.method_id}".lower()
        if any(hint in haystack for hint in hints):
            return BehaviorCheck(has_calls=True, has_event_hints=True)
    return BehaviorCheck(has_calls=True, has_event_hints=False)


def behavior_note(check: BehaviorCheck, method: str = LEARNING_MODEL_METHOD) -> str | None:
    if not check.has_calls:
        return None
    if check.has_event_hints:
        return f"{method} behavior has matching learning event hints in recent tx history."
    return (
        f"Warning: {method} calls observed without matching learning event hints "
        "in recent tx history."
    )


def classify_contract(
    source: VerifiedSource | None,
    bytecode: str | None,
    txs: Sequence[ExplorerTransaction] = (),
) -> Classification:
    """Full classification: compliance score, learning model, bytecode hits, behaviour note."""
    compliance = check_compliance(source)
    note = None
    if compliance.is_compliant:
        note = behavior_note(check_behavior_consistency(LEARNING_MODEL_METHOD, txs))
    return Classification(
        compliance=compliance,
        learning_model=derive_learning_model(source, compliance.score),
        bytecode_selectors=selectors_in_bytecode(bytecode),
        behavior_note=note,
    )
