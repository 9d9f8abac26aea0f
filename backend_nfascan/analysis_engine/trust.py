"""
Display trust score for a stored agent.

Additive points over recorded claims (verification, external identity,
learning evidence); not a security rating.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backend_nfascan.database.models import AgentRecord

VERIFIED_POINTS = 30
IDENTITY_POINTS = 25
MERKLE_LEARNING_POINTS = 20
LEARNING_ROOT_POINTS = 10
LEARNING_MODEL_POINTS = 10
CHAIN_SUPPORT_POINTS = 5

HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40


class TrustLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def calculate_trust_score(agent: "AgentRecord") -> int:
    score = 0
    if agent.verified:
        score += VERIFIED_POINTS
    if agent.erc8004_id:
        score += IDENTITY_POINTS
    if agent.agent_type == "merkle_learning":
        score += MERKLE_LEARNING_POINTS
    if agent.learning_root:
        score += LEARNING_ROOT_POINTS
    if agent.learning_model:
        score += LEARNING_MODEL_POINTS
    if agent.chain_support:
        score += CHAIN_SUPPORT_POINTS
    return score


def trust_level(score: int) -> TrustLevel:
    if score >= HIGH_THRESHOLD:
        return TrustLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return TrustLevel.MEDIUM
    return TrustLevel.LOW
