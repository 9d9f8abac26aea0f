"""
Contract analysis: selector registry, BAP-578 compliance classification, trust score.
"""

from backend_nfascan.analysis_engine.compliance import (
    AgentType,
    Classification,
    ComplianceResult,
    check_compliance,
    classify_contract,
)
from backend_nfascan.analysis_engine.selectors import (
    BAP578_SELECTORS,
    KNOWN_METHODS,
    derive_method_name,
    is_bap578_call,
)
from backend_nfascan.analysis_engine.trust import TrustLevel, calculate_trust_score, trust_level

__all__ = [
    "AgentType",
    "BAP578_SELECTORS",
    "Classification",
    "ComplianceResult",
    "KNOWN_METHODS",
    "TrustLevel",
    "calculate_trust_score",
    "check_compliance",
    "classify_contract",
    "derive_method_name",
    "is_bap578_call",
    "trust_level",
]
