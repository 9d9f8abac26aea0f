"""
Method/selector registry: 4-byte call-data prefix → human-readable method name.

Pure lookups, no state. BAP-578 selectors are keccak256 prefixes of the
IBAP578 / ILearningModule interface functions.
"""

from __future__ import annotations

SELECTOR_HEX_LEN = 10  # "0x" + 8 hex chars
DEFAULT_METHOD = "transfer"

BAP578_SELECTORS: dict[str, str] = {
    # IBAP578 core
    "0x55150c16": "executeAction",
    "0x4590ae21": "setLogicAddress",
    "0xef03c6db": "fundAgent",
    "0x44c9af28": "getState",
    "0x59295330": "getAgentMetadata",
    "0x1af41d4d": "updateAgentMetadata",
    # IBAP578 lifecycle
    "0x136439dd": "pause",
    "0xfabc1cbc": "unpause",
    "0x7a828b28": "terminate",
    # ILearningModule
    "0x976a605b": "updateLearningTree",
    "0x5d70a074": "getLearningMetrics",
    "0x18042017": "verifyLearning",
    # Permission system
    "0x78a9e84a": "grantPermission",
    "0xed665272": "revokePermission",
    "0x823abfd9": "hasPermission",
    # Memory module
    "0xe1ff077a": "registerMemoryModule",
    "0x26ffc7b2": "getMemoryModule",
    # Agent templates
    "0xc9b04adc": "createFromTemplate",
}

# Name → selector
BAP578_METHOD_SELECTORS: dict[str, str] = {name: sel for sel, name in BAP578_SELECTORS.items()}

# Argument types of the calls whose arguments the block walker records
BAP578_CALL_ARGS: dict[str, tuple[str, ...]] = {
    BAP578_METHOD_SELECTORS["updateLearningTree"]: ("uint256", "bytes32", "bytes32[]"),
    BAP578_METHOD_SELECTORS["grantPermission"]: ("uint256", "address", "uint8"),
    BAP578_METHOD_SELECTORS["revokePermission"]: ("uint256", "address", "uint8"),
}

COMMON_SELECTORS: dict[str, str] = {
    # ERC-20 / ERC-721
    "0xa9059cbb": "transfer",
    "0x23b872dd": "transferFrom",
    "0x095ea7b3": "approve",
    "0x42842e0e": "safeTransferFrom",
    "0xb88d4fde": "safeTransferFrom",
    "0xa22cb465": "setApprovalForAll",
    "0x6352211e": "ownerOf",
    "0x70a08231": "balanceOf",
    "0xc87b56dd": "tokenURI",
    "0x01ffc9a7": "supportsInterface",
    "0x150b7a02": "onERC721Received",
    "0xf2fde38b": "transferOwnership",
    # DEX routers / pairs
    "0x38ed1739": "swapExactTokensForTokens",
    "0x7ff36ab5": "swapExactETHForTokens",
    "0x18cbafe5": "swapExactTokensForETH",
    "0x5c11d795": "swapExactTokensForTokensSupportingFeeOnTransferTokens",
    "0x791ac947": "swap",
    "0xe8e33700": "addLiquidity",
    "0xf305d719": "addLiquidityETH",
    "0xbaa2abde": "removeLiquidity",
    "0x7b6e9862": "removeLiquidityETH",
    "0xc9c65396": "createPair",
    # Mint / burn / vaults
    "0xa0712d68": "mint",
    "0x40c10f19": "mint",
    "0x1249c58b": "mint",
    "0x42966c68": "burn",
    "0xb6b55f25": "deposit",
    "0xd0e30db0": "deposit",
    "0xe2bbb158": "deposit",
    "0x2e1a7d4d": "withdraw",
    "0x3ccfd60b": "withdraw",
    "0x441a3e70": "withdraw",
}

KNOWN_METHODS: dict[str, str] = {**BAP578_SELECTORS, **COMMON_SELECTORS}


def call_selector(call_data: str | None) -> str | None:
    """Lowercased "0x"-prefixed 4-byte selector, or None for short/empty call data."""
    if not call_data or len(call_data) < SELECTOR_HEX_LEN:
        return None
    return call_data[:SELECTOR_HEX_LEN].lower()


def derive_method_name(call_data: str | None) -> str:
    """
    Method name for a transaction's call data. Total over any input:
    empty / "0x" / short → "transfer" (plain value transfer); unknown selector
    → "call_<selector>".
    """
    selector = call_selector(call_data)
    if selector is None:
        return DEFAULT_METHOD
    return KNOWN_METHODS.get(selector, f"call_{selector}")


def is_bap578_call(call_data: str | None) -> bool:
    selector = call_selector(call_data)
    return selector is not None and selector in BAP578_SELECTORS


def selectors_in_bytecode(bytecode: str | None) -> list[str]:
    """
    BAP-578 selectors whose 4 bytes appear anywhere in the runtime bytecode.
    A raw substring heuristic (PUSH4 dispatch tables), not a disassembly.
    """
    if not bytecode or bytecode == "0x":
        return []
    code = bytecode.lower()
    return [sel for sel in BAP578_SELECTORS if sel[2:] in code]
