"""
Unit conversion and hex helpers for EVM payloads (wei/gwei/BNB, quantities).
"""

from __future__ import annotations

from typing import Any

WEI_PER_ETHER = 10**18
WEI_PER_GWEI = 10**9
NATIVE_SYMBOL = "BNB"


def hex_to_int(value: Any) -> int:
    """
    Parse a JSON-RPC quantity ("0x1a"), a decimal string, or an int.
    None / empty / malformed → 0.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return 0
    try:
        if s.lower().startswith("0x"):
            return int(s, 16) if len(s) > 2 else 0
        return int(s)
    except ValueError:
        return 0


def wei_to_ether(wei: Any) -> str:
    """Format a wei amount as ether: "0", scientific below 0.0001, else 6 decimals."""
    try:
        ether = hex_to_int(wei) / WEI_PER_ETHER
    except (TypeError, OverflowError):
        return "0"
    if ether == 0:
        return "0"
    if ether < 0.0001:
        return f"{ether:.4e}"
    return f"{ether:.6f}"


def format_native_value(wei: Any) -> str:
    return f"{wei_to_ether(wei)} {NATIVE_SYMBOL}"


def gwei_from_wei(wei: Any) -> str:
    try:
        gwei = hex_to_int(wei) / WEI_PER_GWEI
    except (TypeError, OverflowError):
        return "0 Gwei"
    return f"{gwei:.2f} Gwei"


def format_balance(wei: Any) -> str:
    """Balance snapshot string, always 6 decimals (e.g. "0.012000 BNB")."""
    return f"{hex_to_int(wei) / WEI_PER_ETHER:.6f} {NATIVE_SYMBOL}"


def format_gas(value: Any) -> str:
    """Gas quantity with thousands separators ("30,000,000")."""
    return f"{hex_to_int(value):,}"


def is_contract_call(call_data: str | None) -> bool:
    """True when the transaction carries call data (anything beyond "0x")."""
    return bool(call_data) and call_data != "0x" and len(call_data) > 2
