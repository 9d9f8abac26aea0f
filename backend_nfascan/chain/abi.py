"""
ABI helpers for ERC-721 style views and BAP-578 call arguments.

eth_abi does the word encoding; this module only deals with the hex strings
that JSON-RPC speaks and with the "token does not exist" signal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from backend_nfascan.core.exceptions import ContractCallReverted

if TYPE_CHECKING:
    from backend_nfascan.chain.provider import ChainProvider

SELECTOR_TOTAL_SUPPLY = "0x18160ddd"
SELECTOR_OWNER_OF = "0x6352211e"
SELECTOR_TOKEN_URI = "0xc87b56dd"

SELECTOR_HEX_LEN = 10
ZERO_ADDRESS = "0x" + "0" * 40


def hex_to_bytes(hex_str: str | None) -> bytes:
    """'0x'-prefixed (or bare) hex → bytes. Raises ValueError on odd length or bad digits."""
    if not hex_str:
        return b""
    clean = hex_str[2:] if hex_str.startswith(("0x", "0X")) else hex_str
    return bytes.fromhex(clean)


def encode_call(selector: str, *args: int) -> str:
    """selector + uint256 args, e.g. encode_call(SELECTOR_OWNER_OF, 7)."""
    return selector + encode(["uint256"] * len(args), list(args)).hex()


def decode_uint256(hex_str: str | None) -> int:
    """First return word as uint256; empty or malformed → 0."""
    try:
        data = hex_to_bytes(hex_str)
        if not data:
            return 0
        return decode(["uint256"], data[:32])[0]
    except (DecodingError, ValueError):
        return 0


def decode_address(hex_str: str) -> str:
    """Single address return value, lowercased. Raises DecodingError on short data."""
    return decode(["address"], hex_to_bytes(hex_str))[0].lower()


def decode_string(hex_str: str | None) -> str:
    """Single dynamic `string` return value; malformed → "". NUL padding is dropped."""
    try:
        data = hex_to_bytes(hex_str)
        if not data:
            return ""
        value = decode(["string"], data)[0]
    except (DecodingError, ValueError):
        return ""
    return value.replace("\x00", "").strip()


def decode_call_args(call_data: str | None, types: Sequence[str]) -> tuple[Any, ...] | None:
    """
    Arguments of a transaction's call data (selector stripped). bytes values
    come back as '0x' hex, addresses lowercased. None when the data does not
    decode as `types`.
    """
    if not call_data or len(call_data) < SELECTOR_HEX_LEN:
        return None
    try:
        values = decode(list(types), hex_to_bytes(call_data[SELECTOR_HEX_LEN:]))
    except (DecodingError, ValueError):
        return None
    return tuple(_normalize_arg(t, v) for t, v in zip(types, values))


def _normalize_arg(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("[]"):
        return [_normalize_arg(abi_type[:-2], v) for v in value]
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if abi_type == "address":
        return value.lower()
    return value


class Erc721Reader:
    """totalSupply / ownerOf / tokenURI over a ChainProvider's eth_call."""

    def __init__(self, provider: "ChainProvider") -> None:
        self._provider = provider

    async def total_supply(self, contract: str) -> int:
        result = await self._provider.call_contract(contract, SELECTOR_TOTAL_SUPPLY)
        return decode_uint256(result)

    async def owner_of(self, contract: str, token_id: int) -> str:
        """Owner address; raises ContractCallReverted when the token does not exist."""
        result = await self._provider.call_contract(
            contract, encode_call(SELECTOR_OWNER_OF, token_id)
        )
        try:
            owner = decode_address(result)
        except (DecodingError, ValueError) as e:
            raise ContractCallReverted(f"ownerOf({token_id}) returned malformed data") from e
        if owner == ZERO_ADDRESS:
            raise ContractCallReverted(f"ownerOf({token_id}) returned the zero address")
        return owner

    async def token_uri(self, contract: str, token_id: int) -> str:
        result = await self._provider.call_contract(
            contract, encode_call(SELECTOR_TOKEN_URI, token_id)
        )
        return decode_string(result)
