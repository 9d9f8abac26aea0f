"""
Tests for the selector registry: method names from call data, BAP-578 call
detection and bytecode selector hits.
"""

from __future__ import annotations

import pytest

from backend_nfascan.analysis_engine.selectors import (
    BAP578_METHOD_SELECTORS,
    BAP578_SELECTORS,
    KNOWN_METHODS,
    call_selector,
    derive_method_name,
    is_bap578_call,
    selectors_in_bytecode,
)

ARG = "0" * 64


@pytest.mark.parametrize("call_data", [None, "", "0x", "0x1234"])
def test_derive_method_name_plain_transfer(call_data):
    """Empty or too-short call data is a plain value transfer."""
    assert derive_method_name(call_data) == "transfer"


def test_derive_method_name_known_selectors():
    assert derive_method_name("0xa9059cbb" + ARG + ARG) == "transfer"
    assert derive_method_name("0x38ed1739" + ARG) == "swapExactTokensForTokens"
    assert derive_method_name("0x55150c16" + ARG) == "executeAction"
    # Selector match is case-insensitive
    assert derive_method_name("0x976A605B" + ARG) == "updateLearningTree"


def test_derive_method_name_unknown_selector():
    assert derive_method_name("0xdeadbeef" + ARG) == "call_0xdeadbeef"
    assert derive_method_name("0xDEADBEEF") == "call_0xdeadbeef"


def test_call_selector():
    assert call_selector("0x55150c16" + ARG) == "0x55150c16"
    assert call_selector("0x55150c1") is None


def test_is_bap578_call():
    assert is_bap578_call("0xef03c6db" + ARG) is True
    assert is_bap578_call("0xa9059cbb" + ARG) is False
    assert is_bap578_call("0x") is False


def test_selector_tables_consistent():
    """Every BAP-578 selector is a known method and reverses to its name."""
    for selector, name in BAP578_SELECTORS.items():
        assert KNOWN_METHODS[selector] == name
        assert BAP578_METHOD_SELECTORS[name] == selector
        assert len(selector) == 10


def test_selectors_in_bytecode():
    code = "0x6080604052" + "63" + "55150c16" + "1461" + "63" + "976a605b" + "14"
    hits = selectors_in_bytecode(code)
    assert hits == ["0x55150c16", "0x976a605b"]
    assert selectors_in_bytecode(code.upper().replace("0X", "0x")) == hits


@pytest.mark.parametrize("bytecode", [None, "", "0x"])
def test_selectors_in_bytecode_empty(bytecode):
    assert selectors_in_bytecode(bytecode) == []
