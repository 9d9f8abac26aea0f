"""
Test that scan_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from scan_logging and use the logger."""
    from backend_nfascan.scan_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", block_number=41_000_000, tx_count=3)


def test_bind_address_logger():
    from backend_nfascan.scan_logging import bind_address

    logger = bind_address("0x" + "1" * 40)
    logger.debug("address_bound_message")
    assert logger._context["address"] == "0x" + "1" * 40


def test_chain_context_processor():
    from backend_nfascan.scan_logging.logger import MAX_HEX_LOG_CHARS, _chain_context

    call_data = "0x" + "ab" * 100
    event = _chain_context(
        None,
        "info",
        {"address": "0xABCDEF", "from_address": "0xFF", "input": call_data, "tx_count": 3},
    )
    assert event["address"] == "0xabcdef"
    assert event["from_address"] == "0xff"
    assert event["input"].startswith(call_data[:MAX_HEX_LOG_CHARS])
    assert event["input"].endswith("(200 hex chars)")
    assert event["tx_count"] == 3
