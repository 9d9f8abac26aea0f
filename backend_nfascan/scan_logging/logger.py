"""
Structured logging for the sync pipeline and API.

Every line carries an event_type (the snake_case event name), a level, an
ISO timestamp and the logger name. Chain context is passed as keyword
arguments: block_number, address, tx_hash. Addresses are lowercased and
long call data is shortened before rendering so log lines stay greppable.

LOG_LEVEL (default INFO) and LOG_FORMAT (json | console, default json) are
read once at import. Depends only on stdlib logging and structlog so any
module can import it without a cycle.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

# Call data longer than this is cut to selector + first words
MAX_HEX_LOG_CHARS = 74
_HEX_PAYLOAD_KEYS = ("input", "call_data", "data", "result")


def _stamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _chain_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Lowercase *address values and shorten hex payloads."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if key == "address" or key.endswith("_address"):
            event_dict[key] = value.lower()
        elif key in _HEX_PAYLOAD_KEYS and value.startswith("0x") and len(value) > MAX_HEX_LOG_CHARS:
            event_dict[key] = f"{value[:MAX_HEX_LOG_CHARS]}...({len(value) - 2} hex chars)"
    return event_dict


def _renderer() -> Any:
    if LOG_FORMAT == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer()


def configure_structlog(level: str = LOG_LEVEL) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            _stamp,
            _chain_context,
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for a module.

        logger = get_logger(__name__)
        logger.info("block_synced", block_number=41_000_000, tx_count=212)

    -> {"event_type": "block_synced", "block_number": 41000000, "tx_count": 212,
        "level": "info", "timestamp": "...", "logger": "backend_nfascan.sync.block_walker"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_address(address: str, name: str = "backend_nfascan") -> structlog.BoundLogger:
    """Logger with the (lowercased) contract address bound to every call."""
    return get_logger(name).bind(address=address.lower())
