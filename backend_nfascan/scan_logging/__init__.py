"""
Structured logging for Backend NFA Scan.

JSON logs with timestamp, event_type and key-value context (block_number, address, ...).
Use get_logger() in all sync and provider modules.
"""

from backend_nfascan.scan_logging.logger import bind_address, get_logger

__all__ = ["bind_address", "get_logger"]
