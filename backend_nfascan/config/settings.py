"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate settings and provide defaults for optional ones.
- Expose typed settings (RPC URL, explorer API, DB path, sync cadence,
  API host/port) for use across the sync service and API server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from backend_nfascan.config.env import (
    get_db_path,
    get_explorer_api_key,
    get_explorer_api_url,
    get_explorer_chain_id,
    get_ipfs_gateway,
    get_rpc_url,
    load_nfascan_env,
)

DEFAULT_SYNC_INTERVAL_SEC = 60.0
DEFAULT_BLOCKS_PER_SYNC = 20
DEFAULT_EXPLORER_MIN_INTERVAL_SEC = 0.22
DEFAULT_REQUEST_TIMEOUT_SEC = 20.0


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Typed service settings; build with get_settings()."""

    rpc_url: str
    explorer_api_url: str
    explorer_api_key: str
    explorer_chain_id: str
    ipfs_gateway: str
    db_path: Path
    chain_label: str = "bsc_mainnet"
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    explorer_min_interval_sec: float = DEFAULT_EXPLORER_MIN_INTERVAL_SEC
    sync_interval_sec: float = DEFAULT_SYNC_INTERVAL_SEC
    blocks_per_sync: int = DEFAULT_BLOCKS_PER_SYNC
    discovery_enabled: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 5000

    def __post_init__(self) -> None:
        if not self.rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if self.sync_interval_sec <= 0:
            raise ValueError("sync_interval_sec must be positive")
        if self.blocks_per_sync < 1:
            raise ValueError("blocks_per_sync must be >= 1")
        self.explorer_min_interval_sec = max(0.0, float(self.explorer_min_interval_sec))


def get_settings() -> Settings:
    """
    Return the current application settings from environment (.env loaded first).

    Returns:
        Settings with rpc_url, explorer credentials, db_path, sync cadence,
        api_host, api_port, etc.
    """
    load_nfascan_env()
    return Settings(
        rpc_url=get_rpc_url(),
        explorer_api_url=get_explorer_api_url(),
        explorer_api_key=get_explorer_api_key(),
        explorer_chain_id=get_explorer_chain_id(),
        ipfs_gateway=get_ipfs_gateway(),
        db_path=get_db_path(),
        request_timeout_sec=_env_float("REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
        explorer_min_interval_sec=_env_float(
            "EXPLORER_MIN_INTERVAL_SEC", DEFAULT_EXPLORER_MIN_INTERVAL_SEC
        ),
        sync_interval_sec=_env_float("SYNC_INTERVAL_SEC", DEFAULT_SYNC_INTERVAL_SEC),
        blocks_per_sync=_env_int("BLOCKS_PER_SYNC", DEFAULT_BLOCKS_PER_SYNC),
        discovery_enabled=_env_bool("DISCOVERY_ENABLED", True),
        api_host=(os.getenv("API_HOST") or "0.0.0.0").strip(),
        api_port=_env_int("API_PORT", 5000),
    )
