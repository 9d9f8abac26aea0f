"""
Environment variable loading and validation for NFA Scan.

- BSC_RPC_URL: JSON-RPC endpoint (default: public BSC dataseed)
- BSCSCAN_API_KEY: explorer API key (Etherscan v2 multichain)
- EXPLORER_API_URL / EXPLORER_CHAIN_ID: explorer endpoint and chain id (56)
- IPFS_GATEWAY: gateway prefix used to rewrite ipfs:// token URIs
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is backend_nfascan/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

BSC_MAINNET_RPC_URL = "https://bsc-dataseed.binance.org/"
ETHERSCAN_V2_URL = "https://api.etherscan.io/v2/api"
BSC_CHAIN_ID = "56"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"


def load_nfascan_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def get_rpc_url() -> str:
    """Resolve the JSON-RPC URL: BSC_RPC_URL > public BSC dataseed."""
    load_nfascan_env()
    url = (os.getenv("BSC_RPC_URL") or "").strip()
    return url or BSC_MAINNET_RPC_URL


def get_explorer_api_url() -> str:
    load_nfascan_env()
    url = (os.getenv("EXPLORER_API_URL") or "").strip()
    return url or ETHERSCAN_V2_URL


def get_explorer_api_key() -> str:
    """Return BSCSCAN_API_KEY (falls back to ETHERSCAN_API_KEY); empty string if unset."""
    load_nfascan_env()
    return (os.getenv("BSCSCAN_API_KEY") or os.getenv("ETHERSCAN_API_KEY") or "").strip()


def get_explorer_chain_id() -> str:
    load_nfascan_env()
    return (os.getenv("EXPLORER_CHAIN_ID") or BSC_CHAIN_ID).strip()


def get_ipfs_gateway() -> str:
    """Return the IPFS gateway prefix, always ending with '/'."""
    load_nfascan_env()
    gateway = (os.getenv("IPFS_GATEWAY") or DEFAULT_IPFS_GATEWAY).strip()
    return gateway if gateway.endswith("/") else gateway + "/"


def get_db_path() -> Path:
    load_nfascan_env()
    return Path((os.getenv("DB_PATH") or "nfascan.db").strip() or "nfascan.db")


def mask_url(url: str) -> str:
    """Mask an API key embedded in a URL query string."""
    for marker in ("apikey=", "api-key="):
        if marker in url:
            return url.split(marker)[0] + marker + "***"
    return url
