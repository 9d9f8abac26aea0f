"""
Off-chain token metadata fetch (tokenURI → JSON).

ipfs:// URIs are rewritten to an HTTP gateway. Bounded timeout; any transport,
status, URL or parse failure yields None so registry enumeration never aborts.
"""

from __future__ import annotations

from typing import Any

import httpx

from backend_nfascan.config.env import DEFAULT_IPFS_GATEWAY
from backend_nfascan.scan_logging import get_logger

logger = get_logger(__name__)

METADATA_TIMEOUT_SEC = 8.0


def resolve_metadata_uri(uri: str, gateway: str = DEFAULT_IPFS_GATEWAY) -> str:
    """ipfs://<cid>/path → <gateway><cid>/path; other URIs unchanged. NUL padding is dropped."""
    uri = uri.replace("\x00", "").strip()
    if uri.startswith("ipfs://"):
        return gateway + uri[len("ipfs://"):]
    return uri


async def fetch_offchain_metadata(
    client: httpx.AsyncClient,
    uri: str,
    *,
    gateway: str = DEFAULT_IPFS_GATEWAY,
    timeout_sec: float = METADATA_TIMEOUT_SEC,
) -> dict[str, Any] | None:
    """Fetch and parse token metadata JSON; None on any failure or non-object body."""
    url = resolve_metadata_uri(uri or "", gateway)
    if not url:
        return None
    try:
        resp = await client.get(url, timeout=timeout_sec, follow_redirects=True)
        if resp.status_code >= 400:
            logger.debug("metadata_fetch_status", url=url, status=resp.status_code)
            return None
        data = resp.json()
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        logger.debug("metadata_fetch_failed", url=url, error=str(e))
        return None
    return data if isinstance(data, dict) else None
