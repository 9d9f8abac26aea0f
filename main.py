"""
Main entrypoint: sync service in background thread + FastAPI server in main thread.

The sync service (initial catch-up, periodic pass, agent discovery) runs on its
own event loop in a daemon thread; the API runs in the main thread and stays
responsive. On SIGINT/SIGTERM the server shuts down, the stop event is set and
the sync thread is given a bounded time to finish its current pass.

Env: BSC_RPC_URL, BSCSCAN_API_KEY, DB_PATH, SYNC_INTERVAL_SEC, BLOCKS_PER_SYNC, API_HOST, API_PORT, etc.

API-only (no sync): uvicorn backend_nfascan.api_server.app:app --host 0.0.0.0 --port 5000
"""

import os
import sys
import threading

# Configure structured JSON logging before other imports that may log
from backend_nfascan.scan_logging import get_logger

logger = get_logger("main")

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


def main() -> None:
    """Start the sync service in a background thread, then run the API in the main thread."""
    from backend_nfascan.config import get_settings
    from backend_nfascan.sync.runner import run_sync_thread

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    stop_event = threading.Event()
    sync_thread = threading.Thread(
        target=run_sync_thread,
        args=(settings, stop_event),
        name="sync-service",
        daemon=True,
    )
    sync_thread.start()
    logger.info("main_sync_started", thread="daemon", db_path=str(settings.db_path))

    from backend_nfascan.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    try:
        uvicorn.run(
            app,
            host=settings.api_host,
            port=settings.api_port,
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )
    finally:
        stop_event.set()
        sync_thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
        if sync_thread.is_alive():
            logger.warning("main_sync_shutdown_timeout", timeout_sec=SHUTDOWN_JOIN_TIMEOUT_SEC)


if __name__ == "__main__":
    main()
