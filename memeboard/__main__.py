"""
memeboard.__main__ — Entry point for ``python -m memeboard``
=============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (infrastructure settings).
3. Hand the FastAPI app to uvicorn; the app's lifespan creates tables,
   warms the settings cache and starts the background scheduler.

Run with::

    python -m memeboard
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from memeboard.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("memeboard")


def main() -> None:
    """Bootstrap and run the Memeboard API."""
    load_dotenv()

    cfg = load_config()
    logger.info("Config loaded for community %s", cfg.community_name)

    logger.info("Starting Memeboard API on port %d…", cfg.api_port)
    uvicorn.run(
        "memeboard.api.main:app",
        host="0.0.0.0",
        port=cfg.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
