#!/usr/bin/env python3
"""
Ledger Core Entry Point

Starts the FastAPI server on the configured host and port.
"""

import sys

from ledger_core.api import run_server
from ledger_core.config import get_config
from ledger_core.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, "ledger", config.log_format)
    logger.info(
        "Starting Ledger Core API on %s:%s (storage: %s)",
        config.api_host, config.api_port, config.storage_backend
    )

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("Shutting down Ledger Core API")
    except Exception:
        logger.exception("Error starting server")
        sys.exit(1)
