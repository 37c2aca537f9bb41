#!/usr/bin/env python3
"""
Debt Escrow Ledger Entry Point

Starts the FastAPI server with the debt ledger.
"""

import sys

from debt_escrow.api import run_server
from debt_escrow.config import get_config
from debt_escrow.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting debt escrow ledger on {config.api_host}:{config.api_port}")
    if not config.admin_api_key:
        logger.warning("ESCROW_ADMIN_API_KEY is not set; admin endpoints are open")

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down debt escrow ledger")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
