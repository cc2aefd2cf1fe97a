#!/usr/bin/env python3
"""
Club Ledger Entry Point

Starts the FastAPI server with the club ledger.
"""

import sys

from club_ledger.api import run_server
from club_ledger.config import get_config
from club_ledger.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, config.log_file)

    logger.info(f"Starting {config.club_name} ledger on {config.api_host}:{config.api_port}")
    logger.info(f"Storage: {config.database_url.split('@')[-1]}; overpayment policy: {config.overpayment_policy}")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
