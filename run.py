#!/usr/bin/env python3
"""
BAC Banking Engine Entry Point

Builds the banking system from BAC_* environment settings, starts the
interest accrual scheduler and runs until interrupted.
"""

import sys
import threading

from bac_banking.config import get_config
from bac_banking.logging_config import configure_logging
from bac_banking.system import BankingSystem


if __name__ == "__main__":
    config = get_config()
    logger = configure_logging(config)

    try:
        system = BankingSystem.from_config(config)
    except Exception as e:
        logger.exception(f"Error starting banking engine: {e}")
        sys.exit(1)

    system.start()
    logger.info(
        f"Banking engine running with {config.storage_backend} storage; "
        f"interest sweep every {config.interest_sweep_interval_seconds}s"
    )

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Shutting down banking engine")
    finally:
        system.shutdown()
