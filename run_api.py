#!/usr/bin/env python
"""
Guardian API Server Runner.

Usage:
    python run_api.py

Or with PM2:
    pm2 start run_api.py --interpreter python
"""

import os
import sys
import logging
import uvicorn

from database.engine import DatabasePersistenceError, initialize_database

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


def main():
    """Initialize the database and run the Guardian API server."""
    host = os.getenv("GUARDIAN_HOST", "0.0.0.0")
    port = int(os.getenv("GUARDIAN_PORT", os.getenv("PORT", "8000")))
    reload = os.getenv("ENVIRONMENT", "production") == "development"

    try:
        initialize_database()
    except DatabasePersistenceError as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)

    logger.info(f"Starting Guardian API on {host}:{port}")
    uvicorn.run(
        "guardian_api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
