"""
Script to create the database, or bring an existing one up to date
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import open_database
from core.exceptions import InitializationError
from core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


async def init_database():
    database = await open_database()
    try:
        logger.info(f"Database ready at {database.path} (schema version {database.schema_version})")
    finally:
        await database.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(init_database())
    except InitializationError as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)
