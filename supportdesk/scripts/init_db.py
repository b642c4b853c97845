# supportdesk/scripts/init_db.py
"""
Initialization script - create database tables and Qdrant collections

Usage:
    python -m supportdesk.scripts.init_db

Safe to run repeatedly: existing tables are kept and existing collections
are only checked for the configured vector dimension.
"""

import asyncio
import sys

from supportdesk.core.config import get_settings
from supportdesk.core.container import ServiceContainer
from supportdesk.core.database import check_connection
from supportdesk.core.logger import configure_logging, get_logger
from supportdesk.utils.exceptions import DimensionMismatch

logger = get_logger(__name__)


async def initialize() -> int:
    settings = get_settings()
    container = ServiceContainer.from_settings(settings)
    try:
        if not await check_connection(container.engine):
            print("✗ Database not reachable")
            return 1

        await container.startup()
        print("✓ Database tables ensured")
        for family in container.store.families:
            print(f"✓ Collection '{family.collection}' ready (dim={settings.embedding_dimension})")
        return 0
    except DimensionMismatch as e:
        print(f"✗ {e.message}")
        print("  Drop the collection or set EMBEDDING_DIMENSION to match it")
        return 1
    finally:
        await container.close()


if __name__ == "__main__":
    configure_logging(get_settings().log_level, json_output=False)
    sys.exit(asyncio.run(initialize()))
