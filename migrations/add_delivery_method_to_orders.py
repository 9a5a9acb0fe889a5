#!/usr/bin/env python3
"""
Migration: Add delivery_fee and delivery_method to orders table

Orders created before this migration store the delivery fee only inside
total. After it, the fee and the chosen method (pickup/delivery) are kept
in their own columns. Existing rows get delivery_fee 0 and no method.

Until this migration runs, OrderRepository detects the missing columns and
falls back to writing total only.

Usage:
    python migrations/add_delivery_method_to_orders.py
"""

import sys
import os
import asyncio
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from db import get_db_session, session_commit, session_execute

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

COLUMNS = {
    "delivery_fee": "REAL NOT NULL DEFAULT 0",
    "delivery_method": "VARCHAR(8) NULL",
}


async def add_column(session, name: str, definition: str) -> bool:
    """Returns False if the column already existed."""
    try:
        await session_execute(text(f"ALTER TABLE orders ADD COLUMN {name} {definition}"), session)
        logger.info(f"✅ {name} column added")
        return True
    except OperationalError as e:
        if "duplicate column name" in str(e).lower():
            logger.info(f"⚠️  {name} column already exists, skipping")
            return False
        raise


async def verify(session) -> bool:
    result = await session_execute(text("PRAGMA table_info(orders)"), session)
    existing = {row[1] for row in result.fetchall()}
    missing = [name for name in COLUMNS if name not in existing]
    if missing:
        logger.error(f"❌ Columns still missing after migration: {', '.join(missing)}")
        return False
    return True


async def run_migration():
    """Execute the delivery columns migration."""
    logger.info("=" * 60)
    logger.info("ADD DELIVERY_FEE / DELIVERY_METHOD TO ORDERS")
    logger.info("=" * 60)

    async with get_db_session() as session:
        for name, definition in COLUMNS.items():
            await add_column(session, name, definition)
        await session_commit(session)

        if not await verify(session):
            raise RuntimeError("orders table verification failed")

    logger.info("=" * 60)
    logger.info("✅ MIGRATION COMPLETED SUCCESSFULLY")
    logger.info("=" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(run_migration())
    except KeyboardInterrupt:
        logger.info("\n⚠️  Migration cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Migration error: {e}")
        sys.exit(1)
