#!/usr/bin/env python3
"""
Migration: Enforce one cart line per (cart, product, size)

Two consumers adding the same product at once could store two lines for it.
This migration folds existing duplicates into the oldest line (quantities
summed) and then creates the unique index uq_cart_item_line, which treats a
NULL size as one value.

Usage:
    python migrations/add_unique_cart_item_line.py
"""

import sys
import os
import asyncio
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import text
from db import get_db_session, session_commit, session_execute

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DUPLICATES_SQL = """
    SELECT MIN(id), SUM(quantity), COUNT(*)
    FROM cart_items
    GROUP BY cart_id, product_id, COALESCE(size, '')
    HAVING COUNT(*) > 1
"""


async def merge_duplicates(session) -> int:
    """Returns the number of lines removed."""
    result = await session_execute(text(DUPLICATES_SQL), session)
    removed = 0
    for keep_id, quantity, count in result.fetchall():
        await session_execute(text(
            "DELETE FROM cart_items WHERE id IN ("
            " SELECT other.id FROM cart_items other JOIN cart_items kept ON kept.id = :keep_id"
            " WHERE other.id != kept.id AND other.cart_id = kept.cart_id AND other.product_id = kept.product_id"
            " AND COALESCE(other.size, '') = COALESCE(kept.size, ''))"
        ).bindparams(keep_id=keep_id), session)
        await session_execute(text("UPDATE cart_items SET quantity = :quantity WHERE id = :keep_id")
                              .bindparams(quantity=quantity, keep_id=keep_id), session)
        logger.info(f"🔧 Cart line {keep_id}: merged {count} lines, quantity {quantity}")
        removed += count - 1
    return removed


async def run_migration():
    """Execute the cart line uniqueness migration."""
    logger.info("=" * 60)
    logger.info("UNIQUE CART LINE PER (CART, PRODUCT, SIZE)")
    logger.info("=" * 60)

    async with get_db_session() as session:
        removed = await merge_duplicates(session)
        logger.info(f"✅ {removed} duplicate line(s) merged")
        await session_execute(text(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_cart_item_line "
            "ON cart_items (cart_id, product_id, COALESCE(size, ''))"
        ), session)
        await session_commit(session)

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
