import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from db import get_db_session, session_commit, session_rollback
from utils.time import utc_now

logger = logging.getLogger(__name__)


class TransactionManager:
    """
    Runs a group of statements as one unit on the store. Used for the
    server-side procedures (atomic checkout) that must either fully apply
    or leave no trace.
    """

    # Transaction duration above which a warning is logged, in seconds
    TRANSACTION_TIMEOUT = 30

    @staticmethod
    @asynccontextmanager
    async def atomic_transaction(timeout: Optional[int] = None) -> AsyncGenerator[Any, None]:
        """
        Context manager for atomic database transactions.

        Usage:
            async with TransactionManager.atomic_transaction() as session:
                await session.execute(...)
            # committed here, rolled back if the block raised
        """
        timeout = timeout or TransactionManager.TRANSACTION_TIMEOUT
        session = None

        try:
            async with get_db_session() as session:
                transaction_start = utc_now()
                logger.debug(f"Transaction started at {transaction_start}")

                yield session

                duration = (utc_now() - transaction_start).total_seconds()
                if duration > timeout:
                    logger.warning(f"Transaction exceeded timeout: {duration}s > {timeout}s")

                await session_commit(session)
                logger.debug(f"Transaction committed successfully in {duration:.2f}s")

        except Exception as e:
            if session:
                try:
                    await session_rollback(session)
                    logger.info(f"Transaction rolled back due to error: {str(e)}")
                except Exception as rollback_error:
                    logger.critical(f"Failed to rollback transaction: {str(rollback_error)}")
            raise
