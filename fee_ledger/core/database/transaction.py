"""Unit-of-work helper for multi-step mutations."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from fee_ledger.core.exceptions import ConcurrencyError, PersistenceError

logger = logging.getLogger(__name__)

# Driver messages that mean "someone else holds the row", not "the data is bad"
_LOCK_MARKERS = ("could not obtain lock", "deadlock detected", "database is locked", "lock timeout")


def _is_lock_contention(exc: DBAPIError) -> bool:
    raw = str(getattr(exc, "orig", exc)).lower()
    return any(marker in raw for marker in _LOCK_MARKERS)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run the enclosed block as one transaction.

    Commits when the block finishes; on any error the session is rolled back so
    no partially-applied change is ever visible. Storage failures are translated
    into ConcurrencyError (stale version, lock contention) or PersistenceError;
    application errors propagate unchanged.
    """
    try:
        yield db
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("Stale row version, transaction rolled back: %s", exc)
        raise ConcurrencyError("Record was modified concurrently, please retry") from exc
    except DBAPIError as exc:
        await db.rollback()
        if _is_lock_contention(exc):
            logger.warning("Lock contention, transaction rolled back: %s", exc)
            raise ConcurrencyError("Record is locked by another operation, please retry") from exc
        logger.exception("Database error, transaction rolled back")
        raise PersistenceError() from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Database error, transaction rolled back")
        raise PersistenceError() from exc
    except Exception:
        await db.rollback()
        raise
