# yardgate/services/unit_of_work.py
"""
Transactional save with bounded retry.

Every scan session is one unit of work: the work coroutine stages all of its
writes on the session and commit_with_retry() commits them at once. On an
optimistic-concurrency conflict (a stale version on update, or a partial
unique index rejecting a concurrent insert) the transaction is rolled back,
which expires every loaded object, and the work is re-run against fresh rows.
"""

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from yardgate.config import settings
from yardgate.services.errors import ConcurrencyConflictError
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, IntegrityError)


async def commit_with_retry(
    db: Session,
    work: Callable[[Session], Awaitable[T]],
    attempts: int = None,
    label: str = "unit of work",
) -> T:
    """Run `work(db)` and commit; retry with reload on conflicts, raise after the last attempt."""
    attempts = attempts or settings.COMMIT_RETRY_ATTEMPTS
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            result = await work(db)
            db.commit()
            return result
        except CONFLICT_ERRORS as e:
            db.rollback()
            last_error = e
            logger.warning(f"[UOW] Conflict on {label} (attempt {attempt}/{attempts}): {e}")
        except Exception:
            db.rollback()
            raise

    raise ConcurrencyConflictError(
        f"{label} still conflicting after {attempts} attempts"
    ) from last_error
