"""Unit tests for the retrying unit-of-work commit."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from yardgate.services.errors import ConcurrencyConflictError
from yardgate.services.unit_of_work import commit_with_retry


class TestCommitWithRetry:
    @pytest.mark.asyncio
    async def test_commits_once_on_success(self):
        db = MagicMock()
        work = AsyncMock(return_value="done")

        assert await commit_with_retry(db, work, attempts=3) == "done"
        work.assert_awaited_once_with(db)
        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_version_is_retried(self):
        db = MagicMock()
        db.commit.side_effect = [StaleDataError("version mismatch"), None]
        work = AsyncMock(return_value="done")

        assert await commit_with_retry(db, work, attempts=3) == "done"
        assert work.await_count == 2
        db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_unique_violation_is_retried(self):
        db = MagicMock()
        db.commit.side_effect = [IntegrityError("INSERT", {}, Exception("unique")), None]
        work = AsyncMock(return_value=1)

        assert await commit_with_retry(db, work, attempts=2) == 1
        assert db.commit.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        db = MagicMock()
        db.commit.side_effect = StaleDataError("version mismatch")
        work = AsyncMock()

        with pytest.raises(ConcurrencyConflictError):
            await commit_with_retry(db, work, attempts=3)
        assert work.await_count == 3
        assert db.rollback.call_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_roll_back_and_propagate(self):
        db = MagicMock()
        work = AsyncMock(side_effect=ValueError("boom"))

        with pytest.raises(ValueError):
            await commit_with_retry(db, work, attempts=3)
        work.assert_awaited_once()
        db.rollback.assert_called_once()
        db.commit.assert_not_called()
