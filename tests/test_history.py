"""
Tests for generation history.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from factories import make_result
from sqlalchemy.exc import OperationalError

from namegen.db.models import NameGenerationLog
from namegen.exceptions import DatabaseError
from namegen.models.api import GenerationLogItem
from namegen.services.cache import MemoryCache, NullCache, user_data_key
from namegen.services.history import (
    HISTORY_CACHE_TYPE,
    HISTORY_LIMIT,
    GenerationHistoryService,
    summarize,
    to_log_item,
)


def make_log(**fields) -> NameGenerationLog:
    values = {
        "id": uuid4(),
        "user_id": "user-123",
        "plan_type": "free",
        "credits_used": 1,
        "names_generated": 3,
        "metadata_": None,
        "created_at": datetime(2026, 10, 1, tzinfo=UTC),
    }
    values.update(fields)
    return NameGenerationLog(**values)


class TestSummarize:
    def test_empty(self):
        stats = summarize([])
        assert stats.total_generations == 0
        assert stats.avg_per_session == 0.0

    def test_totals(self):
        logs = [to_log_item(make_log(names_generated=n, credits_used=2)) for n in (1, 2, 6)]

        stats = summarize(logs)

        assert stats.total_generations == 3
        assert stats.total_credits_used == 6
        assert stats.total_names_generated == 9
        assert stats.avg_per_session == 3.0


class TestToLogItem:
    def test_flags_from_metadata(self):
        item = to_log_item(
            make_log(metadata_={"personalityTraits": "curious", "namePreferences": {}})
        )

        assert isinstance(item, GenerationLogItem)
        assert item.has_personality_traits is True
        assert item.has_name_preferences is False

    def test_null_counters(self):
        item = to_log_item(make_log(credits_used=None, names_generated=None))

        assert item.credits_used == 0
        assert item.names_generated == 0
        assert item.metadata == {}


class TestGenerationHistoryService:
    async def test_query_is_limited_and_newest_first(self, db_session: AsyncMock):
        await GenerationHistoryService(db_session, NullCache()).get_history("user-123")

        sql = str(db_session.execute.await_args.args[0])
        assert "FROM name_generation_logs" in sql
        assert "ORDER BY name_generation_logs.created_at DESC" in sql
        assert "LIMIT" in sql
        assert HISTORY_LIMIT == 20

    async def test_result_cached_per_user(self, db_session: AsyncMock):
        cache = MemoryCache()
        db_session.execute = AsyncMock(return_value=make_result(scalars=[make_log()]))
        service = GenerationHistoryService(db_session, cache)

        first = await service.get_history("user-123")
        second = await service.get_history("user-123")

        assert second is first
        assert cache.has(user_data_key("user-123", HISTORY_CACHE_TYPE))
        db_session.execute.assert_awaited_once()

    async def test_database_failure(self, db_session: AsyncMock):
        db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("connection refused"))
        )

        with pytest.raises(DatabaseError):
            await GenerationHistoryService(db_session, MemoryCache()).get_history("user-123")
