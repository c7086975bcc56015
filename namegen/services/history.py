"""
Generation History - Recent name generation sessions for one user.

Responses are cached per user for CacheTTL.SHORT and dropped whenever a paid
operation changes the user's data.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from namegen.db.models import NameGenerationLog
from namegen.exceptions import DatabaseError
from namegen.models.api import GenerationHistoryResponse, GenerationLogItem, GenerationStats
from namegen.services.cache import Cache, CacheTTL, get_or_load, user_data_key

logger = get_logger(__name__)

HISTORY_LIMIT = 20
HISTORY_CACHE_TYPE = "generation_history"


def summarize(logs: list[GenerationLogItem]) -> GenerationStats:
    """Aggregate counters over the returned sessions."""
    if not logs:
        return GenerationStats()

    total_names = sum(log.names_generated for log in logs)
    return GenerationStats(
        total_generations=len(logs),
        total_credits_used=sum(log.credits_used for log in logs),
        total_names_generated=total_names,
        avg_per_session=total_names / len(logs),
    )


def to_log_item(log: NameGenerationLog) -> GenerationLogItem:
    metadata = log.metadata_ or {}
    return GenerationLogItem(
        id=str(log.id),
        user_id=log.user_id,
        plan_type=log.plan_type,
        credits_used=log.credits_used or 0,
        names_generated=log.names_generated or 0,
        metadata=metadata,
        created_at=log.created_at,
        has_personality_traits=bool(metadata.get("personalityTraits")),
        has_name_preferences=bool(metadata.get("namePreferences")),
    )


class GenerationHistoryService:
    """Read-through cached access to name_generation_logs."""

    def __init__(self, session: AsyncSession, cache: Cache) -> None:
        self.session = session
        self.cache = cache

    async def get_history(self, user_id: str) -> GenerationHistoryResponse:
        """Last HISTORY_LIMIT sessions, newest first, with stats."""
        return await get_or_load(
            self.cache,
            user_data_key(user_id, HISTORY_CACHE_TYPE),
            lambda: self._load(user_id),
            ttl=CacheTTL.SHORT,
        )

    async def _load(self, user_id: str) -> GenerationHistoryResponse:
        stmt = (
            select(NameGenerationLog)
            .where(NameGenerationLog.user_id == user_id)
            .order_by(NameGenerationLog.created_at.desc())
            .limit(HISTORY_LIMIT)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("generation_history_query_failed", user_id=user_id, error=str(exc))
            raise DatabaseError(f"Failed to fetch generation history: {exc}") from exc

        logs = [to_log_item(row) for row in result.scalars().all()]
        logger.debug("generation_history_loaded", user_id=user_id, count=len(logs))
        return GenerationHistoryResponse(logs=logs, stats=summarize(logs))
