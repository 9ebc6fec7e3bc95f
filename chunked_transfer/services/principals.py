"""Principal lookup used to validate transfer destinations"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import UserRecord

logger = logging.getLogger(__name__)


class PrincipalDirectory:
    """Resolves opaque user identifiers against the users table"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def exists(self, user_id: str) -> bool:
        async with self.session_maker() as db:
            result = await db.execute(
                select(UserRecord.id).where(UserRecord.id == user_id)
            )
            return result.scalar_one_or_none() is not None
