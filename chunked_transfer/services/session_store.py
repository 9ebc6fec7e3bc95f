"""
Session store: durable upload session records with optimistic concurrency

Every status change is a compare-and-set against ``in-progress``:

    UPDATE upload_sessions SET status = :new
    WHERE upload_id = :id AND status = 'in-progress'

``rowcount == 0`` means another operation already moved the session to a
terminal state, so the first transition always wins and the loser can detect
it without having mutated anything.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import DateTime, Integer, String, delete, literal, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import utcnow
from ..core.errors import ConflictError
from ..models import UploadSession, ReceivedChunk, StoredArtifact, SessionStatus

logger = logging.getLogger(__name__)


def _insert_ignore(session: AsyncSession, table):
    """Dialect-specific INSERT ... ON CONFLICT DO NOTHING"""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    raise NotImplementedError(f"Unsupported database dialect: {dialect}")


class SessionStore:
    """Persistence for UploadSession rows; one short transaction per call"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create(self, upload_session: UploadSession) -> UploadSession:
        """Insert a new session; fails if the id already exists"""
        async with self.session_maker() as db:
            db.add(upload_session)
            try:
                await db.commit()
            except DBIntegrityError as e:
                await db.rollback()
                raise ConflictError(f"Upload session {upload_session.upload_id} already exists") from e
        return upload_session

    async def get(self, upload_id: str) -> Optional[UploadSession]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(UploadSession).where(UploadSession.upload_id == upload_id)
            )
            return result.scalar_one_or_none()

    async def add_received_chunk(self, upload_id: str, ordinal: int) -> list[int]:
        """
        Atomically add an ordinal to the received set.

        Duplicate ordinals are absorbed by the primary key, so concurrent and
        repeated receipts of the same chunk are no-ops. The insert is guarded
        by the session status in the same statement: once a session leaves
        ``in-progress`` its received set stops growing.
        """
        in_progress = (
            select(UploadSession.upload_id)
            .where(
                UploadSession.upload_id == upload_id,
                UploadSession.status == SessionStatus.IN_PROGRESS
            )
            .exists()
        )
        row = select(
            literal(upload_id, String),
            literal(ordinal, Integer),
            literal(utcnow(), DateTime)
        ).where(in_progress)

        async with self.session_maker() as db:
            stmt = _insert_ignore(db, ReceivedChunk).from_select(
                ["upload_id", "ordinal", "received_at"], row
            )
            await db.execute(stmt)
            await db.commit()

            result = await db.execute(
                select(ReceivedChunk.ordinal)
                .where(ReceivedChunk.upload_id == upload_id)
                .order_by(ReceivedChunk.ordinal.asc())
            )
            return list(result.scalars().all())

    async def transition(self, upload_id: str, new_status: str, **fields) -> bool:
        """
        Move an in-progress session to ``new_status``.

        Returns False when the session was not in progress (or is gone).
        """
        async with self.session_maker() as db:
            result = await db.execute(
                update(UploadSession)
                .where(
                    UploadSession.upload_id == upload_id,
                    UploadSession.status == SessionStatus.IN_PROGRESS
                )
                .values(status=new_status, **fields)
            )
            await db.commit()

        if result.rowcount == 0:
            logger.warning(f"⚠️ Transition of {upload_id} to {new_status} lost: session not in progress")
            return False
        logger.info(f"🔁 Session {upload_id} → {new_status}")
        return True

    async def complete_with_artifact(
        self,
        upload_id: str,
        artifact: StoredArtifact,
        resolved_hash: Optional[str],
        completed_at: datetime
    ) -> bool:
        """
        Flip the session to completed and register its artifact in one
        transaction. Returns False (and writes nothing) if the session is no
        longer in progress.
        """
        async with self.session_maker() as db:
            result = await db.execute(
                update(UploadSession)
                .where(
                    UploadSession.upload_id == upload_id,
                    UploadSession.status == SessionStatus.IN_PROGRESS
                )
                .values(
                    status=SessionStatus.COMPLETED,
                    completed_at=completed_at,
                    file_hash=resolved_hash
                )
            )
            if result.rowcount == 0:
                await db.rollback()
                logger.warning(f"⚠️ Completion of {upload_id} lost: session not in progress")
                return False

            db.add(artifact)
            await db.commit()

        logger.info(f"✅ Session {upload_id} completed → artifact {artifact.id}")
        return True

    async def delete(self, upload_id: str) -> bool:
        async with self.session_maker() as db:
            await db.execute(delete(ReceivedChunk).where(ReceivedChunk.upload_id == upload_id))
            result = await db.execute(delete(UploadSession).where(UploadSession.upload_id == upload_id))
            await db.commit()
        return result.rowcount > 0

    async def find_matching(
        self,
        statuses: Optional[Iterable[str]] = None,
        expires_before: Optional[datetime] = None
    ) -> list[UploadSession]:
        """Sessions filtered by status and/or expiry horizon (reaper queries)"""
        query = select(UploadSession)
        if statuses is not None:
            query = query.where(UploadSession.status.in_(list(statuses)))
        if expires_before is not None:
            query = query.where(UploadSession.expires_at < expires_before)

        async with self.session_maker() as db:
            result = await db.execute(query.order_by(UploadSession.created_at.asc()))
            return list(result.scalars().all())

    async def get_artifact(self, artifact_id: str) -> Optional[StoredArtifact]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(StoredArtifact).where(StoredArtifact.id == artifact_id)
            )
            return result.scalar_one_or_none()
