"""
Reaper: reclaim storage held by abandoned or terminal uploads

Three independent sweeps, each best-effort per item (a failure is logged and
the sweep moves on):

- stray files: anything directly in incoming/ older than
  STRAY_FILE_MAX_AGE_SECONDS (request bodies never handed to a session)
- chunk namespaces: namespaces older than CHUNK_NAMESPACE_MAX_AGE_SECONDS
  whose session is gone or terminal. Age is the only abandonment signal, so
  an old namespace of an in-progress session is left alone.
- expiry: in-progress sessions past expires_at become failed and lose their
  chunks; expired failed/cancelled rows are deleted. Completed sessions and
  their artifacts are never touched.
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from ..core.clock import utcnow
from ..core.config import Settings, settings as default_settings
from ..core.errors import StorageError
from ..models import SessionStatus
from .chunk_store import ChunkStore
from .session_store import SessionStore

logger = logging.getLogger(__name__)

# Sessions in these states no longer need their chunks
RECLAIMABLE_STATUSES = frozenset({SessionStatus.FAILED, SessionStatus.CANCELLED, SessionStatus.COMPLETED})


@dataclass
class ReaperReport:
    stray_files: int = 0
    namespaces: int = 0
    expired_sessions: int = 0

    @property
    def total(self) -> int:
        return self.stray_files + self.namespaces + self.expired_sessions


class Reaper:
    """Sweeps the session store and chunk store for reclaimable state"""

    def __init__(
        self,
        store: SessionStore,
        chunk_store: ChunkStore,
        settings: Settings = default_settings
    ):
        self.store = store
        self.chunk_store = chunk_store
        self.settings = settings

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _stray_files(self) -> list[str]:
        incoming = self.settings.incoming_dir
        if not incoming.exists():
            return []
        cutoff = time.time() - self.settings.STRAY_FILE_MAX_AGE_SECONDS
        stale = []
        for entry in os.scandir(incoming):
            if entry.is_file(follow_symlinks=False) and entry.stat().st_mtime < cutoff:
                stale.append(entry.path)
        return stale

    async def sweep_stray_files(self) -> int:
        cleaned = 0
        for path in await self._run(self._stray_files):
            try:
                await self._run(os.unlink, path)
                cleaned += 1
                logger.info(f"🧹 Cleaned up temp file: {os.path.basename(path)}")
            except OSError as e:
                logger.error(f"❌ Error cleaning up {path}: {e}")
        return cleaned

    async def sweep_chunk_namespaces(self) -> int:
        cleaned = 0
        max_age = self.settings.CHUNK_NAMESPACE_MAX_AGE_SECONDS
        for upload_id, age in await self._run(self.chunk_store.list_namespaces):
            if age <= max_age:
                continue
            try:
                upload_session = await self.store.get(upload_id)
                if upload_session is not None and upload_session.status not in RECLAIMABLE_STATUSES:
                    continue
                if await self.chunk_store.remove_namespace(upload_id):
                    cleaned += 1
                    logger.info(f"🧹 Cleaned up orphaned upload: {upload_id}")
            except (StorageError, SQLAlchemyError) as e:
                logger.error(f"❌ Error cleaning up {upload_id}: {e}")
        return cleaned

    async def sweep_expired_sessions(self) -> int:
        cleaned = 0
        now = utcnow()
        # Snapshot before flipping so a session is not expired and deleted in one pass
        expired_terminal = await self.store.find_matching(
            statuses=[SessionStatus.FAILED, SessionStatus.CANCELLED], expires_before=now
        )

        for upload_session in await self.store.find_matching(
            statuses=[SessionStatus.IN_PROGRESS], expires_before=now
        ):
            upload_id = upload_session.upload_id
            try:
                if await self.store.transition(
                    upload_id, SessionStatus.FAILED, failure_reason="Upload session expired"
                ):
                    await self.chunk_store.remove_namespace(upload_id)
                    cleaned += 1
                    logger.info(f"⌛ Expired upload session {upload_id}")
            except (StorageError, SQLAlchemyError) as e:
                logger.error(f"❌ Error expiring {upload_id}: {e}")

        for upload_session in expired_terminal:
            upload_id = upload_session.upload_id
            try:
                await self.chunk_store.remove_namespace(upload_id)
                if await self.store.delete(upload_id):
                    cleaned += 1
                    logger.info(f"🗑️  Deleted expired {upload_session.status} session {upload_id}")
            except (StorageError, SQLAlchemyError) as e:
                logger.error(f"❌ Error deleting {upload_id}: {e}")

        return cleaned

    async def run(self) -> ReaperReport:
        """Run every sweep once"""
        logger.info("=== Starting file cleanup ===")
        report = ReaperReport()
        report.stray_files = await self.sweep_stray_files()
        report.namespaces = await self.sweep_chunk_namespaces()
        report.expired_sessions = await self.sweep_expired_sessions()
        logger.info(
            f"=== Cleanup complete: {report.stray_files} temp files, "
            f"{report.namespaces} chunk namespaces, {report.expired_sessions} expired sessions ==="
        )
        return report

    async def run_periodically(self, interval_seconds: int) -> None:
        """Background loop; cancelled by the application lifespan"""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.run()
            except Exception:
                logger.exception("❌ Cleanup pass failed")
