"""
Chunked upload service: the public operation surface

    init_session → receive_chunk* → complete
                 ↘ cancel
    get_status at any time; run_reaper independently of any session
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, settings as default_settings
from ..core.database import async_session_maker
from ..core.errors import NotFoundError, AuthorizationError, ConflictError, StorageError
from ..models import SessionStatus
from .assembler import Assembler, CompletionResult
from .chunk_store import ChunkStore
from .initializer import SessionInitializer, IntegrityMetadata, InitResult
from .principals import PrincipalDirectory
from .reaper import Reaper, ReaperReport
from .receiver import ChunkReceiver, ReceiptResult
from .session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusResult:
    upload_id: str
    status: str
    received_ordinals: list[int]
    total_chunks: int
    file_size: int
    progress_percent: float
    failure_reason: Optional[str] = None


class ChunkedUploadService:
    """Wires the initializer, receiver, assembler and reaper over one store"""

    def __init__(
        self,
        store: SessionStore,
        chunk_store: ChunkStore,
        principals: PrincipalDirectory,
        settings: Settings = default_settings
    ):
        self.settings = settings
        self.store = store
        self.chunk_store = chunk_store
        self.initializer = SessionInitializer(store, chunk_store, principals, settings)
        self.receiver = ChunkReceiver(store, chunk_store, settings)
        self.assembler = Assembler(store, chunk_store, settings)
        self.reaper = Reaper(store, chunk_store, settings)

    async def init_session(
        self,
        owner_id: str,
        destination_id: Optional[str],
        file_name: Optional[str],
        file_size: Optional[int],
        mime_type: Optional[str],
        preferred_chunk_size: Optional[int] = None,
        integrity: Optional[IntegrityMetadata] = None
    ) -> InitResult:
        return await self.initializer.init_session(
            owner_id,
            destination_id,
            file_name,
            file_size,
            mime_type,
            preferred_chunk_size=preferred_chunk_size,
            integrity=integrity
        )

    async def receive_chunk(
        self,
        upload_id: str,
        owner_id: str,
        ordinal: int,
        total_chunks_claim: int,
        temp_path: Path,
        checksum: Optional[str] = None
    ) -> ReceiptResult:
        return await self.receiver.receive_chunk(
            upload_id, owner_id, ordinal, total_chunks_claim, temp_path, checksum
        )

    async def get_status(self, upload_id: str, caller_id: str) -> StatusResult:
        """Readable by the owner and by the destination principal"""
        upload_session = await self.store.get(upload_id)
        if upload_session is None:
            raise NotFoundError("Upload session not found")

        if caller_id not in (upload_session.owner_id, upload_session.destination_id):
            raise AuthorizationError("Not authorized to view this upload")

        return StatusResult(
            upload_id=upload_session.upload_id,
            status=upload_session.status,
            received_ordinals=upload_session.received_ordinals,
            total_chunks=upload_session.total_chunks,
            file_size=upload_session.file_size,
            progress_percent=upload_session.progress_percent,
            failure_reason=upload_session.failure_reason
        )

    async def complete(
        self,
        upload_id: str,
        owner_id: str,
        expected_hash: Optional[str] = None
    ) -> CompletionResult:
        return await self.assembler.complete(upload_id, owner_id, expected_hash)

    async def cancel(self, upload_id: str, caller_id: str) -> None:
        """
        Owner-initiated cancel. The status flips first, so no chunk is
        receivable once this returns, then the namespace is purged.
        """
        upload_session = await self.store.get(upload_id)
        if upload_session is None:
            raise NotFoundError("Upload session not found")

        if upload_session.owner_id != caller_id:
            raise AuthorizationError("Not authorized to cancel this upload")

        if not await self.store.transition(upload_id, SessionStatus.CANCELLED):
            current = await self.store.get(upload_id)
            state = current.status if current else "deleted"
            raise ConflictError(f"Cannot cancel {state} session")

        try:
            await self.chunk_store.remove_namespace(upload_id)
        except StorageError as e:
            logger.error(f"❌ Cancelled {upload_id} but chunk purge failed, leaving it to the reaper: {e}")

        logger.info(f"🛑 Cancelled upload session {upload_id}")

    async def run_reaper(self) -> ReaperReport:
        return await self.reaper.run()


def build_upload_service(
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
    settings: Settings = default_settings
) -> ChunkedUploadService:
    store = SessionStore(session_maker)
    return ChunkedUploadService(
        store=store,
        chunk_store=ChunkStore(settings),
        principals=PrincipalDirectory(session_maker),
        settings=settings
    )


# Singleton instance
upload_service = build_upload_service()
