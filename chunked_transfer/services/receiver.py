"""
Chunk receiver: persist one chunk of an in-progress session

The per-chunk checksum is accepted but not verified unless
VERIFY_CHUNK_CHECKSUMS is enabled; by default integrity is checked once, on
the assembled file.
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    ValidationError,
    NotFoundError,
    AuthorizationError,
    ConflictError,
)
from ..models import SessionStatus
from .chunk_store import ChunkStore, sha256_file, discard
from .session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptResult:
    ordinal: int
    received_ordinals: list[int]
    total_chunks: int


class ChunkReceiver:
    """Moves materialized chunk bytes into a session's namespace"""

    def __init__(
        self,
        store: SessionStore,
        chunk_store: ChunkStore,
        settings: Settings = default_settings
    ):
        self.store = store
        self.chunk_store = chunk_store
        self.settings = settings

    async def _verify_checksum(self, temp_path: Path, ordinal: int, checksum: str) -> None:
        loop = asyncio.get_running_loop()
        computed = await loop.run_in_executor(None, sha256_file, temp_path, self.settings.IO_BUFFER_SIZE)
        if computed.lower() != checksum.lower():
            raise ValidationError(f"Chunk {ordinal} hash mismatch - file corrupted during transfer")

    async def receive_chunk(
        self,
        upload_id: str,
        owner_id: str,
        ordinal: int,
        total_chunks_claim: int,
        temp_path: Path,
        checksum: Optional[str] = None
    ) -> ReceiptResult:
        """
        Record one chunk. ``temp_path`` is consumed: it is either moved into
        the namespace or deleted, never left behind.
        """
        try:
            upload_session = await self.store.get(upload_id)
            if upload_session is None:
                raise NotFoundError("Upload session not found")

            if upload_session.owner_id != owner_id:
                raise AuthorizationError("Not authorized to upload chunks for this session")

            if upload_session.status != SessionStatus.IN_PROGRESS:
                raise ConflictError(f"Cannot upload chunk to {upload_session.status} session")

            if isinstance(ordinal, bool) or not isinstance(ordinal, int) or ordinal < 1:
                raise ValidationError("Chunk number must be a positive integer")

            if ordinal > upload_session.total_chunks:
                raise ValidationError(
                    f"Invalid chunk number. Must be between 1 and {upload_session.total_chunks}"
                )

            if total_chunks_claim != upload_session.total_chunks:
                raise ValidationError(
                    f"Total chunks mismatch: session expects {upload_session.total_chunks}, "
                    f"got {total_chunks_claim}"
                )

            if checksum and self.settings.VERIFY_CHUNK_CHECKSUMS:
                await self._verify_checksum(temp_path, ordinal, checksum)

            await self.chunk_store.move_into(upload_id, ordinal, temp_path)
        except Exception:
            discard(temp_path)
            raise

        received = await self.store.add_received_chunk(upload_id, ordinal)

        # A cancel may have landed between the status check and the move
        current = await self.store.get(upload_id)
        if current is None or current.status != SessionStatus.IN_PROGRESS:
            await self.chunk_store.remove_namespace(upload_id)
            state = current.status if current else "deleted"
            raise ConflictError(f"Cannot upload chunk to {state} session")

        logger.info(f"📦 Received chunk {ordinal}/{upload_session.total_chunks} for {upload_id}")
        return ReceiptResult(
            ordinal=ordinal,
            received_ordinals=received,
            total_chunks=upload_session.total_chunks
        )
