"""
Assembler: concatenate a session's chunks into one verified artifact

Flow:
1. Check preconditions (owner, in-progress, every chunk receipted)
2. Stream chunks 1..N in order into a fresh file (bounded buffer)
3. Verify the assembled size against the declared size
4. Hash the file when the caller supplied an expected hash, or when the file
   is at or below HASH_SIZE_THRESHOLD (large files skip hashing by default)
5. Flip the session to completed and register the artifact in one
   transaction
6. Remove the chunk namespace

A missing chunk leaves the session in progress so the caller can re-upload
and retry. Size/hash mismatches and storage faults mark it failed. The
partially built file is always deleted on any failure.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.clock import utcnow
from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    NotFoundError,
    AuthorizationError,
    ConflictError,
    IntegrityError,
    StorageError,
)
from ..models import StoredArtifact, SessionStatus, UploadSession
from .chunk_store import ChunkStore, sha256_file, discard
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class MissingChunk(Exception):
    """Raised from the copy loop when a receipted chunk is absent on disk"""

    def __init__(self, ordinal: int):
        super().__init__(f"Missing chunk {ordinal} during assembly")
        self.ordinal = ordinal


@dataclass(frozen=True)
class CompletionResult:
    artifact_id: str
    file_name: str
    file_size: int
    file_hash: Optional[str]
    completed_at: datetime


def storage_name_for(file_name: str) -> str:
    """Collision-resistant on-disk name; only the extension is kept"""
    return f"{uuid.uuid4().hex}{Path(file_name).suffix}"


class Assembler:
    """Builds and registers the final artifact for a fully receipted session"""

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

    def _concatenate(self, upload_id: str, total_chunks: int, final_path: Path) -> int:
        """Blocking ordered copy of every chunk into ``final_path``"""
        written = 0
        with open(final_path, "wb") as outfile:
            for ordinal in range(1, total_chunks + 1):
                try:
                    written += self.chunk_store.copy_chunk_to(upload_id, ordinal, outfile)
                except FileNotFoundError as e:
                    raise MissingChunk(ordinal) from e
        return written

    async def _fail(self, upload_id: str, reason: str) -> None:
        logger.error(f"❌ Assembly of {upload_id} failed: {reason}")
        await self.store.transition(upload_id, SessionStatus.FAILED, failure_reason=reason)

    def should_hash(self, file_size: int, expected_hash: Optional[str]) -> bool:
        return bool(expected_hash) or file_size <= self.settings.HASH_SIZE_THRESHOLD

    async def _check_preconditions(self, upload_id: str, owner_id: str) -> UploadSession:
        upload_session = await self.store.get(upload_id)
        if upload_session is None:
            raise NotFoundError("Upload session not found")

        if upload_session.owner_id != owner_id:
            raise AuthorizationError("Not authorized to complete this upload")

        if upload_session.status != SessionStatus.IN_PROGRESS:
            raise ConflictError(f"Cannot complete {upload_session.status} session")

        received = len(upload_session.received)
        if received != upload_session.total_chunks:
            raise ConflictError(f"Missing chunks. Received {received}/{upload_session.total_chunks}")
        return upload_session

    async def complete(
        self,
        upload_id: str,
        owner_id: str,
        expected_hash: Optional[str] = None
    ) -> CompletionResult:
        upload_session = await self._check_preconditions(upload_id, owner_id)

        storage_name = storage_name_for(upload_session.file_name)
        final_path = self.settings.files_dir / storage_name
        logger.info(f"🔧 Assembling {upload_session.total_chunks} chunks for {upload_id} → {storage_name}")

        try:
            await self._run(lambda: final_path.parent.mkdir(parents=True, exist_ok=True))
            bytes_written = await self._run(
                self._concatenate, upload_id, upload_session.total_chunks, final_path
            )
        except MissingChunk as e:
            discard(final_path)
            current = await self.store.get(upload_id)
            if current is None or current.status != SessionStatus.IN_PROGRESS:
                state = current.status if current else "deleted"
                raise ConflictError(f"Cannot complete {state} session") from e
            logger.warning(f"⚠️ {e} for {upload_id}; session left in progress")
            raise NotFoundError(str(e)) from e
        except OSError as e:
            discard(final_path)
            await self._fail(upload_id, f"Storage failure during assembly: {e}")
            raise StorageError(f"Failed to assemble file: {e}") from e

        try:
            actual_size = final_path.stat().st_size
        except OSError as e:
            discard(final_path)
            await self._fail(upload_id, f"Storage failure during assembly: {e}")
            raise StorageError(f"Failed to assemble file: {e}") from e

        if actual_size != upload_session.file_size:
            discard(final_path)
            reason = (
                f"File size mismatch. Expected {upload_session.file_size} bytes, "
                f"got {actual_size} bytes. Bytes written: {bytes_written}"
            )
            await self._fail(upload_id, reason)
            raise IntegrityError(reason)

        computed_hash = None
        if self.should_hash(upload_session.file_size, expected_hash):
            try:
                computed_hash = await self._run(sha256_file, final_path, self.settings.IO_BUFFER_SIZE)
            except OSError as e:
                discard(final_path)
                await self._fail(upload_id, f"Storage failure while hashing: {e}")
                raise StorageError(f"Failed to hash file: {e}") from e

            if expected_hash and computed_hash.lower() != expected_hash.lower():
                discard(final_path)
                await self._fail(upload_id, "File integrity check failed: hash mismatch")
                raise IntegrityError("File integrity check failed")
        else:
            logger.info(f"⏭️  Skipping hash for {upload_id} ({upload_session.file_size} bytes above threshold)")

        resolved_hash = computed_hash or upload_session.file_hash
        completed_at = utcnow()
        artifact = StoredArtifact(
            id=str(uuid.uuid4()),
            upload_id=upload_id,
            owner_id=upload_session.owner_id,
            destination_id=upload_session.destination_id,
            original_file_name=upload_session.file_name,
            stored_file_name=storage_name,
            file_path=f"files/{storage_name}",
            file_size=upload_session.file_size,
            mime_type=upload_session.mime_type,
            is_encrypted=upload_session.is_encrypted,
            wrapped_key=upload_session.wrapped_key,
            iv=upload_session.iv,
            file_hash=resolved_hash,
            download_count=0,
            is_downloaded=False,
            created_at=completed_at
        )

        try:
            won = await self.store.complete_with_artifact(upload_id, artifact, resolved_hash, completed_at)
        except SQLAlchemyError as e:
            discard(final_path)
            await self._fail(upload_id, f"Failed to register artifact: {e}")
            raise StorageError(f"Failed to register artifact: {e}") from e

        if not won:
            discard(final_path)
            raise ConflictError("Upload session is no longer in progress")

        try:
            await self.chunk_store.remove_namespace(upload_id)
        except StorageError as e:
            # The session is complete; leftover chunks are reclaimed by the reaper
            logger.error(f"❌ Could not purge chunks for completed {upload_id}: {e}")

        logger.info(f"✅ Completed {upload_id}: {upload_session.file_name} ({actual_size} bytes)")
        return CompletionResult(
            artifact_id=artifact.id,
            file_name=artifact.original_file_name,
            file_size=artifact.file_size,
            file_hash=resolved_hash,
            completed_at=completed_at
        )
