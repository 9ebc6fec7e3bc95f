"""
Session initializer: validate a proposed transfer and allocate its session
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..core.clock import utcnow
from ..core.config import Settings, settings as default_settings
from ..core.errors import ValidationError, NotFoundError, StorageError
from ..models import UploadSession, SessionStatus
from .chunk_plan import plan_chunks
from .chunk_store import ChunkStore
from .principals import PrincipalDirectory
from .session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrityMetadata:
    """Opaque client-side encryption metadata plus the expected full-file hash"""
    wrapped_key: Optional[str] = None
    iv: Optional[str] = None
    file_hash: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.wrapped_key and self.iv and self.file_hash)


@dataclass(frozen=True)
class InitResult:
    upload_id: str
    chunk_size: int
    total_chunks: int


class SessionInitializer:
    """Creates the session record first, then its chunk namespace"""

    def __init__(
        self,
        store: SessionStore,
        chunk_store: ChunkStore,
        principals: PrincipalDirectory,
        settings: Settings = default_settings
    ):
        self.store = store
        self.chunk_store = chunk_store
        self.principals = principals
        self.settings = settings

    async def _validate(
        self,
        owner_id: str,
        destination_id: Optional[str],
        file_name: Optional[str],
        file_size: Optional[int],
        mime_type: Optional[str],
        integrity: Optional[IntegrityMetadata]
    ) -> None:
        # Checks run in a fixed order; the first failure is reported
        if not file_name or not file_size or not destination_id or not mime_type:
            raise ValidationError("Missing required fields: filename, fileSize, receiver, mimeType")

        if file_size < 0:
            raise ValidationError("File size must be positive")

        if file_size > self.settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File size exceeds maximum limit of {self.settings.MAX_UPLOAD_SIZE} bytes"
            )

        if destination_id == owner_id:
            raise ValidationError("Cannot send file to yourself")

        if not await self.principals.exists(destination_id):
            raise NotFoundError("Receiver user not found")

        if integrity is not None and not integrity.is_complete:
            raise ValidationError("Encrypted upload missing encryption metadata")

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
        """
        Validate, plan and persist a new in-progress session.

        ``integrity`` is None for plain uploads; when given, all three fields
        must be present.
        """
        await self._validate(owner_id, destination_id, file_name, file_size, mime_type, integrity)

        plan = plan_chunks(file_size, preferred_chunk_size, self.settings)
        upload_id = str(uuid.uuid4())
        now = utcnow()

        upload_session = UploadSession(
            upload_id=upload_id,
            owner_id=owner_id,
            destination_id=destination_id,
            file_name=file_name,
            mime_type=mime_type,
            file_size=file_size,
            chunk_size=plan.chunk_size,
            total_chunks=plan.total_chunks,
            is_encrypted=integrity is not None,
            wrapped_key=integrity.wrapped_key if integrity else None,
            iv=integrity.iv if integrity else None,
            file_hash=integrity.file_hash if integrity else None,
            status=SessionStatus.IN_PROGRESS,
            created_at=now,
            expires_at=now + timedelta(seconds=self.settings.SESSION_TTL_SECONDS)
        )
        await self.store.create(upload_session)

        try:
            await self.chunk_store.create_namespace(upload_id)
        except StorageError as e:
            # No completable session may outlive a failed allocation
            await self.store.transition(
                upload_id,
                SessionStatus.FAILED,
                failure_reason=f"Chunk storage allocation failed: {e}"
            )
            raise

        logger.info(
            f"📤 Initialized upload {upload_id} for {file_name} "
            f"({file_size} bytes, {plan.total_chunks} × {plan.chunk_size})"
        )
        return InitResult(
            upload_id=upload_id,
            chunk_size=plan.chunk_size,
            total_chunks=plan.total_chunks
        )
