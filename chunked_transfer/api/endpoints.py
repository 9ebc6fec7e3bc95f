"""
FastAPI endpoints for chunked uploads

Authentication happens upstream; the authenticated principal arrives as the
opaque ``X-User-Id`` header.
"""
import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import Annotated, BinaryIO, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, UploadFile, status

from ..core.errors import StorageError
from ..schemas import (
    InitUploadRequest,
    InitUploadResponse,
    ChunkUploadResponse,
    UploadStatusResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    CancelUploadResponse,
    CleanupResponse,
)
from ..services import ChunkedUploadService, IntegrityMetadata, upload_service
from ..services.chunk_store import discard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads/chunked", tags=["chunked-uploads"])


def get_upload_service() -> ChunkedUploadService:
    return upload_service


def get_current_user(x_user_id: Annotated[Optional[str], Header()] = None) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return x_user_id


Service = Annotated[ChunkedUploadService, Depends(get_upload_service)]
CurrentUser = Annotated[str, Depends(get_current_user)]


def _spool_to_disk(source: BinaryIO, temp_path: Path, buffer_size: int) -> None:
    temp_path.parent.mkdir(parents=True, exist_ok=True)
    with open(temp_path, "wb") as out:
        shutil.copyfileobj(source, out, buffer_size)


async def materialize_chunk(service: ChunkedUploadService, chunk: UploadFile) -> Path:
    """Stream the multipart body into incoming/ with a bounded buffer, off the event loop"""
    temp_path = service.settings.incoming_dir / f"{uuid.uuid4().hex}.part"
    loop = asyncio.get_running_loop()
    try:
        await chunk.seek(0)
        await loop.run_in_executor(
            None, _spool_to_disk, chunk.file, temp_path, service.settings.IO_BUFFER_SIZE
        )
    except OSError as e:
        discard(temp_path)
        raise StorageError(f"Failed to buffer chunk: {e}") from e
    return temp_path


@router.post("/init", response_model=InitUploadResponse, status_code=status.HTTP_201_CREATED)
async def init_chunked_upload(request: InitUploadRequest, user_id: CurrentUser, service: Service):
    """Initialize a chunked upload session and return its chunk plan"""
    logger.info(f"📤 Init chunked upload: {request.filename} ({request.file_size} bytes) from {user_id}")

    integrity = None
    if request.is_encrypted:
        integrity = IntegrityMetadata(
            wrapped_key=request.encrypted_aes_key,
            iv=request.iv,
            file_hash=request.file_hash
        )

    result = await service.init_session(
        owner_id=user_id,
        destination_id=request.receiver,
        file_name=request.filename,
        file_size=request.file_size,
        mime_type=request.mime_type,
        preferred_chunk_size=request.preferred_chunk_size,
        integrity=integrity
    )
    return InitUploadResponse(
        upload_id=result.upload_id,
        chunk_size=result.chunk_size,
        total_chunks=result.total_chunks
    )


@router.post("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    user_id: CurrentUser,
    service: Service,
    upload_id: Annotated[str, Form()],
    chunk_number: Annotated[int, Form()],
    total_chunks: Annotated[int, Form()],
    chunk: Annotated[UploadFile, File(description="Chunk bytes")],
    chunk_hash: Annotated[Optional[str], Form()] = None,
):
    """
    Upload a single chunk.

    Idempotent: re-uploading an ordinal replaces the stored bytes and leaves
    the received set unchanged.
    """
    temp_path = await materialize_chunk(service, chunk)
    result = await service.receive_chunk(
        upload_id,
        user_id,
        chunk_number,
        total_chunks,
        temp_path,
        checksum=chunk_hash
    )
    return ChunkUploadResponse(
        chunk_number=result.ordinal,
        uploaded_chunks=result.received_ordinals,
        total_chunks=result.total_chunks
    )


@router.get("/{upload_id}/status", response_model=UploadStatusResponse)
async def get_upload_status(upload_id: str, user_id: CurrentUser, service: Service):
    """Which chunks have landed; clients use this to resume"""
    result = await service.get_status(upload_id, user_id)
    return UploadStatusResponse(
        upload_id=result.upload_id,
        status=result.status,
        uploaded_chunks=result.received_ordinals,
        total_chunks=result.total_chunks,
        file_size=result.file_size,
        progress_percent=result.progress_percent,
        failure_reason=result.failure_reason
    )


@router.post("/complete", response_model=CompleteUploadResponse)
async def complete_chunked_upload(request: CompleteUploadRequest, user_id: CurrentUser, service: Service):
    """Assemble all chunks into the final file"""
    logger.info(f"🔧 Complete requested for {request.upload_id}")
    result = await service.complete(request.upload_id, user_id, expected_hash=request.file_hash)
    return CompleteUploadResponse(
        file_id=result.artifact_id,
        filename=result.file_name,
        file_size=result.file_size,
        file_hash=result.file_hash,
        completed_at=result.completed_at
    )


@router.delete("/{upload_id}", response_model=CancelUploadResponse)
async def cancel_chunked_upload(upload_id: str, user_id: CurrentUser, service: Service):
    """Cancel an in-progress upload and drop its chunks"""
    await service.cancel(upload_id, user_id)
    return CancelUploadResponse()


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_abandoned_uploads(user_id: CurrentUser, service: Service):
    """Run the reaper now (administrator trigger)"""
    logger.info(f"🧹 Cleanup triggered by {user_id}")
    report = await service.run_reaper()
    return CleanupResponse(
        cleaned=report.total,
        stray_files=report.stray_files,
        namespaces=report.namespaces,
        expired_sessions=report.expired_sessions
    )
