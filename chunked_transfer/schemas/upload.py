"""
Pydantic schemas for the chunked upload API
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class InitUploadRequest(BaseModel):
    """Proposed transfer; required-field checks happen in the service so they
    report in a fixed order"""
    filename: Optional[str] = None
    file_size: Optional[int] = None
    receiver: Optional[str] = Field(None, description="Destination principal id")
    mime_type: Optional[str] = None
    preferred_chunk_size: Optional[int] = None
    is_encrypted: bool = False
    encrypted_aes_key: Optional[str] = None  # Wrapped key, opaque to the server
    iv: Optional[str] = None
    file_hash: Optional[str] = Field(None, description="SHA256 of the full file")


class InitUploadResponse(BaseModel):
    upload_id: str
    chunk_size: int
    total_chunks: int


class ChunkUploadResponse(BaseModel):
    success: bool = True
    chunk_number: int
    uploaded_chunks: list[int]
    total_chunks: int


class UploadStatusResponse(BaseModel):
    upload_id: str
    status: str
    uploaded_chunks: list[int]
    total_chunks: int
    file_size: int
    progress_percent: float
    failure_reason: Optional[str] = None


class CompleteUploadRequest(BaseModel):
    upload_id: str
    file_hash: Optional[str] = None


class CompleteUploadResponse(BaseModel):
    success: bool = True
    file_id: str
    filename: str
    file_size: int
    file_hash: Optional[str]
    completed_at: datetime


class CancelUploadResponse(BaseModel):
    success: bool = True
    message: str = "Upload cancelled"


class CleanupResponse(BaseModel):
    success: bool = True
    cleaned: int
    stray_files: int
    namespaces: int
    expired_sessions: int
