"""Schemas module exports"""
from .upload import (
    InitUploadRequest,
    InitUploadResponse,
    ChunkUploadResponse,
    UploadStatusResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    CancelUploadResponse,
    CleanupResponse,
)

__all__ = [
    "InitUploadRequest",
    "InitUploadResponse",
    "ChunkUploadResponse",
    "UploadStatusResponse",
    "CompleteUploadRequest",
    "CompleteUploadResponse",
    "CancelUploadResponse",
    "CleanupResponse",
]
