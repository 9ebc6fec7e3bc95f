"""Services module exports"""
from .chunk_plan import ChunkPlan, plan_chunks
from .chunk_store import ChunkStore
from .session_store import SessionStore
from .principals import PrincipalDirectory
from .initializer import SessionInitializer, IntegrityMetadata, InitResult
from .receiver import ChunkReceiver, ReceiptResult
from .assembler import Assembler, CompletionResult
from .reaper import Reaper, ReaperReport
from .upload_service import ChunkedUploadService, StatusResult, build_upload_service, upload_service

__all__ = [
    "ChunkPlan",
    "plan_chunks",
    "ChunkStore",
    "SessionStore",
    "PrincipalDirectory",
    "SessionInitializer",
    "IntegrityMetadata",
    "InitResult",
    "ChunkReceiver",
    "ReceiptResult",
    "Assembler",
    "CompletionResult",
    "Reaper",
    "ReaperReport",
    "ChunkedUploadService",
    "StatusResult",
    "build_upload_service",
    "upload_service",
]
