"""Models module exports"""
from .database import Base, SessionStatus, UserRecord, UploadSession, ReceivedChunk, StoredArtifact

__all__ = ["Base", "SessionStatus", "UserRecord", "UploadSession", "ReceivedChunk", "StoredArtifact"]
