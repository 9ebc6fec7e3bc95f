"""
Database models for chunked upload sessions and the artifacts they produce

A session row and its chunk namespace on disk are two halves of one logical
upload. Received ordinals live in their own table so that recording a chunk
is a single idempotent insert rather than a read-modify-write of a list.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class SessionStatus:
    """Lifecycle states; everything except IN_PROGRESS is terminal"""
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


class UserRecord(Base):
    """
    Principal directory entry.

    Users are registered elsewhere; the upload engine only needs to resolve
    that a destination identifier names a real principal.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    def __repr__(self):
        return f"<UserRecord id={self.id} username={self.username}>"


class UploadSession(Base):
    """Durable record of one chunked transfer"""
    __tablename__ = "upload_sessions"

    upload_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    destination_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Declared at init, immutable
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    chunk_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)

    # Opaque end-to-end integrity metadata (never interpreted server-side)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wrapped_key: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    iv: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=SessionStatus.IN_PROGRESS,
        nullable=False,
        index=True
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    received: Mapped[list["ReceivedChunk"]] = relationship(
        lazy="selectin",
        order_by="ReceivedChunk.ordinal",
        viewonly=True
    )

    @property
    def received_ordinals(self) -> list[int]:
        return sorted(chunk.ordinal for chunk in self.received)

    @property
    def progress_percent(self) -> float:
        if self.total_chunks <= 0:
            return 0.0
        return round(len(self.received) / self.total_chunks * 100, 2)

    @property
    def is_terminal(self) -> bool:
        return self.status in SessionStatus.TERMINAL

    def __repr__(self):
        return (
            f"<UploadSession upload_id={self.upload_id} file_name={self.file_name} "
            f"status={self.status} {len(self.received)}/{self.total_chunks}>"
        )


class ReceivedChunk(Base):
    """One persisted chunk ordinal; the composite key gives set semantics"""
    __tablename__ = "upload_session_chunks"

    upload_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("upload_sessions.upload_id", ondelete="CASCADE"),
        primary_key=True
    )
    ordinal: Mapped[int] = mapped_column(Integer, primary_key=True)
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class StoredArtifact(Base):
    """
    Final file produced by a successful assembly.

    Created exactly once per completed session; from then on its lifecycle is
    independent of the session (the reaper never touches it).
    """
    __tablename__ = "stored_artifacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    upload_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    destination_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    original_file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    stored_file_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)

    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    wrapped_key: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    iv: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Audit counters
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_downloaded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_artifact_destination_created", "destination_id", "created_at"),
        Index("idx_artifact_owner_created", "owner_id", "created_at"),
    )

    def __repr__(self):
        return f"<StoredArtifact id={self.id} name={self.original_file_name} size={self.file_size}>"
