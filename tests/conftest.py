"""Shared test fixtures: temp storage root, SQLite store, wired service"""
import uuid
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import select, func

from chunked_transfer.core import Settings, build_engine, build_session_maker
from chunked_transfer.models import Base, UserRecord, StoredArtifact
from chunked_transfer.services import build_upload_service

OWNER = "user-alice"
DESTINATION = "user-bob"
STRANGER = "user-carol"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Default limits, storage rooted in a temp directory"""
    test_settings = Settings()
    test_settings.UPLOAD_ROOT = str(tmp_path / "uploads")
    test_settings.VERIFY_CHUNK_CHECKSUMS = False
    test_settings.ensure_directories()
    return test_settings


@pytest.fixture
def tiny_chunks(settings: Settings) -> Settings:
    """Shrink the chunk plan to 4-byte chunks so tests can use literal bytes"""
    settings.MIN_CHUNK_SIZE = 4
    settings.MAX_CHUNK_SIZE = 4
    settings.CHUNK_SIZE_TIERS = []
    return settings


@pytest_asyncio.fixture
async def session_maker(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'uploads.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = build_session_maker(engine)
    async with maker() as db:
        db.add_all([
            UserRecord(id=OWNER, username="alice"),
            UserRecord(id=DESTINATION, username="bob"),
            UserRecord(id=STRANGER, username="carol"),
        ])
        await db.commit()

    yield maker
    await engine.dispose()


@pytest.fixture
def service(session_maker, settings: Settings):
    return build_upload_service(session_maker, settings)


@pytest.fixture
def make_chunk(settings: Settings):
    """Materialize bytes in incoming/ the way the ingress layer does"""
    def _make(data: bytes) -> Path:
        settings.incoming_dir.mkdir(parents=True, exist_ok=True)
        path = settings.incoming_dir / f"{uuid.uuid4().hex}.part"
        path.write_bytes(data)
        return path
    return _make


@pytest.fixture
def count_artifacts(session_maker):
    async def _count() -> int:
        async with session_maker() as db:
            result = await db.execute(select(func.count()).select_from(StoredArtifact))
            return result.scalar_one()
    return _count
