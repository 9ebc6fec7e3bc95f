"""
Local filesystem chunk store

Layout under the storage root:
    chunks/{upload_id}/
        chunk_1, chunk_2, ...
    files/{storage_name}        (assembled artifacts)
    incoming/{temp_name}        (request bodies awaiting hand-off)

A chunk becomes visible only through an atomic rename, so a concurrent
assembly pass never observes a half-written chunk. Namespaces are removed
whole, never chunk by chunk.
"""
import asyncio
import hashlib
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Optional

from ..core.config import Settings, settings as default_settings
from ..core.errors import StorageError

logger = logging.getLogger(__name__)


class ChunkPaths:
    """Centralized path definitions for chunk namespaces"""

    def __init__(self, chunks_dir: Path):
        self.chunks_dir = chunks_dir

    def namespace(self, upload_id: str) -> Path:
        return self.chunks_dir / upload_id

    def chunk(self, upload_id: str, ordinal: int) -> Path:
        return self.namespace(upload_id) / f"chunk_{ordinal}"


class ChunkStore:
    """Per-session chunk namespaces on one node's local disk"""

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self.paths = ChunkPaths(settings.chunks_dir)
        self.buffer_size = settings.IO_BUFFER_SIZE

    async def _run(self, func, *args):
        """Run blocking filesystem work in the default executor"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # Namespaces

    async def create_namespace(self, upload_id: str) -> Path:
        path = self.paths.namespace(upload_id)
        try:
            await self._run(lambda: path.mkdir(parents=True, exist_ok=True))
        except OSError as e:
            logger.error(f"❌ Failed to create chunk namespace {path}: {e}")
            raise StorageError(f"Failed to allocate chunk storage: {e}") from e
        logger.info(f"📁 Created chunk namespace {path}")
        return path

    def namespace_exists(self, upload_id: str) -> bool:
        return self.paths.namespace(upload_id).is_dir()

    async def remove_namespace(self, upload_id: str) -> bool:
        """
        Recursively delete a session's namespace.

        Returns False when there was nothing to remove.
        """
        path = self.paths.namespace(upload_id)
        if not path.exists():
            return False
        try:
            await self._run(shutil.rmtree, path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"❌ Failed to remove chunk namespace {path}: {e}")
            raise StorageError(f"Failed to remove chunk storage: {e}") from e
        logger.info(f"🗑️  Removed chunk namespace {path}")
        return True

    def list_namespaces(self) -> list[tuple[str, float]]:
        """(upload_id, age in seconds) for every namespace directory"""
        if not self.paths.chunks_dir.exists():
            return []
        now = time.time()
        namespaces = []
        for entry in os.scandir(self.paths.chunks_dir):
            if entry.is_dir(follow_symlinks=False):
                namespaces.append((entry.name, now - entry.stat().st_mtime))
        return namespaces

    # Chunks

    async def move_into(self, upload_id: str, ordinal: int, temp_path: Path) -> Path:
        """
        Atomically move an already-materialized chunk into the namespace.

        A missing namespace for a live session is recreated, so a lost
        directory heals on the next receipt.
        """
        target = self.paths.chunk(upload_id, ordinal)

        def _move():
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(temp_path, target)

        try:
            await self._run(_move)
        except OSError as e:
            logger.error(f"❌ Failed to store chunk {ordinal} for {upload_id}: {e}")
            raise StorageError(f"Failed to save chunk: {e}") from e
        return target

    def stat_chunk(self, upload_id: str, ordinal: int) -> Optional[int]:
        """Size of a stored chunk, or None when it does not exist"""
        try:
            return self.paths.chunk(upload_id, ordinal).stat().st_size
        except FileNotFoundError:
            return None

    def copy_chunk_to(self, upload_id: str, ordinal: int, destination) -> int:
        """
        Append one chunk to an open binary stream with a bounded buffer.

        Blocking; call from an executor. Raises FileNotFoundError when the
        chunk is absent.
        """
        written = 0
        with open(self.paths.chunk(upload_id, ordinal), "rb") as infile:
            while True:
                block = infile.read(self.buffer_size)
                if not block:
                    break
                destination.write(block)
                written += len(block)
        return written


def sha256_file(path: Path, buffer_size: int = 256 * 1024) -> str:
    """Streaming SHA-256 of a file on disk (constant memory)"""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            block = f.read(buffer_size)
            if not block:
                break
            hasher.update(block)
    return hasher.hexdigest()


def discard(path: Optional[Path]) -> None:
    """Best-effort removal of a temp or partial file"""
    if path is None:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"⚠️ Could not remove {path}: {e}")
