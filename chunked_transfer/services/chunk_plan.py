"""
Chunk plan: how a declared file size is split into chunks

Start from a size tier (small files get the minimum chunk size, very large
files the maximum), let a client preference override it, and clamp the
result into [min, max]. The chunk count is fixed at init and never
recomputed.
"""
from dataclasses import dataclass
from typing import Optional

from ..core.config import Settings, settings as default_settings


@dataclass(frozen=True)
class ChunkPlan:
    chunk_size: int
    total_chunks: int


def tier_chunk_size(file_size: int, settings: Settings = default_settings) -> int:
    for min_file_size, chunk_size in settings.CHUNK_SIZE_TIERS:
        if file_size >= min_file_size:
            return chunk_size
    return settings.MIN_CHUNK_SIZE


def plan_chunks(
    file_size: int,
    preferred_chunk_size: Optional[int] = None,
    settings: Settings = default_settings
) -> ChunkPlan:
    """
    Compute (chunk_size, total_chunks) for a declared size.

    >>> plan_chunks(12 * 1024 * 1024)
    ChunkPlan(chunk_size=5242880, total_chunks=3)
    """
    chunk_size = tier_chunk_size(file_size, settings)

    if preferred_chunk_size is not None:
        chunk_size = preferred_chunk_size

    chunk_size = min(settings.MAX_CHUNK_SIZE, max(settings.MIN_CHUNK_SIZE, chunk_size))
    total_chunks = (file_size + chunk_size - 1) // chunk_size
    return ChunkPlan(chunk_size=chunk_size, total_chunks=total_chunks)
