"""Tests for the filesystem chunk store"""
import io
import os
import time

import pytest

from chunked_transfer.core.errors import StorageError
from chunked_transfer.services.chunk_store import ChunkStore, sha256_file


@pytest.fixture
def chunk_store(settings):
    return ChunkStore(settings)


@pytest.mark.asyncio
async def test_namespace_lifecycle(chunk_store):
    path = await chunk_store.create_namespace("abc")

    assert path.is_dir()
    assert chunk_store.namespace_exists("abc")

    assert await chunk_store.remove_namespace("abc") is True
    assert not chunk_store.namespace_exists("abc")
    assert await chunk_store.remove_namespace("abc") is False


@pytest.mark.asyncio
async def test_move_into_renames_temp_file(chunk_store, make_chunk):
    await chunk_store.create_namespace("abc")
    temp = make_chunk(b"hello")

    target = await chunk_store.move_into("abc", 1, temp)

    assert not temp.exists()
    assert target.name == "chunk_1"
    assert target.read_bytes() == b"hello"
    assert chunk_store.stat_chunk("abc", 1) == 5
    assert chunk_store.stat_chunk("abc", 2) is None


@pytest.mark.asyncio
async def test_move_into_recreates_lost_namespace(chunk_store, make_chunk):
    target = await chunk_store.move_into("lost", 3, make_chunk(b"x"))

    assert target.exists()


@pytest.mark.asyncio
async def test_move_of_missing_temp_file_is_storage_error(chunk_store, settings):
    with pytest.raises(StorageError):
        await chunk_store.move_into("abc", 1, settings.incoming_dir / "nope.part")


@pytest.mark.asyncio
async def test_copy_chunk_uses_bounded_reads(settings, make_chunk):
    settings.IO_BUFFER_SIZE = 3
    chunk_store = ChunkStore(settings)
    await chunk_store.move_into("abc", 1, make_chunk(b"0123456789"))

    out = io.BytesIO()
    written = chunk_store.copy_chunk_to("abc", 1, out)

    assert written == 10
    assert out.getvalue() == b"0123456789"


def test_copy_missing_chunk_raises(chunk_store):
    with pytest.raises(FileNotFoundError):
        chunk_store.copy_chunk_to("abc", 1, io.BytesIO())


@pytest.mark.asyncio
async def test_list_namespaces_reports_age(chunk_store):
    old = await chunk_store.create_namespace("old")
    await chunk_store.create_namespace("new")
    two_days_ago = time.time() - 2 * 24 * 3600
    os.utime(old, (two_days_ago, two_days_ago))

    ages = dict(chunk_store.list_namespaces())

    assert set(ages) == {"old", "new"}
    assert ages["old"] > 24 * 3600
    assert ages["new"] < 60


def test_sha256_file(tmp_path):
    path = tmp_path / "data"
    path.write_bytes(b"abc")

    assert sha256_file(path, buffer_size=1) == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )
