"""End-to-end tests for the HTTP surface over an in-process ASGI transport"""
import hashlib
import io

import httpx
import pytest
import pytest_asyncio
from fastapi import UploadFile

from chunked_transfer.api import get_upload_service
from chunked_transfer.api.endpoints import materialize_chunk
from chunked_transfer.main import app

from .conftest import OWNER, DESTINATION, STRANGER

PAYLOAD = b"0123456789"


@pytest_asyncio.fixture
async def client(service, tiny_chunks):
    app.dependency_overrides[get_upload_service] = lambda: service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


async def init_upload(client, **overrides) -> httpx.Response:
    body = {
        "filename": "digits.txt",
        "file_size": len(PAYLOAD),
        "receiver": DESTINATION,
        "mime_type": "text/plain",
    }
    body.update(overrides)
    return await client.post("/uploads/chunked/init", json=body, headers=as_user(OWNER))


async def send_chunk(client, upload_id: str, number: int, data: bytes, user: str = OWNER, total: int = 3):
    return await client.post(
        "/uploads/chunked/chunk",
        data={"upload_id": upload_id, "chunk_number": str(number), "total_chunks": str(total)},
        files={"chunk": ("blob", data, "application/octet-stream")},
        headers=as_user(user),
    )


@pytest.mark.asyncio
async def test_full_transfer(client, settings):
    response = await init_upload(client)
    assert response.status_code == 201
    plan = response.json()
    assert plan["chunk_size"] == 4
    assert plan["total_chunks"] == 3
    upload_id = plan["upload_id"]

    for number, data in ((2, b"4567"), (1, b"0123"), (3, b"89")):
        response = await send_chunk(client, upload_id, number, data)
        assert response.status_code == 200

    assert response.json()["uploaded_chunks"] == [1, 2, 3]

    status = await client.get(f"/uploads/chunked/{upload_id}/status", headers=as_user(DESTINATION))
    assert status.status_code == 200
    assert status.json()["progress_percent"] == 100.0

    response = await client.post(
        "/uploads/chunked/complete",
        json={"upload_id": upload_id, "file_hash": hashlib.sha256(PAYLOAD).hexdigest()},
        headers=as_user(OWNER),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["filename"] == "digits.txt"
    assert body["file_size"] == len(PAYLOAD)

    # Ingress temp files were all handed off
    assert list(settings.incoming_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_identity_is_unauthorized(client):
    response = await client.post("/uploads/chunked/init", json={"filename": "a"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_validation_error_shape(client):
    response = await init_upload(client, receiver=OWNER)

    assert response.status_code == 400
    assert response.json() == {"error": "ValidationError", "message": "Cannot send file to yourself"}


@pytest.mark.asyncio
async def test_partial_encryption_metadata_rejected(client):
    response = await init_upload(client, is_encrypted=True, encrypted_aes_key="k", file_hash="h")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_error_statuses(client, settings):
    upload_id = (await init_upload(client)).json()["upload_id"]

    assert (await send_chunk(client, upload_id, 1, b"0123", user=STRANGER)).status_code == 403
    assert (await send_chunk(client, "nope", 1, b"0123")).status_code == 404

    response = await client.post(
        "/uploads/chunked/complete", json={"upload_id": upload_id}, headers=as_user(OWNER)
    )
    assert response.status_code == 409
    assert "0/3" in response.json()["message"]

    # Rejected chunks never linger in incoming/
    assert list(settings.incoming_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_cancel_then_upload_is_conflict(client):
    upload_id = (await init_upload(client)).json()["upload_id"]

    response = await client.delete(f"/uploads/chunked/{upload_id}", headers=as_user(OWNER))
    assert response.status_code == 200
    assert response.json()["message"] == "Upload cancelled"

    assert (await send_chunk(client, upload_id, 1, b"0123")).status_code == 409


@pytest.mark.asyncio
async def test_integrity_failure_is_422(client):
    upload_id = (await init_upload(client)).json()["upload_id"]
    for number, data in ((1, b"0123"), (2, b"4567"), (3, b"89")):
        await send_chunk(client, upload_id, number, data)

    response = await client.post(
        "/uploads/chunked/complete",
        json={"upload_id": upload_id, "file_hash": "ff" * 32},
        headers=as_user(OWNER),
    )
    assert response.status_code == 422

    status = await client.get(f"/uploads/chunked/{upload_id}/status", headers=as_user(OWNER))
    assert status.json()["status"] == "failed"


@pytest.mark.asyncio
async def test_cleanup_trigger(client):
    response = await client.post("/uploads/chunked/cleanup", headers=as_user(OWNER))

    assert response.status_code == 200
    assert response.json()["cleaned"] == 0


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_materialize_chunk_spools_into_incoming(service, settings):
    chunk = UploadFile(file=io.BytesIO(b"chunk-bytes" * 1000), filename="blob")

    temp_path = await materialize_chunk(service, chunk)

    assert temp_path.parent == settings.incoming_dir
    assert temp_path.read_bytes() == b"chunk-bytes" * 1000
