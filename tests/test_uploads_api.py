import os

import pytest

from conftest import OWNER_ID, STRANGER_ID, auth
from reelup.core.config import settings
from reelup.modules.uploads.codec import encode_chunk


@pytest.fixture
def small_chunks(monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_CHUNK_SIZE", 4)


async def post_chunk(client, project_id, upload_id, index, data: bytes, total, headers=None):
    return await client.post(
        f"/projects/{project_id}/uploads/{upload_id}/chunks",
        json={"chunkIndex": index, "chunkData": encode_chunk(data), "totalChunks": total},
        headers=headers or {},
    )


def finalize_body(file_key, size, total, **extra):
    return {"fileKey": file_key, "fileName": "clip.mp4", "fileSize": size, "mimeType": "video/mp4", "totalChunks": total, **extra}


async def test_full_upload_flow(client, storage, project_id, small_chunks):
    payload = b"hello, chunked world"
    r = await client.post(f"/projects/{project_id}/uploads/target", json={"fileName": "clip.mp4", "fileSize": len(payload), "mimeType": "video/mp4"})
    assert r.status_code == 200, r.text
    target = r.json()
    assert target["chunkSize"] == 4
    assert target["totalChunks"] == 5
    assert target["fileKey"].startswith(f"projects/{project_id}/videos/")
    assert target["fileKey"].endswith(".mp4")

    pieces = [payload[i:i + 4] for i in range(0, len(payload), 4)]
    for i in (4, 1, 3, 0, 2):
        r = await post_chunk(client, project_id, "api-flow-1", i, pieces[i], 5)
        assert r.status_code == 200, r.text
        assert r.json() == {"success": True, "chunkIndex": i, "uploadId": "api-flow-1"}

    r = await client.get(f"/projects/{project_id}/uploads/api-flow-1")
    assert r.json()["receivedChunks"] == [0, 1, 2, 3, 4]
    assert r.json()["status"] == "open"

    r = await client.post(
        f"/projects/{project_id}/uploads/api-flow-1/finalize",
        json=finalize_body(target["fileKey"], len(payload), 5, duration=3.5, width=640, height=360),
    )
    assert r.status_code == 200, r.text
    done = r.json()
    assert done["success"] is True
    assert done["fileUrl"] == f"http://media.test/{target['fileKey']}"
    assert storage.get_bytes(target["fileKey"]) == payload

    r = await client.get(f"/projects/{project_id}/videos")
    videos = r.json()
    assert len(videos) == 1
    assert videos[0]["id"] == done["videoFileId"]
    assert videos[0]["fileSize"] == len(payload)
    assert videos[0]["fileType"] == "original"
    assert videos[0]["duration"] == 3.5

    r = await client.get(f"/projects/{project_id}/videos/{done['videoFileId']}")
    assert r.status_code == 200
    assert r.json()["downloadUrl"] == done["fileUrl"]

    r = await client.get(f"/projects/{project_id}/uploads/api-flow-1")
    assert r.json()["status"] == "complete"
    assert r.json()["resultUrl"] == done["fileUrl"]
    assert r.json()["receivedChunks"] == []


async def test_finalize_replay_over_http(client, storage, project_id, small_chunks):
    key = f"projects/{project_id}/videos/replay.mp4"
    await post_chunk(client, project_id, "api-replay", 0, b"abcd", 2)
    await post_chunk(client, project_id, "api-replay", 1, b"ef", 2)

    first = await client.post(f"/projects/{project_id}/uploads/api-replay/finalize", json=finalize_body(key, 6, 2))
    second = await client.post(f"/projects/{project_id}/uploads/api-replay/finalize", json=finalize_body(key, 6, 2))
    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()
    assert len((await client.get(f"/projects/{project_id}/videos")).json()) == 1


async def test_missing_chunk_reports_indices(client, storage, project_id, small_chunks):
    key = f"projects/{project_id}/videos/gap.mp4"
    await post_chunk(client, project_id, "api-gap", 0, b"aaaa", 3)
    await post_chunk(client, project_id, "api-gap", 1, b"bbbb", 3)

    r = await client.post(f"/projects/{project_id}/uploads/api-gap/finalize", json=finalize_body(key, 10, 3))
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "missing_chunks"
    assert body["missing"] == [2]
    assert (await client.get(f"/projects/{project_id}/videos")).json() == []


async def test_non_owner_sees_project_not_found(client, storage, project_id, small_chunks):
    stranger = auth(STRANGER_ID)
    await post_chunk(client, project_id, "api-owned", 0, b"abcd", 1)
    key = f"projects/{project_id}/videos/x.mp4"

    responses = [
        await client.post(f"/projects/{project_id}/uploads/target", json={"fileName": "a.mp4", "fileSize": 4, "mimeType": "video/mp4"}, headers=stranger),
        await post_chunk(client, project_id, "api-owned", 0, b"evil", 1, headers=stranger),
        await client.post(f"/projects/{project_id}/uploads/api-owned/finalize", json=finalize_body(key, 4, 1), headers=stranger),
        await client.get(f"/projects/{project_id}/uploads/api-owned", headers=stranger),
        await client.delete(f"/projects/{project_id}/uploads/api-owned", headers=stranger),
        await client.get(f"/projects/{project_id}/videos", headers=stranger),
    ]
    for r in responses:
        assert r.status_code == 404, r.text
        assert r.json()["detail"] == "Project not found"
    assert storage.get_bytes("temp/api-owned/chunk_0") == b"abcd"


async def test_unknown_project_is_not_found(client, storage):
    r = await client.post(
        "/projects/6f1c1c4e-0000-4000-8000-000000000000/uploads/target",
        json={"fileName": "a.mp4", "fileSize": 4, "mimeType": "video/mp4"},
    )
    assert r.status_code == 404
    assert r.json()["code"] == "project_not_found"


async def test_target_validation_errors(client, storage, project_id):
    r = await client.post(f"/projects/{project_id}/uploads/target", json={"fileName": "a.png", "fileSize": 100, "mimeType": "image/png"})
    assert r.status_code == 415
    assert r.json()["code"] == "unsupported_media_type"

    r = await client.post(f"/projects/{project_id}/uploads/target", json={"fileName": "a.mp4", "fileSize": 5 * 1024 ** 3 + 1, "mimeType": "video/mp4"})
    assert r.status_code == 413
    assert "5" in r.json()["detail"]

    r = await client.post(f"/projects/{project_id}/uploads/target", json={"fileName": "a.mp4", "fileSize": 0, "mimeType": "video/mp4"})
    assert r.status_code == 422


async def test_malformed_chunk_writes_nothing(client, storage, project_id):
    r = await client.post(
        f"/projects/{project_id}/uploads/api-bad-b64/chunks",
        json={"chunkIndex": 0, "chunkData": "not base64 at all!", "totalChunks": 2},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "malformed_chunk"
    assert not os.path.exists(os.path.join(storage.root, "temp"))
    r = await client.get(f"/projects/{project_id}/uploads/api-bad-b64")
    assert r.status_code == 404


async def test_chunk_index_out_of_range(client, storage, project_id):
    r = await post_chunk(client, project_id, "api-range", 5, b"abcd", 5)
    assert r.status_code == 400
    assert r.json()["code"] == "chunk_index_out_of_range"


async def test_bad_upload_id_is_rejected(client, storage, project_id):
    r = await post_chunk(client, project_id, "bad!id", 0, b"abcd", 1)
    assert r.status_code == 422


async def test_abort_then_chunk_conflicts(client, storage, project_id, small_chunks):
    await post_chunk(client, project_id, "api-abort", 0, b"abcd", 2)
    r = await client.delete(f"/projects/{project_id}/uploads/api-abort")
    assert r.status_code == 200
    assert r.json()["status"] == "aborted"
    assert not storage.exists("temp/api-abort/chunk_0")

    r = await post_chunk(client, project_id, "api-abort", 1, b"ef", 2)
    assert r.status_code == 409
    assert r.json()["code"] == "upload_session_state"


async def test_read_only_scope_cannot_upload(client, storage, project_id):
    reader = auth(OWNER_ID, scopes=("videos:read",))
    r = await post_chunk(client, project_id, "api-readonly", 0, b"abcd", 1, headers=reader)
    assert r.status_code == 403
    assert r.json()["detail"] == "Insufficient scopes: videos:write required"
    r = await client.get(f"/projects/{project_id}/videos", headers=reader)
    assert r.status_code == 200


async def test_invalid_token_is_unauthorized(client, storage, project_id):
    r = await client.get(f"/projects/{project_id}/videos", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"


async def test_unknown_video_is_not_found(client, storage, project_id):
    r = await client.get(f"/projects/{project_id}/videos/6f1c1c4e-0000-4000-8000-000000000000")
    assert r.status_code == 404
    assert r.json()["detail"] == "Video file not found"


async def test_health(client):
    r = await client.get("/health")
    assert r.json() == {"status": "ok"}


async def test_finalize_total_chunks_bounds(client, storage, project_id):
    key = f"projects/{project_id}/videos/huge.mp4"
    r = await client.post(f"/projects/{project_id}/uploads/api-huge/finalize", json=finalize_body(key, 10, 3_000_000))
    assert r.status_code == 400
    assert r.json()["code"] == "total_chunks_mismatch"
    assert len(r.content) < 1024

    for bad in (0, -5):
        r = await client.post(f"/projects/{project_id}/uploads/api-huge/finalize", json=finalize_body(key, 10, bad))
        assert r.status_code == 422
        assert "code" not in r.json()

    r = await post_chunk(client, project_id, "api-huge", 0, b"abcd", -1)
    assert r.status_code == 422


async def test_missing_list_is_capped_in_response(client, storage, project_id, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_CHUNK_SIZE", 1)
    key = f"projects/{project_id}/videos/many.mp4"
    r = await client.post(f"/projects/{project_id}/uploads/api-many/finalize", json=finalize_body(key, 500, 500))
    assert r.status_code == 422
    body = r.json()
    assert body["missing"] == list(range(100))
    assert body["missingCount"] == 500


async def test_write_scope_can_read_back(client, storage, project_id):
    writer = auth(OWNER_ID, scopes=("videos:write",))
    r = await client.get(f"/projects/{project_id}/videos", headers=writer)
    assert r.status_code == 200
