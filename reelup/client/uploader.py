"""Async client that drives a chunked upload against the reelup API.

Flow: validate locally, ask for an upload target (final file key), send every
chunk, then finalize. Each step is a plain request/response; a failed chunk
is retried here a few times before the whole upload gives up.
"""
import asyncio
import logging
import mimetypes
import os
import secrets
import string
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from reelup.modules.uploads.policy import CHUNK_SIZE, MAX_FILE_SIZE, count_chunks, validate_video_upload
from reelup.client.chunking import read_chunks
from reelup.modules.uploads.codec import encode_chunk

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_letters + string.digits + "_-"
_RETRYABLE_STATUS = {502, 503, 504}

ProgressCallback = Callable[[int, int], Optional[Awaitable[None]]]


class UploadClientError(Exception):
    """An API call failed; carries the HTTP status and the server's detail."""

    def __init__(self, status: int, detail: str, code: str | None = None):
        self.status = status
        self.detail = detail
        self.code = code
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.detail}"
        return f"Connection error: {self.detail}"


@dataclass
class UploadResult:
    upload_id: str
    file_key: str
    file_url: str
    total_chunks: int
    video_file_id: str | None = None


def new_upload_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(21))


class ChunkedUploader:
    """Upload one video file in chunks.

    Pass an existing ``httpx.AsyncClient`` to reuse a connection pool (or to
    point at an ASGI app in tests); otherwise one is created per upload.
    """

    def __init__(
        self, base_url: str, *,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        chunk_size: int = CHUNK_SIZE,
        max_file_size: int = MAX_FILE_SIZE,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 120,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client
        self.chunk_size = chunk_size
        self.max_file_size = max_file_size
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _post(self, client: httpx.AsyncClient, path: str, body: dict, *, retry: bool = False) -> dict:
        url = f"{self.base_url}{path}"
        attempts = self.max_attempts if retry else 1
        for attempt in range(1, attempts + 1):
            try:
                resp = await client.post(url, json=body, headers=self._headers(), timeout=self.timeout)
            except httpx.TransportError as e:
                if attempt == attempts:
                    raise UploadClientError(0, str(e) or e.__class__.__name__) from e
                logger.warning("POST %s failed (%s), attempt %d/%d", path, e, attempt, attempts)
            else:
                if resp.status_code < 400:
                    return resp.json()
                if resp.status_code not in _RETRYABLE_STATUS or attempt == attempts:
                    raise self._error(resp)
                logger.warning("POST %s returned %d, attempt %d/%d", path, resp.status_code, attempt, attempts)
            await asyncio.sleep(self.retry_delay * attempt)

    @staticmethod
    def _error(resp: httpx.Response) -> UploadClientError:
        try:
            body = resp.json()
        except ValueError:
            return UploadClientError(resp.status_code, resp.text or resp.reason_phrase)
        detail = body.get("detail") or body.get("message") or resp.reason_phrase
        if not isinstance(detail, str):
            detail = str(detail)
        return UploadClientError(resp.status_code, detail, body.get("code"))

    async def upload(
        self, project_id: str, path: str | os.PathLike, *,
        mime_type: str | None = None,
        file_name: str | None = None,
        duration: float | None = None,
        width: int | None = None,
        height: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        file_name = file_name or os.path.basename(path)
        mime_type = mime_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        file_size = os.path.getsize(path)
        # reject before any session exists on the server
        validate_video_upload(file_size, mime_type, max_file_size=self.max_file_size)
        total_chunks = count_chunks(file_size, self.chunk_size)

        if self._client is not None:
            return await self._upload(self._client, project_id, path, file_name, file_size, mime_type,
                                      total_chunks, duration, width, height, on_progress)
        async with httpx.AsyncClient() as client:
            return await self._upload(client, project_id, path, file_name, file_size, mime_type,
                                      total_chunks, duration, width, height, on_progress)

    async def _upload(self, client, project_id, path, file_name, file_size, mime_type,
                      total_chunks, duration, width, height, on_progress) -> UploadResult:
        base = f"/projects/{project_id}/uploads"
        target = await self._post(client, f"{base}/target", {
            "fileName": file_name, "fileSize": file_size, "mimeType": mime_type,
        })
        file_key = target["fileKey"]
        # the server decides chunking; finalize checks totalChunks against it
        chunk_size = target.get("chunkSize") or self.chunk_size
        total_chunks = target.get("totalChunks") or total_chunks
        upload_id = new_upload_id()
        logger.info("Uploading %s (%d bytes) as %s in %d chunks", file_name, file_size, upload_id, total_chunks)

        for rng, data in read_chunks(path, chunk_size):
            await self._post(client, f"{base}/{upload_id}/chunks", {
                "chunkIndex": rng.index,
                "chunkData": encode_chunk(data),
                "totalChunks": total_chunks,
            }, retry=True)
            if on_progress is not None:
                maybe = on_progress(rng.index + 1, total_chunks)
                if asyncio.iscoroutine(maybe):
                    await maybe

        body = {
            "fileKey": file_key, "fileName": file_name, "fileSize": file_size,
            "mimeType": mime_type, "totalChunks": total_chunks,
        }
        for k, v in (("duration", duration), ("width", width), ("height", height)):
            if v is not None:
                body[k] = v
        # finalize is idempotent per upload id, so it is safe to retry
        done = await self._post(client, f"{base}/{upload_id}/finalize", body, retry=True)
        return UploadResult(
            upload_id=upload_id, file_key=file_key, file_url=done["fileUrl"],
            total_chunks=total_chunks, video_file_id=done.get("videoFileId"),
        )
