import asyncio
import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from reelup.core.config import settings
from reelup.core.errors import (
    UploadError, ProjectNotFoundError, ChunkIndexOutOfRangeError, ChunkTooLargeError,
    TotalChunksMismatchError, TooManyUploadsError, UploadSessionNotFoundError,
    UploadSessionStateError, MissingChunksError, AssemblySizeMismatchError,
)
from reelup.platform.ports.object_storage import ObjectStoragePort
from reelup.platform.provider_registry import registry
from reelup.modules.projects.models import Project
from reelup.modules.projects.repository import ProjectRepository
from reelup.modules.videos.repository import VideoFileRepository
from reelup.modules.uploads.assembler import ChunkRef, assemble_chunks
from reelup.modules.uploads.codec import decode_chunk
from reelup.modules.uploads.models import (
    UploadSession, SESSION_OPEN, SESSION_FINALIZING, SESSION_COMPLETE, SESSION_ABORTED,
)
from reelup.modules.uploads.policy import (
    validate_video_upload, count_chunks, check_total_chunks, new_file_key, check_file_key,
    check_upload_id, chunk_key,
)
from reelup.modules.uploads.repository import UploadSessionRepository, StagedChunkRepository

logger = logging.getLogger(__name__)

CHUNK_CONTENT_TYPE = "application/octet-stream"

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _expiry(base: datetime) -> datetime:
    return base + timedelta(minutes=settings.UPLOAD_SESSION_TTL_MINUTES)

def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

async def discard_staged_chunks(session: AsyncSession, storage: ObjectStoragePort, upload: UploadSession) -> int:
    """Delete a session's chunk objects and rows. Storage failures are logged, rows go regardless."""
    chunks = StagedChunkRepository(session)
    removed = 0
    for c in await chunks.list_for_session(upload.id):
        try:
            await asyncio.to_thread(storage.delete, c.storage_key)
            removed += 1
        except Exception:
            logger.warning("Could not delete staged chunk %s", c.storage_key, exc_info=True)
    await chunks.delete_for_session(upload.id)
    return removed

class UploadService:
    def __init__(self, session: AsyncSession, storage: ObjectStoragePort | None = None):
        self.session = session
        self.storage = storage or registry.object_storage()
        self.projects = ProjectRepository(session)
        self.sessions = UploadSessionRepository(session)
        self.chunks = StagedChunkRepository(session)
        self.videos = VideoFileRepository(session)

    async def _owned_project(self, user_id: uuid.UUID, project_id: uuid.UUID) -> Project:
        project = await self.projects.get_owned(user_id, project_id)
        if not project:
            raise ProjectNotFoundError()
        return project

    async def _owned_session(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str, *, for_update: bool = False) -> UploadSession | None:
        upload = await self.sessions.get_by_upload_id(upload_id, for_update=for_update)
        if upload and (upload.project_id != project_id or upload.user_id != user_id):
            # someone else's upload id: same answer as a foreign project
            raise ProjectNotFoundError()
        return upload

    # ---- Upload target ----

    async def issue_upload_target(self, user_id: uuid.UUID, project_id: uuid.UUID, *, file_name: str, file_size: int, mime_type: str) -> dict:
        await self._owned_project(user_id, project_id)
        validate_video_upload(file_size, mime_type)
        return {
            "file_key": new_file_key(project_id, file_name),
            "chunk_size": settings.UPLOAD_CHUNK_SIZE,
            "total_chunks": count_chunks(file_size),
        }

    # ---- Chunks ----

    async def accept_chunk(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str, *, chunk_index: int, chunk_data: str, total_chunks: int) -> dict:
        check_upload_id(upload_id)
        await self._owned_project(user_id, project_id)
        check_total_chunks(total_chunks)
        if not 0 <= chunk_index < total_chunks:
            raise ChunkIndexOutOfRangeError(f"chunkIndex {chunk_index} is outside [0, {total_chunks})")
        data = decode_chunk(chunk_data)
        if len(data) > settings.UPLOAD_CHUNK_SIZE:
            raise ChunkTooLargeError(f"Chunk is {len(data)} bytes, the limit is {settings.UPLOAD_CHUNK_SIZE}")

        # a concurrent first chunk can win the race to create the session; retry once against it
        for attempt in range(2):
            try:
                await self._stage_chunk(user_id, project_id, upload_id, chunk_index, data, total_chunks)
                break
            except IntegrityError:
                await self.session.rollback()
                if attempt:
                    raise
            except UploadError:
                await self.session.rollback()
                raise
        return {"chunk_index": chunk_index, "upload_id": upload_id}

    async def _stage_chunk(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str, chunk_index: int, data: bytes, total_chunks: int) -> None:
        upload = await self._owned_session(user_id, project_id, upload_id)
        if upload is None:
            active = await self.sessions.count_active_for_user(user_id)
            if active >= settings.UPLOAD_MAX_OPEN_SESSIONS:
                raise TooManyUploadsError(f"At most {settings.UPLOAD_MAX_OPEN_SESSIONS} uploads can be open at once")
            upload = await self.sessions.create(
                upload_id=upload_id, project_id=project_id, user_id=user_id,
                total_chunks=total_chunks, expires_at=_expiry(_now()),
            )
            logger.info("Upload session %s opened for project %s (%d chunks)", upload_id, project_id, total_chunks)
        if upload.total_chunks != total_chunks:
            raise TotalChunksMismatchError(
                f"Upload {upload_id} was started with totalChunks={upload.total_chunks}, got {total_chunks}"
            )
        if upload.status != SESSION_OPEN:
            raise UploadSessionStateError(f"Upload {upload_id} is {upload.status} and no longer accepts chunks")

        key = chunk_key(upload_id, chunk_index)
        await asyncio.to_thread(self.storage.put_bytes, key, data, CHUNK_CONTENT_TYPE)
        await self.chunks.upsert(
            upload.id, chunk_index,
            storage_key=key, size_bytes=len(data), sha256=hashlib.sha256(data).hexdigest(),
        )
        upload.expires_at = _expiry(_now())
        await self.session.commit()
        logger.debug("Staged chunk %d/%d of %s (%d bytes)", chunk_index + 1, total_chunks, upload_id, len(data))

    # ---- Finalize ----

    async def finalize(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str, *, file_key: str, file_name: str,
                       file_size: int, mime_type: str, total_chunks: int, duration: float | None = None,
                       width: int | None = None, height: int | None = None) -> dict:
        check_upload_id(upload_id)
        await self._owned_project(user_id, project_id)
        validate_video_upload(file_size, mime_type)
        check_total_chunks(total_chunks, file_size)
        check_file_key(project_id, file_key)

        upload = await self._owned_session(user_id, project_id, upload_id, for_update=True)
        if upload is None:
            # nothing was ever staged under this id
            raise MissingChunksError(list(range(total_chunks)))
        if upload.status == SESSION_COMPLETE:
            logger.info("Finalize replay for %s, returning stored result", upload_id)
            return self._finalize_result(upload)
        if upload.status != SESSION_OPEN:
            raise UploadSessionStateError(f"Upload {upload_id} is {upload.status}")
        now = _now()
        if _as_utc(upload.expires_at) <= now:
            # left for the sweeper, which may already be discarding its chunks
            await self.session.rollback()
            raise UploadSessionStateError(f"Upload {upload_id} has expired")
        if upload.total_chunks != total_chunks:
            raise TotalChunksMismatchError(
                f"Upload {upload_id} was started with totalChunks={upload.total_chunks}, got {total_chunks}"
            )

        staged = {c.chunk_index: c for c in await self.chunks.list_for_session(upload.id)}
        missing = [i for i in range(total_chunks) if i not in staged]
        if missing:
            await self.session.rollback()
            raise MissingChunksError(missing)
        refs = [ChunkRef(index=i, storage_key=staged[i].storage_key, sha256=staged[i].sha256) for i in range(total_chunks)]

        # fence: chunk uploads and a second finalize are rejected from here on
        upload.status = SESSION_FINALIZING
        upload.final_key = file_key
        upload.expires_at = _expiry(now)
        await self.session.commit()

        try:
            assembled = await asyncio.to_thread(assemble_chunks, self.storage, refs, settings.UPLOAD_SPOOL_MAX_BYTES)
            with assembled:
                if assembled.size != file_size:
                    raise AssemblySizeMismatchError(
                        f"Assembled {assembled.size} bytes but the declared file size is {file_size}"
                    )
                file_url = await asyncio.to_thread(self.storage.put_file, file_key, assembled.fileobj, mime_type)

            # the object is durable; only now does the record appear
            record = await self.videos.create(
                project_id,
                upload_id=upload_id, file_key=file_key, file_url=file_url, file_name=file_name,
                file_size=file_size, mime_type=mime_type, duration=duration, width=width, height=height,
                file_type="original",
            )
            upload.status = SESSION_COMPLETE
            upload.result_url = file_url
            upload.video_file_id = record.id
            upload.last_error = None
            await self.session.commit()
        except Exception as e:
            logger.warning("Finalize of %s failed: %s", upload_id, e)
            try:
                await self.session.rollback()
                await self._reopen(upload_id, str(e) or e.__class__.__name__)
            except Exception:
                logger.exception("Could not reopen %s after a failed finalize", upload_id)
            raise e

        logger.info("Upload %s assembled into %s (%d bytes, %d chunks)", upload_id, file_key, file_size, total_chunks)
        result = self._finalize_result(upload)
        await self._cleanup(upload)
        return result

    def _finalize_result(self, upload: UploadSession) -> dict:
        return {
            "file_url": upload.result_url,
            "video_file_id": str(upload.video_file_id) if upload.video_file_id else None,
        }

    async def _reopen(self, upload_id: str, error: str) -> None:
        # re-read from the database; the sweeper or an abort may have moved it on
        upload = await self.sessions.get_by_upload_id(upload_id, for_update=True, refresh=True)
        current = upload.status if upload else "missing"
        if current != SESSION_FINALIZING:
            await self.session.rollback()
            logger.info("Upload %s left as %s after failed finalize", upload_id, current)
            return
        await self.sessions.set_status(upload, SESSION_OPEN, error=error)
        upload.expires_at = _expiry(_now())
        await self.session.commit()

    async def _cleanup(self, upload: UploadSession) -> None:
        upload_id = upload.upload_id
        try:
            await discard_staged_chunks(self.session, self.storage, upload)
            await self.session.commit()
        except Exception:
            # the sweeper never revisits complete sessions, so leftovers stay until removed by hand
            await self.session.rollback()
            logger.exception("Chunk cleanup failed for %s", upload_id)

    # ---- Session status / abort ----

    async def get_status(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str) -> tuple[UploadSession, list[int]]:
        check_upload_id(upload_id)
        await self._owned_project(user_id, project_id)
        upload = await self._owned_session(user_id, project_id, upload_id)
        if upload is None:
            raise UploadSessionNotFoundError()
        return upload, await self.chunks.received_indices(upload.id)

    async def abort(self, user_id: uuid.UUID, project_id: uuid.UUID, upload_id: str) -> UploadSession:
        check_upload_id(upload_id)
        await self._owned_project(user_id, project_id)
        upload = await self._owned_session(user_id, project_id, upload_id, for_update=True)
        if upload is None:
            raise UploadSessionNotFoundError()
        if upload.status in (SESSION_COMPLETE, SESSION_FINALIZING):
            raise UploadSessionStateError(f"Upload {upload_id} is {upload.status} and cannot be aborted")
        if upload.status != SESSION_ABORTED:
            await self.sessions.set_status(upload, SESSION_ABORTED, error="aborted by client")
            await discard_staged_chunks(self.session, self.storage, upload)
            await self.session.commit()
            logger.info("Upload session %s aborted", upload_id)
        return upload
