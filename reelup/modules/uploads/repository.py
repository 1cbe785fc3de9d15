import uuid
from datetime import datetime
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, and_, or_
from reelup.modules.uploads.models import (
    UploadSession, StagedChunk, SESSION_OPEN, SESSION_FINALIZING,
)

class UploadSessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, *, upload_id: str, project_id: uuid.UUID, user_id: uuid.UUID, total_chunks: int, expires_at: datetime) -> UploadSession:
        obj = UploadSession(
            upload_id=upload_id, project_id=project_id, user_id=user_id,
            total_chunks=total_chunks, status=SESSION_OPEN, expires_at=expires_at,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_by_upload_id(self, upload_id: str, *, for_update: bool = False, refresh: bool = False) -> UploadSession | None:
        q = select(UploadSession).where(UploadSession.upload_id == upload_id)
        if for_update:
            q = q.with_for_update()
        if refresh:
            q = q.execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def count_active_for_user(self, user_id: uuid.UUID) -> int:
        q = select(func.count()).select_from(UploadSession).where(
            UploadSession.user_id == user_id,
            UploadSession.status.in_((SESSION_OPEN, SESSION_FINALIZING)),
        )
        res = await self.session.execute(q)
        return int(res.scalar_one())

    async def list_expired(self, now: datetime, limit: int = 100) -> list[UploadSession]:
        q = (
            select(UploadSession)
            .where(
                and_(
                    or_(UploadSession.status == SESSION_OPEN, UploadSession.status == SESSION_FINALIZING),
                    UploadSession.expires_at < now,
                )
            )
            .order_by(UploadSession.expires_at.asc())
            .limit(limit)
            # rows held by a running finalize are skipped, not waited on
            .with_for_update(skip_locked=True)
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def set_status(self, obj: UploadSession, status: str, *, error: str | None = None) -> UploadSession:
        obj.status = status
        obj.last_error = error[:2000] if error else None
        await self.session.flush()
        return obj

class StagedChunkRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, session_id: uuid.UUID, chunk_index: int, *, storage_key: str, size_bytes: int, sha256: str) -> StagedChunk:
        # last write for an index wins
        q = select(StagedChunk).where(
            StagedChunk.session_id == session_id,
            StagedChunk.chunk_index == chunk_index,
        )
        res = await self.session.execute(q)
        obj = res.scalar_one_or_none()
        if obj is None:
            obj = StagedChunk(session_id=session_id, chunk_index=chunk_index)
            self.session.add(obj)
        obj.storage_key = storage_key
        obj.size_bytes = size_bytes
        obj.sha256 = sha256
        await self.session.flush()
        return obj

    async def list_for_session(self, session_id: uuid.UUID) -> Sequence[StagedChunk]:
        q = select(StagedChunk).where(StagedChunk.session_id == session_id).order_by(StagedChunk.chunk_index.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def received_indices(self, session_id: uuid.UUID) -> list[int]:
        q = select(StagedChunk.chunk_index).where(StagedChunk.session_id == session_id).order_by(StagedChunk.chunk_index.asc())
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def delete_for_session(self, session_id: uuid.UUID) -> int:
        res = await self.session.execute(delete(StagedChunk).where(StagedChunk.session_id == session_id))
        return res.rowcount or 0
