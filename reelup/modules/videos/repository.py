import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from reelup.modules.videos.models import VideoFile

class VideoFileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, project_id: uuid.UUID, *, file_key: str, file_url: str, file_name: str, file_size: int,
                     mime_type: str, duration: float | None = None, width: int | None = None,
                     height: int | None = None, file_type: str = "original", upload_id: str | None = None) -> VideoFile:
        obj = VideoFile(
            project_id=project_id, upload_id=upload_id, file_key=file_key, file_url=file_url,
            file_name=file_name, file_size=file_size, mime_type=mime_type,
            duration=duration, width=width, height=height, file_type=file_type,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, project_id: uuid.UUID, video_id: uuid.UUID) -> VideoFile | None:
        q = select(VideoFile).where(
            VideoFile.id == video_id,
            VideoFile.project_id == project_id,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_for_project(self, project_id: uuid.UUID, limit: int = 50, offset: int = 0) -> Sequence[VideoFile]:
        q = (
            select(VideoFile)
            .where(VideoFile.project_id == project_id)
            .order_by(VideoFile.created_at.desc())
            .limit(limit).offset(offset)
        )
        res = await self.session.execute(q)
        return res.scalars().all()
