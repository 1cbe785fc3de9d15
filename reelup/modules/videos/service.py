import asyncio
import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from reelup.core.config import settings
from reelup.core.errors import ProjectNotFoundError
from reelup.platform.ports.object_storage import ObjectStoragePort
from reelup.platform.provider_registry import registry
from reelup.modules.projects.repository import ProjectRepository
from reelup.modules.videos.models import VideoFile
from reelup.modules.videos.repository import VideoFileRepository

class VideoFileService:
    def __init__(self, session: AsyncSession, storage: ObjectStoragePort | None = None):
        self.session = session
        self.storage = storage or registry.object_storage()
        self.projects = ProjectRepository(session)
        self.repo = VideoFileRepository(session)

    async def _check_owner(self, user_id: uuid.UUID, project_id: uuid.UUID) -> None:
        if not await self.projects.get_owned(user_id, project_id):
            raise ProjectNotFoundError()

    async def list(self, user_id: uuid.UUID, project_id: uuid.UUID, limit: int = 50, offset: int = 0) -> Sequence[VideoFile]:
        await self._check_owner(user_id, project_id)
        return await self.repo.list_for_project(project_id, limit=limit, offset=offset)

    async def get_with_download_url(self, user_id: uuid.UUID, project_id: uuid.UUID, video_id: uuid.UUID) -> tuple[VideoFile, str] | None:
        await self._check_owner(user_id, project_id)
        obj = await self.repo.get(project_id, video_id)
        if not obj:
            return None
        url = await asyncio.to_thread(self.storage.presign_download, obj.file_key, settings.DOWNLOAD_URL_EXPIRY_SECONDS)
        return obj, url
