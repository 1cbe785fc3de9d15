import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from reelup.modules.projects.models import Project

class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: uuid.UUID, *, title: str, description: str | None = None) -> Project:
        obj = Project(user_id=user_id, title=title, description=description, status="draft")
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_owned(self, user_id: uuid.UUID, project_id: uuid.UUID) -> Project | None:
        # Foreign and missing projects look the same to the caller.
        q = select(Project).where(
            Project.id == project_id,
            Project.user_id == user_id,
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()
