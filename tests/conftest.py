import os
import tempfile
import uuid

_TMP = tempfile.mkdtemp(prefix="reelup-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/reelup.db"
os.environ["ENV"] = "local"
os.environ["LOCAL_STORAGE_ROOT"] = os.path.join(_TMP, "media")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["OBJECT_STORAGE_PROVIDER"] = "local"

import httpx
import pytest
import pytest_asyncio
from jose import jwt

from reelup.core.base import Base
from reelup.core.config import settings
from reelup.core.db import engine, SessionLocal
from reelup.main import app
from reelup.modules.projects import models as _projects  # noqa: F401
from reelup.modules.videos import models as _videos  # noqa: F401
from reelup.modules.uploads import models as _uploads  # noqa: F401
from reelup.modules.projects.repository import ProjectRepository
from reelup.platform.adapters.storage_local import LocalFilesystemStorage
from reelup.platform.provider_registry import registry

OWNER_ID = uuid.UUID(settings.DEFAULT_USER_ID)
STRANGER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000ff")
MiB = 1024 * 1024


def make_token(user_id: uuid.UUID, scopes=("*",)) -> str:
    return jwt.encode({"sub": str(user_id), "scopes": list(scopes)}, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def auth(user_id: uuid.UUID, scopes=("*",)) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, scopes)}"}


@pytest_asyncio.fixture(autouse=True)
async def _schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # pooled connections must not outlive this test's event loop
    await engine.dispose()


@pytest.fixture
def storage(tmp_path):
    s = LocalFilesystemStorage(str(tmp_path / "objects"), public_base_url="http://media.test")
    registry.set_object_storage(s)
    yield s
    registry.set_object_storage(None)


@pytest_asyncio.fixture
async def session():
    async with SessionLocal() as s:
        yield s


async def create_project(user_id: uuid.UUID, title: str = "My project") -> uuid.UUID:
    async with SessionLocal() as s:
        project = await ProjectRepository(s).create(user_id, title=title)
        await s.commit()
        return project.id


@pytest_asyncio.fixture
async def project_id() -> uuid.UUID:
    return await create_project(OWNER_ID)


@pytest_asyncio.fixture
async def client(storage):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api/v1") as c:
        yield c
