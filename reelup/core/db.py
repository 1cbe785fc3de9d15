from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models():
    # Outside "create_all" mode, migrations own the schema.
    if settings.DB_MANAGE == "create_all":
        # register tables on the metadata
        from reelup.modules.projects import models as _projects  # noqa: F401
        from reelup.modules.videos import models as _videos  # noqa: F401
        from reelup.modules.uploads import models as _uploads  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
