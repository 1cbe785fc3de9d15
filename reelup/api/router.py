from fastapi import APIRouter
from reelup.modules.uploads.router import router as uploads_router
from reelup.modules.videos.router import router as videos_router

api_router = APIRouter()
api_router.include_router(uploads_router, prefix="/projects", tags=["uploads"])
api_router.include_router(videos_router, prefix="/projects", tags=["videos"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
