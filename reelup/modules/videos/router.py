import uuid
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from reelup.core.db import get_session
from reelup.core.security import get_principal, require_scopes, Principal, VIDEOS_READ, VIDEOS_WRITE
from reelup.modules.videos.schemas import VideoFileOut, VideoFileDetailOut
from reelup.modules.videos.service import VideoFileService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> VideoFileService:
    return VideoFileService(session)

@router.get("/{project_id}/videos", response_model=list[VideoFileOut], dependencies=[Depends(require_scopes(VIDEOS_READ))])
async def list_videos(
    project_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_principal),
    service: VideoFileService = Depends(svc),
):
    return await service.list(principal.user_id, project_id, limit=limit, offset=offset)

@router.get("/{project_id}/videos/{video_id}", response_model=VideoFileDetailOut, dependencies=[Depends(require_scopes(VIDEOS_READ))])
async def get_video(
    project_id: uuid.UUID,
    video_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: VideoFileService = Depends(svc),
):
    found = await service.get_with_download_url(principal.user_id, project_id, video_id)
    if not found:
        raise HTTPException(status_code=404, detail="Video file not found")
    obj, url = found
    return {**VideoFileOut.model_validate(obj).model_dump(), "download_url": url}
