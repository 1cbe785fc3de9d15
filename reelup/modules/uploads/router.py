import uuid
from typing import Annotated
from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from reelup.core.db import get_session
from reelup.core.security import get_principal, require_scopes, Principal, VIDEOS_READ, VIDEOS_WRITE
from reelup.modules.uploads.policy import UPLOAD_ID_PATTERN
from reelup.modules.uploads.schemas import (
    UploadTargetCreate, UploadTargetOut, ChunkIn, ChunkAck, FinalizeIn, FinalizeOut, UploadSessionOut,
)
from reelup.modules.uploads.service import UploadService

router = APIRouter()

UploadId = Annotated[str, Path(pattern=UPLOAD_ID_PATTERN)]

def svc(session: AsyncSession = Depends(get_session)) -> UploadService:
    return UploadService(session)

@router.post("/{project_id}/uploads/target", response_model=UploadTargetOut, dependencies=[Depends(require_scopes(VIDEOS_WRITE))])
async def issue_upload_target(
    project_id: uuid.UUID,
    payload: UploadTargetCreate,
    principal: Principal = Depends(get_principal),
    service: UploadService = Depends(svc),
):
    return await service.issue_upload_target(
        principal.user_id, project_id,
        file_name=payload.file_name, file_size=payload.file_size, mime_type=payload.mime_type,
    )

@router.post("/{project_id}/uploads/{upload_id}/chunks", response_model=ChunkAck, dependencies=[Depends(require_scopes(VIDEOS_WRITE))])
async def upload_chunk(
    project_id: uuid.UUID,
    upload_id: UploadId,
    payload: ChunkIn,
    principal: Principal = Depends(get_principal),
    service: UploadService = Depends(svc),
):
    return await service.accept_chunk(
        principal.user_id, project_id, upload_id,
        chunk_index=payload.chunk_index, chunk_data=payload.chunk_data, total_chunks=payload.total_chunks,
    )

@router.post("/{project_id}/uploads/{upload_id}/finalize", response_model=FinalizeOut, dependencies=[Depends(require_scopes(VIDEOS_WRITE))])
async def finalize_upload(
    project_id: uuid.UUID,
    upload_id: UploadId,
    payload: FinalizeIn,
    principal: Principal = Depends(get_principal),
    service: UploadService = Depends(svc),
):
    return await service.finalize(principal.user_id, project_id, upload_id, **payload.model_dump())

@router.get("/{project_id}/uploads/{upload_id}", response_model=UploadSessionOut, dependencies=[Depends(require_scopes(VIDEOS_READ))])
async def get_upload(
    project_id: uuid.UUID,
    upload_id: UploadId,
    principal: Principal = Depends(get_principal),
    service: UploadService = Depends(svc),
):
    upload, received = await service.get_status(principal.user_id, project_id, upload_id)
    out = UploadSessionOut.model_validate(upload)
    out.received_chunks = received
    return out

@router.delete("/{project_id}/uploads/{upload_id}", response_model=UploadSessionOut, dependencies=[Depends(require_scopes(VIDEOS_WRITE))])
async def abort_upload(
    project_id: uuid.UUID,
    upload_id: UploadId,
    principal: Principal = Depends(get_principal),
    service: UploadService = Depends(svc),
):
    upload = await service.abort(principal.user_id, project_id, upload_id)
    return UploadSessionOut.model_validate(upload)
