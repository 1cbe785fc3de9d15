from datetime import datetime
from pydantic import Field
from reelup.core.schemas import CamelModel, CamelORMModel

class UploadTargetCreate(CamelModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0)
    mime_type: str = Field(..., min_length=1, max_length=100)

class UploadTargetOut(CamelModel):
    file_key: str
    chunk_size: int
    total_chunks: int

class ChunkIn(CamelModel):
    chunk_index: int
    chunk_data: str  # base64
    total_chunks: int = Field(..., ge=1)

class ChunkAck(CamelModel):
    success: bool = True
    chunk_index: int
    upload_id: str

class FinalizeIn(CamelModel):
    file_key: str = Field(..., min_length=1, max_length=512)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0)
    mime_type: str = Field(..., min_length=1, max_length=100)
    total_chunks: int = Field(..., ge=1)
    duration: float | None = Field(default=None, ge=0)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)

class FinalizeOut(CamelModel):
    success: bool = True
    file_url: str
    video_file_id: str | None = None

class UploadSessionOut(CamelORMModel):
    upload_id: str
    status: str
    total_chunks: int
    received_chunks: list[int] = []
    expires_at: datetime
    result_url: str | None = None
