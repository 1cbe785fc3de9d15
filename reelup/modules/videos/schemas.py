import uuid
from datetime import datetime
from reelup.core.schemas import CamelORMModel

class VideoFileOut(CamelORMModel):
    id: uuid.UUID
    project_id: uuid.UUID
    file_key: str
    file_url: str
    file_name: str
    file_size: int
    mime_type: str
    duration: float | None = None
    width: int | None = None
    height: int | None = None
    file_type: str
    created_at: datetime

class VideoFileDetailOut(VideoFileOut):
    download_url: str
