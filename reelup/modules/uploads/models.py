import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, BigInteger, TIMESTAMP, ForeignKey, UniqueConstraint
from reelup.core.base import Base, TimestampedMixin

# open -> finalizing -> complete; open|finalizing -> aborted
SESSION_OPEN = "open"
SESSION_FINALIZING = "finalizing"
SESSION_COMPLETE = "complete"
SESSION_ABORTED = "aborted"

class UploadSession(Base, TimestampedMixin):
    __tablename__ = "upload_sessions"

    upload_id: Mapped[str] = mapped_column(String(128), unique=True)  # client-generated
    project_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("project.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    total_chunks: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), default=SESSION_OPEN, index=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))

    # filled in by finalize
    final_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    result_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_file_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

class StagedChunk(Base, TimestampedMixin):
    __tablename__ = "staged_chunks"
    __table_args__ = (UniqueConstraint("session_id", "chunk_index", name="uq_staged_chunk_index"),)

    session_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("upload_sessions.id", ondelete="CASCADE"), index=True)
    chunk_index: Mapped[int] = mapped_column(Integer)
    storage_key: Mapped[str] = mapped_column(String(512))
    size_bytes: Mapped[int] = mapped_column(BigInteger)
    sha256: Mapped[str] = mapped_column(String(64))
