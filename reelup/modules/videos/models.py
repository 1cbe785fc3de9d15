import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, BigInteger, Integer, Float, ForeignKey
from reelup.core.base import Base, TimestampedMixin

class VideoFile(Base, TimestampedMixin):
    __tablename__ = "video_files"

    project_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("project.id", ondelete="CASCADE"), index=True)
    upload_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    file_key: Mapped[str] = mapped_column(String(512))
    file_url: Mapped[str] = mapped_column(Text)
    file_name: Mapped[str] = mapped_column(String(255))
    file_size: Mapped[int] = mapped_column(BigInteger)  # bytes
    mime_type: Mapped[str] = mapped_column(String(100))
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)  # seconds
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str] = mapped_column(String(16), default="original")  # original | edited | thumbnail
