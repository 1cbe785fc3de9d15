import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text
from reelup.core.base import Base, TimestampedMixin

class Project(Base, TimestampedMixin):
    # Owned by the projects API; uploads only read it for ownership checks.
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="draft")  # draft | processing | completed | failed
