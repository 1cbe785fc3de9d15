import asyncio
import logging
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from reelup.core.config import settings
from reelup.core.db import SessionLocal
from reelup.platform.ports.object_storage import ObjectStoragePort
from reelup.platform.provider_registry import registry
from reelup.modules.uploads.models import SESSION_ABORTED
from reelup.modules.uploads.repository import UploadSessionRepository
from reelup.modules.uploads.service import discard_staged_chunks

log = logging.getLogger("uploads.sweeper")

async def sweep_expired_sessions(session: AsyncSession, storage: ObjectStoragePort, now: datetime | None = None, limit: int = 100) -> int:
    """Abort sessions past their TTL and drop their staged chunks. Returns how many were aborted."""
    repo = UploadSessionRepository(session)
    expired = await repo.list_expired(now or datetime.now(timezone.utc), limit=limit)
    for upload in expired:
        previous = upload.status
        await repo.set_status(upload, SESSION_ABORTED, error=f"expired while {previous}")
        removed = await discard_staged_chunks(session, storage, upload)
        log.info("Aborted stale upload %s (was %s, %d chunks removed)", upload.upload_id, previous, removed)
    await session.commit()
    return len(expired)

# ---- Background loop ----

async def run_session_sweeper(poll_interval_seconds: float | None = None):
    interval = poll_interval_seconds or settings.UPLOAD_SWEEP_INTERVAL_SECONDS
    storage = registry.object_storage()
    log.info("Upload sweeper started, interval=%ss ttl=%smin", interval, settings.UPLOAD_SESSION_TTL_MINUTES)
    try:
        while True:
            async with SessionLocal() as session:
                try:
                    await sweep_expired_sessions(session, storage)
                except Exception:
                    log.exception("Upload sweep iteration failed")
                    await session.rollback()
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        log.info("Upload sweeper cancelled; shutting down")
        raise
