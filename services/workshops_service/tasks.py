"""Scheduled workshop maintenance tasks."""

from libs.common.logging import get_logger
from libs.db.session import session_scope
from services.workshops_service.services import registration_ops

logger = get_logger(__name__)


async def release_stale_registrations() -> int:
    """Free seats held by payments that never completed."""
    async with session_scope() as db:
        released = await registration_ops.release_stale_pending_registrations(db)
    if released:
        logger.info(f"Released {released} stale pending registrations")
    return released
