"""Scheduled membership maintenance tasks."""

from libs.common.logging import get_logger
from libs.common.stripe_client import get_stripe_client
from libs.db.session import session_scope
from services.members_service.services import invitation_ops, subscription_ops

logger = get_logger(__name__)


async def expire_invitations() -> int:
    """Expire pending invitations past their deadline."""
    async with session_scope() as db:
        count = await invitation_ops.mark_expired_invitations(db)
    logger.info(f"Invitation expiry run finished: {count} expired")
    return count


async def sync_stripe_customers() -> int:
    """Re-sync membership state for every profile with a Stripe customer."""
    async with session_scope() as db:
        synced = await subscription_ops.sync_all_customers(
            db, stripe_client=get_stripe_client()
        )
    logger.info(f"Stripe sync finished: {synced} customers synced")
    return synced
