"""ARQ worker for membership maintenance jobs."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_mark_expired_invitations(ctx: dict):
    from services.members_service.tasks import expire_invitations

    logger.info("Running: mark_expired_invitations")
    await expire_invitations()


async def task_stripe_sync(ctx: dict):
    from services.members_service.tasks import sync_stripe_customers

    logger.info("Running: stripe_sync")
    await sync_stripe_customers()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [
        task_mark_expired_invitations,
        task_stripe_sync,
    ]

    cron_jobs = [
        cron(task_mark_expired_invitations, hour={1}, minute={0}),
        cron(task_stripe_sync, hour={3}, minute={0}),
    ]
