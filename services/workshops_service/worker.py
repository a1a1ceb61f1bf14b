"""ARQ worker for workshop maintenance jobs."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def task_release_stale_registrations(ctx: dict):
    from services.workshops_service.tasks import release_stale_registrations

    logger.info("Running: release_stale_registrations")
    await release_stale_registrations()


class WorkerSettings:
    redis_settings = get_redis_settings()

    functions = [task_release_stale_registrations]

    cron_jobs = [
        cron(task_release_stale_registrations, minute={15}),
    ]
