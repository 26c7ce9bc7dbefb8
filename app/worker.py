"""
ARQ worker: background catalog jobs.
Run with: python -m app.worker
"""
import logging

from arq import cron
from arq.connections import RedisSettings

from app.core.config import settings
from app.tasks.enrich_catalog import enrich_catalog
from app.tasks.import_plants import import_plants

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
    )
    logger.info("worker: started (environment=%s)", settings.ENVIRONMENT)


class WorkerSettings:
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    functions = [import_plants, enrich_catalog]
    cron_jobs = [
        cron(import_plants, hour=3, minute=0),  # Daily 3am, local CSV
    ]
    on_startup = startup
    on_shutdown = None
    job_timeout = 3600


if __name__ == "__main__":
    from arq import run_worker

    run_worker(WorkerSettings)
