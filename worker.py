"""
Background worker: credit scoring and notification delivery.

Run with ``python worker.py``. Any number of workers may run side by side;
each job is delivered to one of them at least once.
"""
import asyncio
import logging
import signal

from quickfund.core.config import settings
from quickfund.core.database import AsyncSessionLocal, async_engine, close_redis, get_redis
from quickfund.core.logging_config import configure_logging
from quickfund.core.queue import JobQueue, Worker
from quickfund.modules.loans.processor import LoanScoringProcessor
from quickfund.modules.loans.schemas import SCORE_LOAN_JOB
from quickfund.modules.notifications.email import EmailService
from quickfund.modules.notifications.events import SEND_NOTIFICATION_JOB
from quickfund.modules.notifications.gateway import RedisBroadcaster
from quickfund.modules.notifications.processor import NotificationProcessor

logger = logging.getLogger("quickfund.worker")


async def build_workers() -> list[Worker]:
    redis = await get_redis()

    scoring_worker = Worker(
        JobQueue(redis, settings.LOAN_SCORING_QUEUE),
        poll_timeout=settings.WORKER_POLL_TIMEOUT_SECONDS,
    )
    scoring_worker.on_job(SCORE_LOAN_JOB, LoanScoringProcessor(AsyncSessionLocal).handle)

    notification_worker = Worker(
        JobQueue(redis, settings.NOTIFICATION_QUEUE),
        poll_timeout=settings.WORKER_POLL_TIMEOUT_SECONDS,
    )
    notification_worker.on_job(
        SEND_NOTIFICATION_JOB,
        NotificationProcessor(AsyncSessionLocal, RedisBroadcaster(redis), EmailService()).handle,
    )

    return [scoring_worker, notification_worker]


async def main() -> None:
    configure_logging()
    workers = await build_workers()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: [worker.stop() for worker in workers])

    logger.info(f"{settings.APP_NAME} worker started")
    try:
        await asyncio.gather(*(worker.run() for worker in workers))
    finally:
        await close_redis()
        await async_engine.dispose()
        logger.info(f"{settings.APP_NAME} worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
