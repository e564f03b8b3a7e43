"""
Redis-backed job queue with at-least-once delivery.

Jobs are pushed onto ``queue:{name}`` and moved atomically into
``queue:{name}:processing`` when a worker reserves them. A job leaves the
processing list only when its handler returns; anything left behind by a
crashed worker is pushed back onto the pending list when the next worker
starts, so handlers must tolerate redelivery.
"""
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field
from redis import asyncio as aioredis

from quickfund.core.generators import generate_job_id

logger = logging.getLogger(__name__)

JobHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class Job(BaseModel):
    """A queued unit of work"""
    id: str = Field(default_factory=generate_job_id)
    name: str
    payload: Dict[str, Any]
    enqueued_at: datetime = Field(default_factory=datetime.utcnow)
    attempts: int = 0


class JobQueue:
    """Named queue stored in two Redis lists"""

    def __init__(self, redis: aioredis.Redis, name: str):
        self.redis = redis
        self.name = name
        self.pending_key = f"queue:{name}"
        self.processing_key = f"queue:{name}:processing"

    async def enqueue(self, job_name: str, payload: Dict[str, Any]) -> Job:
        job = Job(name=job_name, payload=payload)
        await self.redis.lpush(self.pending_key, job.model_dump_json())
        logger.debug(f"Enqueued {job_name} ({job.id}) on {self.name}")
        return job

    async def reserve(self, timeout: int = 5) -> Optional[tuple[Job, str]]:
        """Block until a job is available; returns the job and its raw entry"""
        raw = await self.redis.brpoplpush(self.pending_key, self.processing_key, timeout=timeout)
        if raw is None:
            return None
        return Job.model_validate_json(raw), raw

    async def ack(self, raw: str) -> None:
        await self.redis.lrem(self.processing_key, 1, raw)

    async def retry(self, job: Job, raw: str) -> None:
        """Put a failed job back on the pending list with its attempt counter bumped"""
        job.attempts += 1
        pipe = self.redis.pipeline()
        pipe.lrem(self.processing_key, 1, raw)
        pipe.lpush(self.pending_key, job.model_dump_json())
        await pipe.execute()

    async def requeue_unacked(self) -> int:
        """Move jobs abandoned in the processing list back to pending"""
        moved = 0
        while await self.redis.rpoplpush(self.processing_key, self.pending_key) is not None:
            moved += 1
        if moved:
            logger.warning(f"Re-queued {moved} unacknowledged jobs on {self.name}")
        return moved

    async def size(self) -> int:
        return await self.redis.llen(self.pending_key)


class Worker:
    """Consumes one queue, routing jobs to handlers by job name"""

    def __init__(self, queue: JobQueue, poll_timeout: int = 5, max_attempts: int = 3):
        self.queue = queue
        self.poll_timeout = poll_timeout
        self.max_attempts = max_attempts
        self.handlers: Dict[str, JobHandler] = {}
        self._running = False

    def on_job(self, job_name: str, handler: JobHandler) -> None:
        self.handlers[job_name] = handler

    async def process(self, job: Job) -> Any:
        handler = self.handlers.get(job.name)
        if handler is None:
            raise LookupError(f"No handler registered for job {job.name!r} on {self.queue.name}")
        return await handler(job.payload)

    async def run(self) -> None:
        self._running = True
        await self.queue.requeue_unacked()
        logger.info(f"Worker listening on {self.queue.name} for {sorted(self.handlers)}")

        while self._running:
            reserved = await self.queue.reserve(timeout=self.poll_timeout)
            if reserved is None:
                continue
            job, raw = reserved
            try:
                await self.process(job)
            except Exception:
                logger.exception(f"Job {job.name} ({job.id}) failed on attempt {job.attempts + 1}")
                if job.attempts + 1 < self.max_attempts:
                    await self.queue.retry(job, raw)
                else:
                    logger.error(f"Job {job.name} ({job.id}) dropped after {self.max_attempts} attempts")
                    await self.queue.ack(raw)
                continue
            await self.queue.ack(raw)

    def stop(self) -> None:
        self._running = False
