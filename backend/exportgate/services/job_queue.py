"""
Redis job queue for maintenance sweeps.

The core never schedules itself: an external timer (cron, k8s CronJob) or an
operator enqueues a sweep, and `worker.py` pops and runs it with status
tracked in a Redis hash.
"""

import json
import logging
from uuid import uuid4

import redis.asyncio as aioredis

from exportgate.clock import utcnow
from exportgate.config import settings

logger = logging.getLogger(__name__)

JOB_KEY_PREFIX = "exportgate:job:"
QUEUE_KEY = "exportgate:maintenance:queue"
SWEEP_EXPIRED_PERMITS = "sweep_expired_permits"


async def get_redis() -> aioredis.Redis:
    return aioredis.from_url(settings.redis_url, decode_responses=True)


async def enqueue_sweep_job(requested_by: str = "system") -> str:
    """Enqueue an expired-permit sweep and return its job_id."""
    job_id = f"SWEEP-{uuid4().hex[:12].upper()}"
    r = await get_redis()

    job_data = {
        "job_id": job_id,
        "job_type": SWEEP_EXPIRED_PERMITS,
        "status": "queued",
        "requested_by": requested_by,
        "started_at": "",
        "completed_at": "",
    }
    await r.hset(f"{JOB_KEY_PREFIX}{job_id}", mapping=job_data)
    await r.expire(f"{JOB_KEY_PREFIX}{job_id}", 86400)  # expire after 24h
    await r.lpush(QUEUE_KEY, json.dumps({"job_id": job_id, "job_type": SWEEP_EXPIRED_PERMITS}))

    await r.aclose()
    logger.info("Enqueued %s job %s", SWEEP_EXPIRED_PERMITS, job_id)
    return job_id


async def get_job_status(job_id: str) -> dict | None:
    r = await get_redis()
    data = await r.hgetall(f"{JOB_KEY_PREFIX}{job_id}")
    await r.aclose()
    if not data:
        return None
    return data


async def update_job_status(job_id: str, *, status: str, result: dict | None = None):
    r = await get_redis()
    updates: dict = {"status": status}
    if status == "running":
        updates["started_at"] = utcnow().isoformat()
    if status in ("completed", "failed"):
        updates["completed_at"] = utcnow().isoformat()
    if result:
        updates["result"] = json.dumps(result, default=str)

    await r.hset(f"{JOB_KEY_PREFIX}{job_id}", mapping=updates)
    await r.aclose()
