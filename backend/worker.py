"""
Maintenance worker: processes jobs from the Redis queue.

Run with: python worker.py
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis

from exportgate.bootstrap import CoreServices, initialize_core
from exportgate.config import settings
from exportgate.database import async_session
from exportgate.middleware.logging_config import configure_logging
from exportgate.services.compliance_gate import ComplianceGate
from exportgate.services.job_queue import QUEUE_KEY, SWEEP_EXPIRED_PERMITS, update_job_status
from exportgate.services.permit_ledger import PermitLedger

logger = logging.getLogger("worker")


async def process_sweep_job(job_data: dict, core: CoreServices):
    """Run the expired-permit sweep in its own transaction."""
    job_id = job_data["job_id"]
    await update_job_status(job_id, status="running")

    async with async_session() as db:
        try:
            gate = ComplianceGate(db, core.locks)
            ledger = PermitLedger(db, core.permits, core.storage, gate)
            result = await ledger.cleanup_expired_permits()
            await db.commit()
        except Exception as exc:
            logger.error("Job %s failed: %s", job_id, exc, exc_info=True)
            await db.rollback()
            await update_job_status(job_id, status="failed", result={"error": str(exc)[:500]})
            return

    await update_job_status(job_id, status="completed", result=result)
    logger.info(
        "Job %s completed: %d permits expired, %d shipments rechecked",
        job_id, result["expired_permits"], len(result["affected_shipments"]),
    )


async def main():
    """Main worker loop: polls the Redis queue for maintenance jobs."""
    configure_logging(settings.log_level, settings.log_format)
    core = initialize_core(settings)

    r = aioredis.from_url(settings.redis_url, decode_responses=True)
    logger.info("Worker started, listening on %s", QUEUE_KEY)

    while True:
        try:
            result = await r.brpop(QUEUE_KEY, timeout=5)
            if result is None:
                continue
            _, raw = result
            job_data = json.loads(raw)
            if job_data.get("job_type") != SWEEP_EXPIRED_PERMITS:
                logger.warning("Skipping unknown job type: %s", job_data.get("job_type"))
                continue
            logger.info("Processing job: %s", job_data.get("job_id"))
            await process_sweep_job(job_data, core)
        except Exception as exc:
            logger.error("Worker loop error: %s", exc, exc_info=True)
            await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
