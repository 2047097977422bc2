"""
API Dependencies: DB session and the core services built at startup.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.bootstrap import CoreServices
from exportgate.database import async_session
from exportgate.services.compliance_gate import ComplianceGate
from exportgate.services.detection_orchestrator import DetectionOrchestrator
from exportgate.services.permit_ledger import PermitLedger
from exportgate.services.review_queue import ReviewQueue


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Core services ────────────────────────────────────────────────────────────

def get_core(request: Request) -> CoreServices:
    return request.app.state.core


def get_gate(
    db: AsyncSession = Depends(get_db), core: CoreServices = Depends(get_core),
) -> ComplianceGate:
    return ComplianceGate(db, core.locks)


def get_ledger(
    db: AsyncSession = Depends(get_db),
    core: CoreServices = Depends(get_core),
    gate: ComplianceGate = Depends(get_gate),
) -> PermitLedger:
    return PermitLedger(db, core.permits, core.storage, gate)


def get_orchestrator(
    db: AsyncSession = Depends(get_db),
    core: CoreServices = Depends(get_core),
    gate: ComplianceGate = Depends(get_gate),
) -> DetectionOrchestrator:
    return DetectionOrchestrator(db, core.engine, core.permits, gate)


def get_review_queue(
    db: AsyncSession = Depends(get_db), gate: ComplianceGate = Depends(get_gate),
) -> ReviewQueue:
    return ReviewQueue(db, gate)
