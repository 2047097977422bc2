"""
Audit API Router: query the audit trail and verify hash-chain integrity.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.api.deps import get_db
from exportgate.schemas.schemas import AuditEntryOut, AuditListResponse, IntegrityCheckResponse
from exportgate.services.audit_service import AuditService

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=AuditListResponse)
async def list_audit_entries(
    shipment_id: str | None = Query(None, description="Filter by shipment"),
    action_type: str | None = Query(None, description="Filter by action type"),
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(50, ge=1, le=200, description="Page size"),
    db: AsyncSession = Depends(get_db),
) -> AuditListResponse:
    """Return a paginated list of audit entries, newest first."""
    service = AuditService(db)
    offset = (page - 1) * size

    entries = await service.get_entries(
        shipment_id=shipment_id, action=action_type, limit=size, offset=offset,
    )
    total = await service.get_entry_count(shipment_id=shipment_id)
    pages = (total + size - 1) // size if total > 0 else 1

    items = [
        AuditEntryOut(
            id=entry.id,
            event_id=entry.event_id,
            shipment_id=entry.shipment_id,
            action_type=entry.action_type,
            actor=entry.actor,
            details=entry.details,
            previous_hash=entry.previous_hash,
            current_hash=entry.current_hash,
            created_at=entry.created_at,
        )
        for entry in entries
    ]
    return AuditListResponse(total=total, page=page, size=size, pages=pages, items=items)


@router.get("/integrity", response_model=IntegrityCheckResponse)
async def check_integrity(
    shipment_id: str | None = Query(None, description="Verify a single shipment chain"),
    db: AsyncSession = Depends(get_db),
) -> IntegrityCheckResponse:
    """Verify the hash chains of the audit trail."""
    result = await AuditService(db).verify_chain_integrity(shipment_id)
    return IntegrityCheckResponse(**result)
