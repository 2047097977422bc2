"""
Permits API Router: multipart permit upload, permit status, permit types and
the expired-permit maintenance sweep.
"""

from datetime import date

from fastapi import APIRouter, Depends, File, Form, UploadFile

from exportgate.api.deps import get_core, get_ledger
from exportgate.bootstrap import CoreServices
from exportgate.schemas.schemas import (
    ExpirySweepOut,
    PermitStatusOut,
    PermitTypeOut,
    PermitUploadOut,
    SweepJobOut,
)
from exportgate.services.job_queue import enqueue_sweep_job
from exportgate.services.permit_ledger import PermitLedger

router = APIRouter(tags=["permits"])


@router.get("/api/permits/types", response_model=list[PermitTypeOut])
async def list_permit_types(core: CoreServices = Depends(get_core)) -> list[PermitTypeOut]:
    return [PermitTypeOut(**pt.to_dict()) for pt in core.permits]


@router.post("/api/permits/{shipment_id}/{permit_type}", response_model=PermitUploadOut, status_code=201)
async def upload_permit(
    shipment_id: str,
    permit_type: str,
    file: UploadFile = File(...),
    uploaded_by: str = Form(...),
    expiry_date: date | None = Form(None),
    permit_number: str | None = Form(None),
    ledger: PermitLedger = Depends(get_ledger),
) -> PermitUploadOut:
    content = await file.read()
    result = await ledger.upload_permit(
        shipment_id,
        permit_type,
        content,
        file.filename or "",
        uploaded_by,
        expiry_date=expiry_date,
        permit_number=permit_number,
    )
    return PermitUploadOut(**result.to_dict())


@router.get("/api/permits/{shipment_id}", response_model=PermitStatusOut)
async def get_permit_status(
    shipment_id: str,
    ledger: PermitLedger = Depends(get_ledger),
) -> PermitStatusOut:
    return PermitStatusOut(**await ledger.get_permit_status(shipment_id))


@router.post("/api/maintenance/expired-permits", response_model=ExpirySweepOut)
async def sweep_expired_permits(ledger: PermitLedger = Depends(get_ledger)) -> ExpirySweepOut:
    """Run the expired-permit sweep inline."""
    return ExpirySweepOut(**await ledger.cleanup_expired_permits())


@router.post("/api/maintenance/expired-permits/enqueue", response_model=SweepJobOut, status_code=202)
async def enqueue_expired_permit_sweep() -> SweepJobOut:
    """Hand the sweep to the maintenance worker."""
    job_id = await enqueue_sweep_job(requested_by="api")
    return SweepJobOut(job_id=job_id, status="queued")
