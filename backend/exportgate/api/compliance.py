"""
Compliance API Router: current compliance status, explicit rechecks, export
validation and the cross-shipment compliance dashboard.
"""

from fastapi import APIRouter, Depends, Query

from exportgate.api.deps import get_gate
from exportgate.schemas.schemas import ComplianceDashboardOut, ComplianceStateOut, ExportValidationOut
from exportgate.services.compliance_gate import ComplianceGate

router = APIRouter(tags=["compliance"])


# Declared before /api/compliance/{shipment_id} so "dashboard" is not taken as an id
@router.get("/api/compliance/dashboard", response_model=ComplianceDashboardOut)
async def compliance_dashboard(
    days: int = Query(30, ge=1, le=365, description="Look-back window in days"),
    gate: ComplianceGate = Depends(get_gate),
) -> ComplianceDashboardOut:
    return ComplianceDashboardOut(**await gate.dashboard(days))


@router.get("/api/compliance/{shipment_id}", response_model=ComplianceStateOut)
async def get_compliance_status(
    shipment_id: str,
    gate: ComplianceGate = Depends(get_gate),
) -> ComplianceStateOut:
    state = await gate.get_compliance_status(shipment_id)
    return ComplianceStateOut(**state.to_dict())


@router.post("/api/compliance/{shipment_id}/check", response_model=ComplianceStateOut)
async def check_compliance(
    shipment_id: str,
    gate: ComplianceGate = Depends(get_gate),
) -> ComplianceStateOut:
    state = await gate.check_compliance(shipment_id, actor="api")
    return ComplianceStateOut(**state.to_dict())


@router.post("/api/export/validation/{shipment_id}", response_model=ExportValidationOut)
async def validate_export(
    shipment_id: str,
    gate: ComplianceGate = Depends(get_gate),
) -> ExportValidationOut:
    """Validate the shipment for export; records a validation log row and an audit entry."""
    return ExportValidationOut(**await gate.validate_export(shipment_id, actor="api"))
