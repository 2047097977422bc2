"""
Strategic Detection API Router: run detection for a shipment's items and
read back the stored detection status.
"""

from fastapi import APIRouter, Depends

from exportgate.api.deps import get_orchestrator
from exportgate.layers.base import ProductItem
from exportgate.schemas.schemas import DetectRequest, DetectionStatusOut, DetectionSummaryOut
from exportgate.services.detection_orchestrator import DetectionOrchestrator

router = APIRouter(prefix="/api/strategic", tags=["strategic"])


@router.post("/detect", response_model=DetectionSummaryOut)
async def detect_strategic_items(
    body: DetectRequest,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> DetectionSummaryOut:
    items = [
        ProductItem(
            description=i.description,
            hs_code=i.hs_code,
            quantity=i.quantity,
            technical_specs=i.technical_specs,
        )
        for i in body.items
    ]
    summary = await orchestrator.detect(body.shipment_id, items)
    return DetectionSummaryOut(**summary.to_dict())


@router.get("/status/{shipment_id}", response_model=DetectionStatusOut)
async def get_detection_status(
    shipment_id: str,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),
) -> DetectionStatusOut:
    return DetectionStatusOut(**await orchestrator.get_detection_status(shipment_id))
