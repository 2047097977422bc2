"""
Shipments API Router: register shipments that detection and permits attach to.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.api.deps import get_db
from exportgate.errors import ShipmentNotFound
from exportgate.models import Shipment
from exportgate.schemas.schemas import ShipmentCreate, ShipmentOut

router = APIRouter(prefix="/api/shipments", tags=["shipments"])


def _to_out(s: Shipment) -> ShipmentOut:
    return ShipmentOut(
        shipment_id=s.shipment_id,
        reference=s.reference,
        destination_country=s.destination_country,
        created_at=s.created_at,
    )


@router.post("", response_model=ShipmentOut, status_code=201)
async def create_shipment(body: ShipmentCreate, db: AsyncSession = Depends(get_db)) -> ShipmentOut:
    existing = await db.execute(select(Shipment.id).where(Shipment.shipment_id == body.shipment_id))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail=f"Shipment {body.shipment_id} already exists")

    shipment = Shipment(
        shipment_id=body.shipment_id,
        reference=body.reference,
        destination_country=body.destination_country.upper() if body.destination_country else None,
    )
    db.add(shipment)
    await db.flush()
    await db.refresh(shipment)
    return _to_out(shipment)


@router.get("/{shipment_id}", response_model=ShipmentOut)
async def get_shipment(shipment_id: str, db: AsyncSession = Depends(get_db)) -> ShipmentOut:
    result = await db.execute(select(Shipment).where(Shipment.shipment_id == shipment_id))
    shipment = result.scalar_one_or_none()
    if shipment is None:
        raise ShipmentNotFound(shipment_id)
    return _to_out(shipment)
