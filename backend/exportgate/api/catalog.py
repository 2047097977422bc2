"""
Catalog API Router: read-only view of the strategic item catalog.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.api.deps import get_db
from exportgate.schemas.schemas import CatalogEntryOut
from exportgate.services.catalog import CatalogService

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("", response_model=list[CatalogEntryOut])
async def list_catalog(db: AsyncSession = Depends(get_db)) -> list[CatalogEntryOut]:
    catalog = await CatalogService(db).load()
    return [CatalogEntryOut(**entry.to_dict()) for entry in catalog]
