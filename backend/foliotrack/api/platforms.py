"""
Platforms API Router.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from foliotrack.api.deps import get_asset_service, http_error
from foliotrack.core.exceptions import LedgerError
from foliotrack.core.security import Identity, get_current_identity
from foliotrack.services.asset_service import AssetService

router = APIRouter()


class PlatformCreate(BaseModel):
    name: str
    description: Optional[str] = None


class PlatformSchema(BaseModel):
    id: int
    name: str
    description: Optional[str]

    class Config:
        from_attributes = True


@router.get("", response_model=List[PlatformSchema])
async def list_platforms(
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
):
    return await service.list_platforms()


@router.post("", response_model=PlatformSchema, status_code=201)
async def create_platform(
    body: PlatformCreate,
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
):
    try:
        return await service.create_platform(body.name, body.description)
    except LedgerError as e:
        raise http_error(e) from e
