from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from src.befree.security import get_api_key
from src.befree.services.reference.service import reference_data_service

router = APIRouter(
    prefix="/reference",
    tags=["reference"],
    dependencies=[Depends(get_api_key)],
)


@router.get("/regions", response_model=List[str])
async def list_regions() -> List[str]:
    return reference_data_service.list_regions()


@router.get("/regions/{region}/constituencies", response_model=List[str])
async def list_constituencies(region: str) -> List[str]:
    if region not in reference_data_service.list_regions():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Region not found")
    return reference_data_service.list_constituencies(region)


@router.get("/regions/{region}/constituencies/{constituency}/facilities", response_model=List[str])
async def list_facilities(region: str, constituency: str) -> List[str]:
    """Facilities a referral can be routed to within one constituency."""

    if constituency not in reference_data_service.list_constituencies(region):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Constituency not found")
    return reference_data_service.list_facilities(region, constituency)
