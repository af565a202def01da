"""
GET /v1/parameters?fuel_type=&transmission_type=

Applicable checklist for a vehicle, before an inspection is started.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import verify_token
from app.models.database import get_db
from app.schemas.catalog import ApplicableCatalog
from app.schemas.inspection_request import FuelType, TransmissionType
from app.services.applicability import count_parameters, resolve_applicable_parameters

router = APIRouter(prefix="/v1/parameters", tags=["parameters"])


@router.get("", response_model=ApplicableCatalog)
async def get_applicable_parameters(
    fuel_type: Optional[FuelType] = None,
    transmission_type: Optional[TransmissionType] = None,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> ApplicableCatalog:
    fuel = fuel_type.value if fuel_type else None
    transmission = transmission_type.value if transmission_type else None

    modules = await resolve_applicable_parameters(db, fuel, transmission)
    return ApplicableCatalog(
        fuel_type=fuel,
        transmission_type=transmission,
        total_params=count_parameters(modules),
        modules=modules,
    )
