"""
Inspection lifecycle API, called by the technician app.

  POST /v1/inspections                                   → create (frozen snapshot)
  GET  /v1/inspections                                   → list
  GET  /v1/inspections/{id}                              → grouped read projection
  PUT  /v1/inspections/{id}/responses/batch              → save many answers atomically
  PUT  /v1/inspections/{id}/responses/{parameter_id}     → save one answer
  POST /v1/inspections/{id}/responses/{response_id}/photos
  POST /v1/inspections/{id}/inspector-photo              → inspector photo reference
  POST /v1/inspections/{id}/vehicle-photo                → vehicle overview photo reference
  POST /v1/inspections/{id}/complete                     → complete + score
  POST /v1/inspections/{id}/rescore                      → retry scoring
  GET  /v1/inspections/{id}/score
  POST /v1/inspections/{id}/certificate                  → issue certificate

Events are published to Kafka (if enabled) after scoring and certification.
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.auth import token_subject, verify_token
from app.models.database import get_db
from app.schemas.certificate import CertificateResult
from app.schemas.inspection_request import (
    InspectionPhotoKind,
    PhotoReference,
    SaveBatchRequest,
    SaveResponseRequest,
    VehicleContext,
)
from app.schemas.inspection_response import (
    BatchSaveResult,
    CompletionResult,
    InspectionCreated,
    InspectionDetail,
    InspectionPage,
    InspectionPhotoSet,
    InspectionStatus,
    PhotoOut,
    SavedResponse,
    ScoreResult,
)
from app.services import certificate_service, inspection_service
from app.services.event_publisher import publish_certificate_event, publish_scored_event

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/inspections", tags=["inspections"])


@router.post(
    "",
    response_model=InspectionCreated,
    status_code=201,
    summary="Start an inspection",
    description="Resolves applicable parameters for the vehicle and freezes them as the required answer set.",
)
async def create_inspection(
    vehicle: VehicleContext,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> InspectionCreated:
    technician_id = token_payload.get("sub")
    logger.info(
        "inspection_create_requested",
        technician_id=technician_id,
        fuel_type=vehicle.fuel_type.value,
        transmission_type=vehicle.transmission_type.value,
    )
    return unwrap(await inspection_service.create_inspection(db, vehicle, technician_id=technician_id))


@router.get("", response_model=InspectionPage)
async def list_inspections(
    technician_id: Optional[str] = None,
    status: Optional[InspectionStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> InspectionPage:
    return unwrap(await inspection_service.list_inspections(
        db, technician_id=technician_id, status=status, page=page, limit=limit,
    ))


@router.get("/{inspection_id}", response_model=InspectionDetail)
async def get_inspection(
    inspection_id: int,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> InspectionDetail:
    return unwrap(await inspection_service.get_inspection(db, inspection_id))


# batch must be registered before /{parameter_id}
@router.put("/{inspection_id}/responses/batch", response_model=BatchSaveResult)
async def save_batch(
    inspection_id: int,
    request: SaveBatchRequest,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> BatchSaveResult:
    return unwrap(await inspection_service.save_batch(db, inspection_id, request.responses))


@router.put("/{inspection_id}/responses/{parameter_id}", response_model=SavedResponse)
async def save_response(
    inspection_id: int,
    parameter_id: int,
    request: SaveResponseRequest,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> SavedResponse:
    return unwrap(await inspection_service.save_response(
        db, inspection_id, parameter_id, request.selected_option, request.notes,
    ))


@router.post("/{inspection_id}/responses/{response_id}/photos", response_model=PhotoOut, status_code=201)
async def attach_photo(
    inspection_id: int,
    response_id: int,
    photo: PhotoReference,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> PhotoOut:
    return unwrap(await inspection_service.attach_photo(db, inspection_id, response_id, photo))


@router.post("/{inspection_id}/inspector-photo", response_model=InspectionPhotoSet)
async def set_inspector_photo(
    inspection_id: int,
    photo: PhotoReference,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> InspectionPhotoSet:
    return unwrap(await inspection_service.set_inspection_photo(
        db, inspection_id, InspectionPhotoKind.INSPECTOR, photo,
    ))


@router.post("/{inspection_id}/vehicle-photo", response_model=InspectionPhotoSet)
async def set_vehicle_photo(
    inspection_id: int,
    photo: PhotoReference,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> InspectionPhotoSet:
    return unwrap(await inspection_service.set_inspection_photo(
        db, inspection_id, InspectionPhotoKind.VEHICLE, photo,
    ))


@router.post(
    "/{inspection_id}/complete",
    response_model=CompletionResult,
    summary="Complete and score",
    description=(
        "Requires every frozen parameter answered (409 with unanswered_count otherwise). "
        "A scoring failure returns 500 with status=completed; retry via /rescore."
    ),
)
async def complete_inspection(
    inspection_id: int,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> CompletionResult:
    result = unwrap(await inspection_service.complete_inspection(db, inspection_id))
    await publish_scored_event(result)
    return result


@router.post("/{inspection_id}/rescore", response_model=CompletionResult)
async def rescore_inspection(
    inspection_id: int,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> CompletionResult:
    logger.info("rescore_requested", inspection_id=inspection_id, caller=token_subject(token_payload))
    result = unwrap(await inspection_service.rescore_inspection(db, inspection_id))
    await publish_scored_event(result)
    return result


@router.get("/{inspection_id}/score", response_model=ScoreResult)
async def get_score(
    inspection_id: int,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> ScoreResult:
    return unwrap(await inspection_service.get_score(db, inspection_id))


@router.post("/{inspection_id}/certificate", response_model=CertificateResult)
async def issue_certificate(
    inspection_id: int,
    token_payload: dict = Depends(verify_token),
    db: AsyncSession = Depends(get_db),
) -> CertificateResult:
    certificate = unwrap(await certificate_service.issue_certificate(db, inspection_id))
    await publish_certificate_event(certificate)
    return certificate
