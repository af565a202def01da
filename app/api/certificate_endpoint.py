"""
GET /v1/certificates/verify/{certificate_number}

Public, unauthenticated. Target of the QR code printed on every certificate.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.models.database import get_db
from app.schemas.certificate import CertificateVerification
from app.services.certificate_service import verify_certificate

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


@router.get(
    "/verify/{certificate_number}",
    response_model=CertificateVerification,
    summary="Verify a certificate",
    description="Returns the rating/tier snapshot, validity window and vehicle identity. 404 for unknown numbers.",
)
async def verify(certificate_number: str, db: AsyncSession = Depends(get_db)) -> CertificateVerification:
    outcome = await verify_certificate(db, certificate_number)
    logger.info("certificate_verified", certificate_number=certificate_number, found=outcome.ok)
    return unwrap(outcome)
