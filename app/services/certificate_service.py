"""
Certificate Issuer

Mints one certificate per scored inspection (idempotent) and serves the
public verification read.

Certificate number: PREFIX-YYYYMMDD-NNNNN
  YYYYMMDD  issuance date in the certificate timezone
  NNNNN     certificates issued since local midnight + 1, zero-padded

The unique constraint on certificate_number is the guard against two
concurrent issuances computing the same sequence.
"""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import get_settings
from app.core.metrics import CERTIFICATES_ISSUED
from app.models.inspection import Inspection, InspectionCertificate, InspectionScore
from app.schemas.certificate import CertificateResult, CertificateVerification, VehicleSummary
from app.schemas.inspection_response import InspectionStatus
from app.services.outcome import ErrorKind, Outcome

logger = structlog.get_logger()

SEQUENCE_DIGITS = 5


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are UTC; some drivers hand them back naive."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_months(dt: datetime, months: int) -> datetime:
    """
    Calendar-month arithmetic, clamping the day to the target month's length:
    Aug 31 + 6 months is Feb 28 (Feb 29 in a leap year), not an overflow into
    early March.
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def local_day_bounds(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """[local midnight, next local midnight) for the day containing `now`, in UTC."""
    tz = ZoneInfo(tz_name)
    local = now.astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


async def generate_certificate_number(db: AsyncSession, now: datetime) -> str:
    settings = get_settings()
    now = as_utc(now)
    day_start, day_end = local_day_bounds(now, settings.certificate_timezone)

    issued_today = (await db.execute(
        select(func.count(InspectionCertificate.id)).where(
            InspectionCertificate.issued_at >= day_start,
            InspectionCertificate.issued_at < day_end,
        )
    )).scalar_one()

    date_str = now.astimezone(ZoneInfo(settings.certificate_timezone)).strftime("%Y%m%d")
    return f"{settings.certificate_prefix}-{date_str}-{issued_today + 1:0{SEQUENCE_DIGITS}d}"


def to_result(cert: InspectionCertificate) -> CertificateResult:
    return CertificateResult(
        id=cert.id,
        inspection_id=cert.inspection_id,
        certificate_number=cert.certificate_number,
        qr_code_data=cert.qr_code_data,
        rating=cert.rating,
        certification=cert.certification,
        issued_at=as_utc(cert.issued_at),
        expires_at=as_utc(cert.expires_at),
    )


async def _existing_certificate(db: AsyncSession, inspection_id: int) -> Optional[InspectionCertificate]:
    return (await db.execute(
        select(InspectionCertificate).where(InspectionCertificate.inspection_id == inspection_id)
    )).scalar_one_or_none()


async def issue_certificate(
    db: AsyncSession,
    inspection_id: int,
    now: Optional[datetime] = None,
) -> Outcome[CertificateResult]:
    settings = get_settings()
    issued_at = as_utc(now) if now else datetime.now(timezone.utc)

    try:
        inspection = await db.get(Inspection, inspection_id)
        if inspection is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")

        existing = await _existing_certificate(db, inspection_id)
        if existing is not None:
            return Outcome.success(to_result(existing))

        if inspection.status != InspectionStatus.SCORED.value:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"Inspection must be scored before generating certificate (status: {inspection.status})",
                status=inspection.status,
            )

        score = (await db.execute(
            select(InspectionScore).where(InspectionScore.inspection_id == inspection_id)
        )).scalar_one_or_none()
        if score is None:
            return Outcome.failure(ErrorKind.PRECONDITION_FAILED, "Score not found for this inspection")

        certificate_number = await generate_certificate_number(db, issued_at)
        certificate = InspectionCertificate(
            inspection_id=inspection_id,
            certificate_number=certificate_number,
            qr_code_data=f"{settings.certificate_verify_base_url.rstrip('/')}/{certificate_number}",
            rating=score.rating,
            certification=score.certification,
            issued_at=issued_at,
            expires_at=add_months(issued_at, settings.certificate_validity_months),
            created_at=issued_at,
        )
        db.add(certificate)

        inspection.status = InspectionStatus.CERTIFIED.value
        inspection.modified_at = issued_at
        await db.commit()

    except IntegrityError as e:
        await db.rollback()
        winner = await _existing_certificate(db, inspection_id)
        if winner is not None:
            logger.info("certificate_issue_race_lost", inspection_id=inspection_id,
                        certificate_number=winner.certificate_number)
            return Outcome.success(to_result(winner))
        logger.warning("certificate_number_collision", inspection_id=inspection_id, error=str(e.orig))
        return Outcome.failure(
            ErrorKind.INTEGRITY,
            f"Certificate number collision: {e.orig}",
            inspection_id=inspection_id,
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("certificate_issue_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to generate certificate: {e}")

    CERTIFICATES_ISSUED.inc()
    logger.info(
        "certificate_issued",
        inspection_id=inspection_id,
        certificate_number=certificate_number,
        certification=certificate.certification,
        rating=certificate.rating,
    )
    return Outcome.success(to_result(certificate))


async def verify_certificate(
    db: AsyncSession,
    certificate_number: str,
    now: Optional[datetime] = None,
) -> Outcome[CertificateVerification]:
    """Public lookup. is_expired is computed against `now`, never stored."""
    now = as_utc(now) if now else datetime.now(timezone.utc)

    try:
        certificate = (await db.execute(
            select(InspectionCertificate)
            .where(InspectionCertificate.certificate_number == certificate_number)
            .options(selectinload(InspectionCertificate.inspection))
        )).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("certificate_verify_failed", certificate_number=certificate_number, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to verify certificate: {e}")

    if certificate is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Certificate not found", certificate_number=certificate_number)

    expires_at = as_utc(certificate.expires_at)
    vehicle = certificate.inspection

    return Outcome.success(CertificateVerification(
        certificate_number=certificate.certificate_number,
        rating=certificate.rating,
        certification=certificate.certification,
        issued_at=as_utc(certificate.issued_at),
        expires_at=expires_at,
        is_expired=now > expires_at,
        vehicle=VehicleSummary(
            registration_number=vehicle.vehicle_reg_number,
            make=vehicle.vehicle_make,
            model=vehicle.vehicle_model,
            year=vehicle.vehicle_year,
            fuel_type=vehicle.fuel_type,
            transmission_type=vehicle.transmission_type,
            odometer_km=vehicle.odometer_km,
            inspected_at=as_utc(vehicle.completed_at),
        ) if vehicle else None,
    ))
