"""
Certificate payloads: the issued certificate and the public verification view.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class CertificateResult(BaseModel):
    id: int
    inspection_id: int
    certificate_number: str = Field(description="PREFIX-YYYYMMDD-NNNNN")
    qr_code_data: Optional[str] = Field(None, description="Public verification URL")
    rating: Optional[float] = None
    certification: Optional[str] = None
    issued_at: datetime
    expires_at: datetime


class VehicleSummary(BaseModel):
    registration_number: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    fuel_type: Optional[str] = None
    transmission_type: Optional[str] = None
    odometer_km: Optional[int] = None
    inspected_at: Optional[datetime] = None


class CertificateVerification(BaseModel):
    """Returned to unauthenticated callers scanning a certificate QR code."""
    certificate_number: str
    rating: Optional[float] = None
    certification: Optional[str] = None
    issued_at: datetime
    expires_at: datetime
    is_expired: bool = Field(description="Computed at lookup time")
    vehicle: Optional[VehicleSummary] = None
