"""
Inbound payloads from the technician app.

Severity scores are never accepted here: they are derived server-side
from the option a technician selects.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class FuelType(str, Enum):
    PETROL = "Petrol"
    DIESEL = "Diesel"
    CNG = "CNG"
    ELECTRIC = "Electric"
    HYBRID = "Hybrid"


class TransmissionType(str, Enum):
    MANUAL = "Manual"
    AUTOMATIC = "Automatic"
    CVT = "CVT"
    DCT = "DCT"
    AMT = "AMT"


class InspectionPhotoKind(str, Enum):
    INSPECTOR = "inspector"
    VEHICLE = "vehicle"


class VehicleContext(BaseModel):
    """Vehicle under inspection. Fuel + transmission drive parameter applicability."""
    vehicle_reg_number: Optional[str] = Field(None, max_length=20)
    vehicle_make: Optional[str] = Field(None, max_length=80)
    vehicle_model: Optional[str] = Field(None, max_length=80)
    vehicle_year: Optional[int] = Field(None, ge=1900, le=2100)
    fuel_type: FuelType
    transmission_type: TransmissionType
    odometer_km: Optional[int] = Field(None, ge=0)

    gps_latitude: Optional[float] = Field(None, ge=-90, le=90)
    gps_longitude: Optional[float] = Field(None, ge=-180, le=180)
    gps_address: Optional[str] = Field(None, max_length=255)
    inspector_name: Optional[str] = Field(None, max_length=100)


class SaveResponseRequest(BaseModel):
    selected_option: Optional[int] = Field(None, ge=1, le=5, description="1-5, or null to clear the answer")
    notes: Optional[str] = Field(None, description="Omitted/null keeps existing notes; empty string clears them")


class BatchResponseItem(SaveResponseRequest):
    parameter_id: int


class SaveBatchRequest(BaseModel):
    responses: list[BatchResponseItem] = Field(min_length=1)


class PhotoReference(BaseModel):
    """Stored-file reference handed over by the photo storage service."""
    file_path: str = Field(max_length=500)
    file_name: str = Field(max_length=255)
    file_size: Optional[int] = Field(None, ge=0)
