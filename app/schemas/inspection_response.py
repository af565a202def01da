"""
Outbound payloads: lifecycle results, score, and the grouped read projection
consumed by the report renderer.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.certificate import CertificateResult


class InspectionStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SCORED = "scored"
    CERTIFIED = "certified"


class CertificationTier(str, Enum):
    GOLD = "Gold"
    SILVER = "Silver"
    VERIFIED = "Verified"
    NOT_CERTIFIED = "Not Certified"


class RedFlagParam(BaseModel):
    """A red-flag parameter answered at or above the decertification severity."""
    param_number: int
    param_name: str
    severity_score: float


class ModuleRepairCost(BaseModel):
    module_name: str
    risk: float
    base_cost: float
    gamma: float
    repair_cost: float


class ScoreResult(BaseModel):
    vri: float = Field(description="Weight-normalised vehicle risk index, 0-1")
    rating: float = Field(description="5 × (1 − VRI^1.3), 0-5")
    certification: CertificationTier
    has_red_flags: bool
    red_flag_params: list[RedFlagParam] = []
    total_repair_cost: float
    repair_cost_breakdown: dict[str, ModuleRepairCost]
    module_risks: dict[str, float]


# ── Lifecycle results ──

class InspectionCreated(BaseModel):
    id: int
    uuid: str
    status: InspectionStatus
    total_applicable_params: int


class SavedResponse(BaseModel):
    parameter_id: int
    selected_option: Optional[int] = None
    severity_score: Optional[float] = None
    total_answered_params: int


class BatchSaveResult(BaseModel):
    updated: int
    skipped_parameter_ids: list[int] = []
    total_answered_params: int


class CompletionResult(BaseModel):
    inspection_id: int
    status: InspectionStatus
    score: ScoreResult


class PhotoOut(BaseModel):
    id: int
    response_id: int
    file_path: str
    file_name: str
    file_size: Optional[int] = None


class InspectionPhotoSet(BaseModel):
    inspection_id: int
    kind: str
    file_path: str


# ── Read projection (Get) ──

class ResponseView(BaseModel):
    response_id: int
    parameter_id: int
    param_number: int
    param_name: str
    param_detail: Optional[str] = None
    input_type: Optional[str] = None
    options: list[Optional[str]]
    scores: list[Optional[float]]
    is_red_flag: bool
    selected_option: Optional[int] = None
    severity_score: Optional[float] = None
    notes: Optional[str] = None
    photos: list[PhotoOut] = []


class SubGroupView(BaseModel):
    id: int
    name: str
    sort_order: int
    responses: list[ResponseView]


class ModuleView(BaseModel):
    id: int
    name: str
    slug: str
    icon: Optional[str] = None
    weight: float
    sort_order: int
    total_params: int
    answered_params: int
    sub_groups: list[SubGroupView]


class InspectionDetail(BaseModel):
    id: int
    uuid: str
    technician_id: Optional[str] = None
    inspector_name: Optional[str] = None
    vehicle_reg_number: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    fuel_type: str
    transmission_type: str
    odometer_km: Optional[int] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_address: Optional[str] = None
    inspector_photo_path: Optional[str] = None
    vehicle_photo_path: Optional[str] = None
    status: InspectionStatus
    total_applicable_params: int
    total_answered_params: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    modules: list[ModuleView]
    score: Optional[ScoreResult] = None
    certificate: Optional[CertificateResult] = None


class InspectionSummary(BaseModel):
    id: int
    uuid: str
    technician_id: Optional[str] = None
    vehicle_reg_number: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    status: InspectionStatus
    total_applicable_params: int
    total_answered_params: int
    rating: Optional[float] = None
    certification: Optional[CertificationTier] = None
    has_red_flags: Optional[bool] = None
    total_repair_cost: Optional[float] = None
    created_at: datetime


class InspectionPage(BaseModel):
    inspections: list[InspectionSummary]
    total: int
    page: int
    total_pages: int
