"""
Parameter catalog views (applicable checklist) and admin edit payloads.
"""
from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ApplicableParameter(BaseModel):
    id: int
    param_number: int
    name: str
    detail: Optional[str] = None
    input_type: Optional[str] = None
    options: list[Optional[str]]
    scores: list[Optional[float]]
    # Parallel to option_1..option_5; None where a slot is unused
    option_labels: list[Optional[str]]
    option_scores: list[Optional[float]]
    is_red_flag: bool
    weightage: float
    sort_order: int


class ApplicableSubGroup(BaseModel):
    id: int
    name: str
    sort_order: int
    check_count: int
    parameters: list[ApplicableParameter]


class ApplicableModule(BaseModel):
    id: int
    name: str
    slug: str
    icon: Optional[str] = None
    weight: float
    sort_order: int
    total_params: int = Field(description="Applicable parameter count after filtering")
    sub_groups: list[ApplicableSubGroup]


class ApplicableCatalog(BaseModel):
    fuel_type: Optional[str] = None
    transmission_type: Optional[str] = None
    total_params: int
    modules: list[ApplicableModule]


# ── Admin ──

class CatalogParameterView(BaseModel):
    id: int
    param_number: int
    name: str
    fuel_filter: Optional[str] = None
    transmission_filter: Optional[str] = None
    is_red_flag: bool
    is_active: bool
    sort_order: int


class CatalogSubGroupView(BaseModel):
    id: int
    name: str
    sort_order: int
    active_count: int
    total_count: int
    parameters: list[CatalogParameterView]


class CatalogModuleView(BaseModel):
    id: int
    name: str
    slug: str
    icon: Optional[str] = None
    weight: float
    base_repair_cost: float
    gamma: float
    active_count: int
    total_count: int
    sub_groups: list[CatalogSubGroupView]


class ActiveToggle(BaseModel):
    is_active: bool


class ParameterUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=150)
    detail: Optional[str] = None
    input_type: Optional[str] = Field(None, max_length=50)
    option_1: Optional[str] = Field(None, max_length=100)
    option_2: Optional[str] = Field(None, max_length=100)
    option_3: Optional[str] = Field(None, max_length=100)
    option_4: Optional[str] = Field(None, max_length=100)
    option_5: Optional[str] = Field(None, max_length=100)
    score_1: Optional[float] = Field(None, ge=0, le=1)
    score_2: Optional[float] = Field(None, ge=0, le=1)
    score_3: Optional[float] = Field(None, ge=0, le=1)
    score_4: Optional[float] = Field(None, ge=0, le=1)
    score_5: Optional[float] = Field(None, ge=0, le=1)
    fuel_filter: Optional[str] = Field(None, max_length=100)
    transmission_filter: Optional[str] = Field(None, max_length=100)
    is_red_flag: Optional[bool] = None
    sort_order: Optional[int] = None


class ModuleWeightsUpdate(BaseModel):
    """Full replacement of module weights keyed by slug; must total 1.0 across all modules."""
    weights: dict[str, float]

    @field_validator("weights")
    @classmethod
    def validate_range(cls, v: dict[str, float]) -> dict[str, float]:
        for slug, weight in v.items():
            if not 0 <= weight <= 1:
                raise ValueError(f"weight for {slug} must be within [0, 1]")
        return v


class ModuleCostUpdate(BaseModel):
    base_repair_cost: Optional[float] = Field(None, ge=0)
    gamma: Optional[float] = Field(None, gt=0)
