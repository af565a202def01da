"""
Admin / Catalog API — parameter catalog management + seed job trigger.

Endpoints:
  GET   /v1/admin/catalog                               → full hierarchy with active counts
  PATCH /v1/admin/parameters/{id}/status                → toggle one parameter
  PATCH /v1/admin/sub-groups/{id}/status                → toggle every parameter in a sub-group
  PATCH /v1/admin/modules/{id}/status                   → toggle every parameter in a module
  PUT   /v1/admin/parameters/{id}                       → edit parameter fields
  PUT   /v1/admin/modules/weights                       → replace module weights (must total 1.0)
  PUT   /v1/admin/modules/{id}/costs                    → repair-cost inputs
  GET   /v1/admin/audit                                 → recent catalog changes

  POST  /v1/admin/seed-catalog
    → Load / refresh the catalog from the parameter CSV

Catalog edits affect future inspections only and are all audit-logged.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import unwrap
from app.core.auth import require_admin, token_subject
from app.models.database import get_db
from app.schemas.catalog import (
    ActiveToggle,
    CatalogModuleView,
    ModuleCostUpdate,
    ModuleWeightsUpdate,
    ParameterUpdate,
)
from app.services import catalog_service
from app.services.catalog_seed import run_seed

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.get("/catalog", response_model=list[CatalogModuleView])
async def get_catalog(db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin)):
    return unwrap(await catalog_service.get_catalog_hierarchy(db))


@router.patch("/parameters/{parameter_id}/status")
async def toggle_parameter(
    parameter_id: int,
    toggle: ActiveToggle,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    user = token_subject(token)
    return unwrap(await catalog_service.set_parameter_active(db, parameter_id, toggle.is_active, user))


@router.patch("/sub-groups/{sub_group_id}/status")
async def toggle_sub_group(
    sub_group_id: int,
    toggle: ActiveToggle,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    user = token_subject(token)
    return unwrap(await catalog_service.set_sub_group_active(db, sub_group_id, toggle.is_active, user))


@router.patch("/modules/{module_id}/status")
async def toggle_module(
    module_id: int,
    toggle: ActiveToggle,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    user = token_subject(token)
    return unwrap(await catalog_service.set_module_active(db, module_id, toggle.is_active, user))


@router.put("/parameters/{parameter_id}")
async def update_parameter(
    parameter_id: int,
    update: ParameterUpdate,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    if not update.model_dump(exclude_unset=True):
        raise HTTPException(400, "No fields to update")
    user = token_subject(token)
    return unwrap(await catalog_service.update_parameter(db, parameter_id, update, user))


@router.put("/modules/weights")
async def update_module_weights(
    update: ModuleWeightsUpdate,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    user = token_subject(token)
    return unwrap(await catalog_service.update_module_weights(db, update.weights, user))


@router.put("/modules/{module_id}/costs")
async def update_module_costs(
    module_id: int,
    update: ModuleCostUpdate,
    db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin),
):
    if update.base_repair_cost is None and update.gamma is None:
        raise HTTPException(400, "No fields to update")
    user = token_subject(token)
    return unwrap(await catalog_service.update_module_costs(
        db, module_id, update.base_repair_cost, update.gamma, user,
    ))


@router.get("/audit")
async def list_audit_log(limit: int = 50, db: AsyncSession = Depends(get_db), token: dict = Depends(require_admin)):
    return unwrap(await catalog_service.list_audit_log(db, limit=limit))


# ══ Batch Job Triggers ════════════════════════════════════════════════════

class SeedResponse(BaseModel):
    triggered_by: str
    status: str
    message: str
    job_result: Optional[dict] = None


@router.post(
    "/seed-catalog",
    response_model=SeedResponse,
    summary="Load the inspection parameter catalog from CSV",
    description=(
        "Parses the parameter CSV and upserts modules, sub-groups and parameters. "
        "Idempotent; admin active toggles are preserved. "
        "Rejects a file whose module weights do not total 100%."
    ),
)
async def trigger_catalog_seed(
    csv_path: Optional[str] = None,
    token: dict = Depends(require_admin),
):
    """
    Runs synchronously (awaited) so the caller gets the full result.
    The underlying psycopg2 calls are run in a thread pool to avoid blocking the event loop.
    """
    user = token_subject(token)
    logger.info("catalog_seed_triggered", triggered_by=user, csv_path=csv_path)

    try:
        result = await asyncio.to_thread(run_seed, csv_path)
    except Exception as e:
        logger.error("catalog_seed_failed", error=str(e), triggered_by=user)
        raise HTTPException(
            status_code=500,
            detail=f"Catalog seed failed: {e}",
        )

    return SeedResponse(
        triggered_by=user,
        status=result.get("status", "success"),
        message=(
            f"Seeded {result['modules']} modules, {result['sub_groups']} sub-groups, "
            f"{result['parameters']} parameters ({result['elapsed_seconds']}s)"
        ),
        job_result=result,
    )
