"""
Catalog administration: hierarchy view, active toggles, parameter edits,
module weights and repair-cost inputs.

Edits only shape future inspections; existing inspections keep their frozen
snapshot. Every changed field is written to catalog_audit_log in the same
transaction as the change.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models.catalog import (
    CatalogAuditLog,
    InspectionModule,
    InspectionParameter,
    InspectionSubGroup,
)
from app.schemas.catalog import (
    CatalogModuleView,
    CatalogParameterView,
    CatalogSubGroupView,
    ParameterUpdate,
)
from app.services.applicability import load_catalog
from app.services.outcome import ErrorKind, Outcome

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _audit(
    db: AsyncSession,
    action: str,
    table_name: str,
    record_id: Any,
    changed_by: str,
    field_name: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
) -> None:
    db.add(CatalogAuditLog(
        action=action,
        table_name=table_name,
        record_id=str(record_id),
        field_name=field_name,
        old_value=None if old_value is None else str(old_value),
        new_value=None if new_value is None else str(new_value),
        changed_by=changed_by,
        changed_at=_now(),
    ))


# ── Read ──

async def get_catalog_hierarchy(db: AsyncSession) -> Outcome[list[CatalogModuleView]]:
    """Every module → sub-group → parameter, active or not, with active/total counts."""
    try:
        modules = await load_catalog(db)
    except SQLAlchemyError as e:
        logger.error("catalog_hierarchy_failed", error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to get parameter hierarchy: {e}")

    views = []
    for mod in modules:
        sub_groups = []
        for sg in sorted(mod.sub_groups, key=lambda s: s.sort_order or 0):
            params = sorted(sg.parameters, key=lambda p: (p.sort_order or 0, p.param_number))
            sub_groups.append(CatalogSubGroupView(
                id=sg.id,
                name=sg.name,
                sort_order=sg.sort_order or 0,
                active_count=sum(1 for p in params if p.is_active),
                total_count=len(params),
                parameters=[
                    CatalogParameterView(
                        id=p.id,
                        param_number=p.param_number,
                        name=p.name,
                        fuel_filter=p.fuel_filter,
                        transmission_filter=p.transmission_filter,
                        is_red_flag=bool(p.is_red_flag),
                        is_active=bool(p.is_active),
                        sort_order=p.sort_order or 0,
                    )
                    for p in params
                ],
            ))
        views.append(CatalogModuleView(
            id=mod.id,
            name=mod.name,
            slug=mod.slug,
            icon=mod.icon,
            weight=mod.weight,
            base_repair_cost=mod.base_repair_cost,
            gamma=mod.gamma,
            active_count=sum(sg.active_count for sg in sub_groups),
            total_count=sum(sg.total_count for sg in sub_groups),
            sub_groups=sub_groups,
        ))
    return Outcome.success(views)


# ── Active toggles ──

async def set_parameter_active(
    db: AsyncSession, parameter_id: int, is_active: bool, changed_by: str,
) -> Outcome[dict]:
    try:
        param = await db.get(InspectionParameter, parameter_id)
        if param is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Parameter not found")

        if bool(param.is_active) != is_active:
            _audit(db, "ACTIVATED" if is_active else "DEACTIVATED", "inspection_parameters",
                   parameter_id, changed_by, "is_active", bool(param.is_active), is_active)
            param.is_active = is_active
            param.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("parameter_toggle_failed", parameter_id=parameter_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to toggle parameter status: {e}")

    logger.info("parameter_toggled", parameter_id=parameter_id, is_active=is_active, changed_by=changed_by)
    return Outcome.success({"id": parameter_id, "is_active": is_active})


async def _bulk_toggle(
    db: AsyncSession,
    sub_group_ids: list[int],
    is_active: bool,
    table_name: str,
    record_id: int,
    changed_by: str,
) -> int:
    result = await db.execute(
        update(InspectionParameter)
        .where(InspectionParameter.sub_group_id.in_(sub_group_ids))
        .values(is_active=is_active, modified_at=_now())
        .execution_options(synchronize_session=False)
    )
    _audit(db, "ACTIVATED" if is_active else "DEACTIVATED", table_name, record_id, changed_by,
           "is_active", None, is_active)
    return result.rowcount


async def set_sub_group_active(
    db: AsyncSession, sub_group_id: int, is_active: bool, changed_by: str,
) -> Outcome[dict]:
    try:
        sub_group = await db.get(InspectionSubGroup, sub_group_id)
        if sub_group is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Sub-group not found")

        affected = await _bulk_toggle(db, [sub_group_id], is_active, "inspection_sub_groups",
                                      sub_group_id, changed_by)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("sub_group_toggle_failed", sub_group_id=sub_group_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to toggle sub-group status: {e}")

    logger.info("sub_group_toggled", sub_group_id=sub_group_id, is_active=is_active, affected=affected)
    return Outcome.success({"sub_group_id": sub_group_id, "is_active": is_active, "affected_count": affected})


async def set_module_active(
    db: AsyncSession, module_id: int, is_active: bool, changed_by: str,
) -> Outcome[dict]:
    try:
        module = await db.get(InspectionModule, module_id)
        if module is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Module not found")

        sub_group_ids = list((await db.execute(
            select(InspectionSubGroup.id).where(InspectionSubGroup.module_id == module_id)
        )).scalars().all())
        affected = await _bulk_toggle(db, sub_group_ids, is_active, "inspection_modules",
                                      module_id, changed_by)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("module_toggle_failed", module_id=module_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to toggle module status: {e}")

    logger.info("module_toggled", module_id=module_id, is_active=is_active, affected=affected)
    return Outcome.success({"module_id": module_id, "is_active": is_active, "affected_count": affected})


# ── Edits ──

async def update_parameter(
    db: AsyncSession, parameter_id: int, changes: ParameterUpdate, changed_by: str,
) -> Outcome[dict]:
    updates = changes.model_dump(exclude_unset=True)
    if not updates:
        return Outcome.failure(ErrorKind.PRECONDITION_FAILED, "No fields to update")
    if "name" in updates and not (updates["name"] or "").strip():
        return Outcome.failure(ErrorKind.PRECONDITION_FAILED, "name is required")

    try:
        param = await db.get(InspectionParameter, parameter_id)
        if param is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Parameter not found")

        changed = []
        for field, new_val in updates.items():
            old_val = getattr(param, field)
            if old_val == new_val:
                continue
            _audit(db, "UPDATED", "inspection_parameters", parameter_id, changed_by, field, old_val, new_val)
            setattr(param, field, new_val)
            changed.append(field)

        if changed:
            param.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("parameter_update_failed", parameter_id=parameter_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to update parameter: {e}")

    logger.info("parameter_updated", parameter_id=parameter_id, fields=changed, changed_by=changed_by)
    return Outcome.success({"status": "updated", "parameter_id": parameter_id, "fields": changed})


async def update_module_weights(
    db: AsyncSession, weights: dict[str, float], changed_by: str,
) -> Outcome[dict]:
    """
    Replace module weights as one unit. The resulting set across every module
    must total 1.0 (within module_weight_tolerance).
    """
    tolerance = get_settings().module_weight_tolerance
    try:
        modules = {m.slug: m for m in (await db.execute(select(InspectionModule))).scalars().all()}

        unknown = sorted(set(weights) - set(modules))
        if unknown:
            return Outcome.failure(ErrorKind.NOT_FOUND, f"Unknown module slugs: {', '.join(unknown)}",
                                   unknown=unknown)

        proposed = {slug: weights.get(slug, m.weight) for slug, m in modules.items()}
        total = sum(proposed.values())
        if abs(total - 1.0) > tolerance:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"Module weights must sum to 1.0 (got {total:.4f})",
                total=round(total, 4),
            )

        for slug, new_weight in weights.items():
            module = modules[slug]
            if module.weight == new_weight:
                continue
            _audit(db, "UPDATED", "inspection_modules", module.id, changed_by, "weight", module.weight, new_weight)
            module.weight = new_weight
            module.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("module_weights_update_failed", error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to update module weights: {e}")

    logger.info("module_weights_updated", weights=proposed, changed_by=changed_by)
    return Outcome.success({"status": "updated", "weights": proposed})


async def update_module_costs(
    db: AsyncSession,
    module_id: int,
    base_repair_cost: Optional[float],
    gamma: Optional[float],
    changed_by: str,
) -> Outcome[dict]:
    updates = {k: v for k, v in (("base_repair_cost", base_repair_cost), ("gamma", gamma)) if v is not None}
    if not updates:
        return Outcome.failure(ErrorKind.PRECONDITION_FAILED, "No fields to update")

    try:
        module = await db.get(InspectionModule, module_id)
        if module is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Module not found")

        for field, new_val in updates.items():
            _audit(db, "UPDATED", "inspection_modules", module_id, changed_by, field, getattr(module, field), new_val)
            setattr(module, field, new_val)
        module.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("module_costs_update_failed", module_id=module_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to update module costs: {e}")

    logger.info("module_costs_updated", module_id=module_id, changed_by=changed_by, **updates)
    return Outcome.success({
        "status": "updated",
        "module_id": module_id,
        "base_repair_cost": module.base_repair_cost,
        "gamma": module.gamma,
    })


async def list_audit_log(db: AsyncSession, limit: int = 50) -> Outcome[list[dict]]:
    try:
        rows = (await db.execute(
            select(CatalogAuditLog).order_by(CatalogAuditLog.changed_at.desc(), CatalogAuditLog.id.desc()).limit(limit)
        )).scalars().all()
    except SQLAlchemyError as e:
        logger.error("audit_log_read_failed", error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to read audit log: {e}")

    return Outcome.success([
        {
            "id": r.id,
            "action": r.action,
            "table_name": r.table_name,
            "record_id": r.record_id,
            "field_name": r.field_name,
            "old_value": r.old_value,
            "new_value": r.new_value,
            "changed_by": r.changed_by,
            "changed_at": r.changed_at,
        }
        for r in rows
    ])
