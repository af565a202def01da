"""
Applicability Resolver

Filters the parameter catalog down to what applies to one vehicle:
  - parameter must be active
  - fuel filter AND transmission filter must both match

A filter matches when it is empty, "All" (any case), or a comma-separated
allow-list containing the vehicle value (trimmed, case-insensitive).
A missing vehicle value matches everything.

Sub-groups and modules left with no parameters are dropped.
Pure read; no side effects.
"""
from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.catalog import InspectionModule, InspectionParameter, InspectionSubGroup
from app.schemas.catalog import ApplicableModule, ApplicableParameter, ApplicableSubGroup


def matches_filter(filter_value: Optional[str], vehicle_value: Optional[str]) -> bool:
    if not filter_value or filter_value.strip().lower() == "all":
        return True
    if not vehicle_value:
        return True

    allowed = [f.strip().lower() for f in filter_value.split(",")]
    return vehicle_value.strip().lower() in allowed


def is_applicable(
    parameter: InspectionParameter,
    fuel_type: Optional[str],
    transmission_type: Optional[str],
) -> bool:
    return (
        bool(parameter.is_active)
        and matches_filter(parameter.fuel_filter, fuel_type)
        and matches_filter(parameter.transmission_filter, transmission_type)
    )


def option_slots(
    labels: Optional[Sequence[Optional[str]]],
    scores: Optional[Sequence[Optional[float]]],
) -> tuple[list[Optional[str]], list[Optional[float]]]:
    """
    Pair labels with scores by slot and drop trailing empty slots. Interior
    gaps stay as None so position i is still option number i + 1.
    """
    labels, scores = list(labels or []), list(scores or [])
    width = max(len(labels), len(scores))
    labels += [None] * (width - len(labels))
    scores += [None] * (width - len(scores))
    while width and not labels[width - 1] and scores[width - 1] is None:
        width -= 1
    return [label or None for label in labels[:width]], scores[:width]


def _to_parameter(p: InspectionParameter) -> ApplicableParameter:
    options, scores = option_slots(p.option_labels, p.option_scores)
    return ApplicableParameter(
        id=p.id,
        param_number=p.param_number,
        name=p.name,
        detail=p.detail,
        input_type=p.input_type,
        options=options,
        scores=scores,
        option_labels=p.option_labels,
        option_scores=p.option_scores,
        is_red_flag=bool(p.is_red_flag),
        weightage=p.weightage if p.weightage is not None else 1.0,
        sort_order=p.sort_order or 0,
    )


def filter_catalog(
    modules: Sequence[InspectionModule],
    fuel_type: Optional[str],
    transmission_type: Optional[str],
) -> list[ApplicableModule]:
    """Restrict a loaded Module → Sub-Group → Parameter tree to one vehicle."""
    result: list[ApplicableModule] = []

    for mod in sorted(modules, key=lambda m: m.sort_order or 0):
        sub_groups: list[ApplicableSubGroup] = []
        for sg in sorted(mod.sub_groups, key=lambda s: s.sort_order or 0):
            params = [
                _to_parameter(p)
                for p in sorted(sg.parameters, key=lambda p: (p.sort_order or 0, p.param_number))
                if is_applicable(p, fuel_type, transmission_type)
            ]
            if not params:
                continue
            sub_groups.append(ApplicableSubGroup(
                id=sg.id,
                name=sg.name,
                sort_order=sg.sort_order or 0,
                check_count=sg.check_count or 0,
                parameters=params,
            ))

        total = sum(len(sg.parameters) for sg in sub_groups)
        if total == 0:
            continue

        result.append(ApplicableModule(
            id=mod.id,
            name=mod.name,
            slug=mod.slug,
            icon=mod.icon,
            weight=mod.weight,
            sort_order=mod.sort_order or 0,
            total_params=total,
            sub_groups=sub_groups,
        ))

    return result


def count_parameters(modules: Sequence[ApplicableModule]) -> int:
    return sum(m.total_params for m in modules)


async def load_catalog(db: AsyncSession) -> list[InspectionModule]:
    stmt = (
        select(InspectionModule)
        .options(
            selectinload(InspectionModule.sub_groups)
            .selectinload(InspectionSubGroup.parameters)
        )
        .order_by(InspectionModule.sort_order)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def resolve_applicable_parameters(
    db: AsyncSession,
    fuel_type: Optional[str],
    transmission_type: Optional[str],
) -> list[ApplicableModule]:
    modules = await load_catalog(db)
    return filter_catalog(modules, fuel_type, transmission_type)
