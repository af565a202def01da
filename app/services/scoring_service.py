"""
Scoring service: loads an inspection's frozen responses and the module
scoring parameters, runs the pure engine, and upserts the Score row.

Re-running on the same inspection overwrites the previous Score.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.metrics import INSPECTIONS_SCORED, SCORING_DURATION
from app.models.catalog import InspectionModule
from app.models.inspection import (
    SLUG_TO_RISK_COLUMN,
    Inspection,
    InspectionResponse,
    InspectionScore,
)
from app.schemas.inspection_response import InspectionStatus, ScoreResult
from app.scoring.engine import ModuleSpec, ScoredAnswer, evaluate
from app.services.outcome import ErrorKind, Outcome

logger = structlog.get_logger()

SCORABLE_STATUSES = {InspectionStatus.COMPLETED.value, InspectionStatus.SCORED.value}


async def calculate_scores(db: AsyncSession, inspection_id: int) -> Outcome[ScoreResult]:
    """Score a completed inspection and persist the result (idempotent upsert)."""
    t0 = time.perf_counter()
    try:
        inspection = await db.get(Inspection, inspection_id)
        if inspection is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")
        if inspection.status not in SCORABLE_STATUSES:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"Inspection must be completed before scoring (status: {inspection.status})",
                status=inspection.status,
            )

        rows = (await db.execute(
            select(InspectionResponse, InspectionModule)
            .join(InspectionModule, InspectionModule.id == InspectionResponse.module_id)
            .where(InspectionResponse.inspection_id == inspection_id)
        )).all()

        if not rows:
            return Outcome.failure(ErrorKind.PRECONDITION_FAILED, "No responses found for this inspection")

        modules: dict[str, ModuleSpec] = {}
        answers: list[ScoredAnswer] = []
        for response, module in rows:
            modules.setdefault(module.slug, ModuleSpec(
                slug=module.slug,
                name=module.name,
                weight=float(module.weight or 0.0),
                base_repair_cost=float(module.base_repair_cost or 0.0),
                gamma=float(module.gamma if module.gamma is not None else 1.0),
            ))
            answers.append(ScoredAnswer(
                module_slug=module.slug,
                param_number=response.param_number,
                param_name=response.parameter_name,
                severity_score=response.severity_score,
                is_red_flag=bool(response.is_red_flag),
            ))

        try:
            result = evaluate(answers, modules)
        except ValueError as e:
            return Outcome.failure(ErrorKind.PRECONDITION_FAILED, str(e))

        await _upsert_score(db, inspection_id, result)
        await db.commit()

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("scoring_store_error", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to calculate scores: {e}")

    SCORING_DURATION.observe(time.perf_counter() - t0)
    INSPECTIONS_SCORED.labels(certification=result.certification.value).inc()
    logger.info(
        "scoring_complete",
        inspection_id=inspection_id,
        vri=result.vri,
        rating=result.rating,
        certification=result.certification.value,
        has_red_flags=result.has_red_flags,
        total_repair_cost=result.total_repair_cost,
    )
    return Outcome.success(result)


async def _upsert_score(db: AsyncSession, inspection_id: int, result: ScoreResult) -> InspectionScore:
    existing = (await db.execute(
        select(InspectionScore).where(InspectionScore.inspection_id == inspection_id)
    )).scalar_one_or_none()

    score = existing or InspectionScore(inspection_id=inspection_id)

    for column in SLUG_TO_RISK_COLUMN.values():
        setattr(score, column, None)
    for slug, risk in result.module_risks.items():
        column = SLUG_TO_RISK_COLUMN.get(slug)
        if column:
            setattr(score, column, risk)

    score.module_risks_json = dict(result.module_risks)
    score.vri = result.vri
    score.rating = result.rating
    score.certification = result.certification.value
    score.has_red_flags = result.has_red_flags
    score.red_flag_params = [rf.model_dump() for rf in result.red_flag_params] or None
    score.total_repair_cost = result.total_repair_cost
    score.repair_cost_breakdown = {slug: c.model_dump() for slug, c in result.repair_cost_breakdown.items()}

    if existing is None:
        db.add(score)
    else:
        score.modified_at = datetime.now(timezone.utc)
    return score


def score_from_row(score: InspectionScore) -> ScoreResult:
    """Rebuild the ScoreResult view from a persisted Score row."""
    return ScoreResult(
        vri=score.vri,
        rating=score.rating,
        certification=score.certification,
        has_red_flags=bool(score.has_red_flags),
        red_flag_params=score.red_flag_params or [],
        total_repair_cost=score.total_repair_cost or 0.0,
        repair_cost_breakdown=score.repair_cost_breakdown or {},
        module_risks=score.module_risks_json or {},
    )
