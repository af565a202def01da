"""
Inspection Lifecycle Manager

State machine (forward only):
    in_progress → completed → scored → certified

  - create:     resolve applicable parameters, freeze them as empty answer slots
  - save:       record answers; severity derived from the frozen option scores
  - complete:   require full coverage, mark completed, score, mark scored
  - rescore:    re-run scoring for an inspection left completed-but-unscored

The answered counter is maintained by relative SQL increments issued in the
same transaction as the response row writes.
"""
from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.metrics import INSPECTIONS_CREATED, RESPONSES_SAVED
from app.models.inspection import Inspection, InspectionPhoto, InspectionResponse, InspectionScore
from app.schemas.certificate import CertificateResult
from app.schemas.inspection_request import BatchResponseItem, InspectionPhotoKind, PhotoReference, VehicleContext
from app.schemas.inspection_response import (
    BatchSaveResult,
    CompletionResult,
    InspectionCreated,
    InspectionDetail,
    InspectionPage,
    InspectionPhotoSet,
    InspectionStatus,
    InspectionSummary,
    ModuleView,
    PhotoOut,
    ResponseView,
    SavedResponse,
    ScoreResult,
    SubGroupView,
)
from app.services import scoring_service
from app.services.applicability import count_parameters, option_slots, resolve_applicable_parameters
from app.services.outcome import ErrorKind, Outcome

logger = structlog.get_logger()

ANSWERABLE_STATUSES = {InspectionStatus.DRAFT.value, InspectionStatus.IN_PROGRESS.value}


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════

async def create_inspection(
    db: AsyncSession,
    vehicle: VehicleContext,
    technician_id: Optional[str] = None,
) -> Outcome[InspectionCreated]:
    fuel_type = vehicle.fuel_type.value
    transmission_type = vehicle.transmission_type.value

    try:
        modules = await resolve_applicable_parameters(db, fuel_type, transmission_type)
        total = count_parameters(modules)
        if total == 0:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"No applicable parameters for fuel={fuel_type}, transmission={transmission_type}",
                fuel_type=fuel_type,
                transmission_type=transmission_type,
            )

        now = _now()
        inspection = Inspection(
            uuid=str(uuid.uuid4()),
            technician_id=technician_id,
            inspector_name=vehicle.inspector_name,
            vehicle_reg_number=vehicle.vehicle_reg_number,
            vehicle_make=vehicle.vehicle_make,
            vehicle_model=vehicle.vehicle_model,
            vehicle_year=vehicle.vehicle_year,
            fuel_type=fuel_type,
            transmission_type=transmission_type,
            odometer_km=vehicle.odometer_km,
            gps_latitude=vehicle.gps_latitude,
            gps_longitude=vehicle.gps_longitude,
            gps_address=vehicle.gps_address,
            status=InspectionStatus.IN_PROGRESS.value,
            total_applicable_params=total,
            total_answered_params=0,
            started_at=now,
            created_at=now,
        )
        db.add(inspection)
        await db.flush()

        # ── Frozen snapshot: one unanswered slot per applicable parameter ──
        db.add_all([
            InspectionResponse(
                inspection_id=inspection.id,
                parameter_id=p.id,
                module_id=mod.id,
                sub_group_id=sg.id,
                param_number=p.param_number,
                parameter_name=p.name,
                parameter_detail=p.detail,
                input_type=p.input_type,
                option_labels=list(p.option_labels),
                option_scores=list(p.option_scores),
                is_red_flag=p.is_red_flag,
                selected_option=None,
                severity_score=None,
                notes=None,
                created_at=now,
            )
            for mod in modules
            for sg in mod.sub_groups
            for p in sg.parameters
        ])
        await db.commit()

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("inspection_create_failed", error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to create inspection: {e}")

    INSPECTIONS_CREATED.inc()
    logger.info(
        "inspection_created",
        inspection_id=inspection.id,
        uuid=inspection.uuid,
        technician_id=technician_id,
        applicable_params=total,
        modules=len(modules),
    )
    return Outcome.success(InspectionCreated(
        id=inspection.id,
        uuid=inspection.uuid,
        status=InspectionStatus.IN_PROGRESS,
        total_applicable_params=total,
    ))


# ═══════════════════════════════════════════════════════════════
# Answers
# ═══════════════════════════════════════════════════════════════

def _severity_for(response: InspectionResponse, selected_option: Optional[int]) -> Optional[float]:
    """Severity from the frozen option scores. Raises ValueError for an undefined option."""
    if selected_option is None:
        return None
    scores = response.option_scores or []
    if not 1 <= selected_option <= len(scores) or scores[selected_option - 1] is None:
        raise ValueError(
            f"Option {selected_option} is not defined for parameter #{response.param_number}"
        )
    return float(scores[selected_option - 1])


def _apply_answer(
    response: InspectionResponse,
    selected_option: Optional[int],
    notes: Optional[str],
) -> int:
    """
    The only write path for selected_option / severity_score.
    Returns the answered-count delta (+1, -1 or 0).
    """
    severity = _severity_for(response, selected_option)

    was_answered = response.selected_option is not None
    is_answered = selected_option is not None

    response.selected_option = selected_option
    response.severity_score = severity
    if notes is not None:
        response.notes = notes or None
    response.modified_at = _now()

    if is_answered and not was_answered:
        return 1
    if was_answered and not is_answered:
        return -1
    return 0


async def _bump_answered(db: AsyncSession, inspection_id: int, delta: int) -> None:
    if delta == 0:
        return
    await db.execute(
        update(Inspection)
        .where(Inspection.id == inspection_id)
        .values(
            total_answered_params=Inspection.total_answered_params + delta,
            modified_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )


async def _answerable_inspection(db: AsyncSession, inspection_id: int) -> Outcome[Inspection]:
    inspection = await db.get(Inspection, inspection_id)
    if inspection is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")
    if inspection.status not in ANSWERABLE_STATUSES:
        return Outcome.failure(
            ErrorKind.PRECONDITION_FAILED,
            f"Answers are locked once an inspection is {inspection.status}",
            status=inspection.status,
        )
    return Outcome.success(inspection)


async def _answered_count(db: AsyncSession, inspection: Inspection) -> int:
    # the counter was bumped in SQL; reload it onto the identity-mapped row
    await db.refresh(inspection, attribute_names=["total_answered_params", "modified_at"])
    return inspection.total_answered_params


async def save_response(
    db: AsyncSession,
    inspection_id: int,
    parameter_id: int,
    selected_option: Optional[int],
    notes: Optional[str] = None,
) -> Outcome[SavedResponse]:
    try:
        found = await _answerable_inspection(db, inspection_id)
        if not found.ok:
            return found
        inspection = found.value

        response = (await db.execute(
            select(InspectionResponse).where(
                InspectionResponse.inspection_id == inspection_id,
                InspectionResponse.parameter_id == parameter_id,
            )
        )).scalar_one_or_none()

        if response is None:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"Parameter {parameter_id} is not part of this inspection",
                parameter_id=parameter_id,
            )

        try:
            delta = _apply_answer(response, selected_option, notes)
        except ValueError as e:
            await db.rollback()
            return Outcome.failure(ErrorKind.PRECONDITION_FAILED, str(e), parameter_id=parameter_id)

        await _bump_answered(db, inspection_id, delta)
        await db.commit()
        answered = await _answered_count(db, inspection)

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("response_save_failed", inspection_id=inspection_id, parameter_id=parameter_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to save response: {e}")

    RESPONSES_SAVED.labels(mode="single").inc()
    logger.debug(
        "response_saved",
        inspection_id=inspection_id,
        parameter_id=parameter_id,
        selected_option=selected_option,
        delta=delta,
    )
    return Outcome.success(SavedResponse(
        parameter_id=parameter_id,
        selected_option=response.selected_option,
        severity_score=response.severity_score,
        total_answered_params=answered,
    ))


async def save_batch(
    db: AsyncSession,
    inspection_id: int,
    items: Sequence[BatchResponseItem],
) -> Outcome[BatchSaveResult]:
    """
    All-or-nothing: every row update plus the single aggregate counter update
    commit together. Rows whose parameter is outside the snapshot are skipped.
    """
    try:
        found = await _answerable_inspection(db, inspection_id)
        if not found.ok:
            return found
        inspection = found.value

        parameter_ids = {item.parameter_id for item in items}
        rows = (await db.execute(
            select(InspectionResponse).where(
                InspectionResponse.inspection_id == inspection_id,
                InspectionResponse.parameter_id.in_(parameter_ids),
            )
        )).scalars().all()
        by_parameter = {r.parameter_id: r for r in rows}

        delta = 0
        updated = 0
        skipped: list[int] = []
        for item in items:
            response = by_parameter.get(item.parameter_id)
            if response is None:
                skipped.append(item.parameter_id)
                continue
            try:
                delta += _apply_answer(response, item.selected_option, item.notes)
            except ValueError as e:
                await db.rollback()
                return Outcome.failure(ErrorKind.PRECONDITION_FAILED, str(e), parameter_id=item.parameter_id)
            updated += 1

        await _bump_answered(db, inspection_id, delta)
        await db.commit()
        answered = await _answered_count(db, inspection)

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("batch_save_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to save batch responses: {e}")

    RESPONSES_SAVED.labels(mode="batch").inc(updated)
    logger.info(
        "batch_responses_saved",
        inspection_id=inspection_id,
        updated=updated,
        skipped=len(skipped),
        delta=delta,
    )
    return Outcome.success(BatchSaveResult(
        updated=updated,
        skipped_parameter_ids=skipped,
        total_answered_params=answered,
    ))


# ═══════════════════════════════════════════════════════════════
# Completion + scoring
# ═══════════════════════════════════════════════════════════════

async def complete_inspection(db: AsyncSession, inspection_id: int) -> Outcome[CompletionResult]:
    try:
        inspection = await db.get(Inspection, inspection_id)
        if inspection is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")

        if inspection.status != InspectionStatus.IN_PROGRESS.value:
            hint = " (use rescore)" if inspection.status == InspectionStatus.COMPLETED.value else ""
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"Inspection is already {inspection.status}{hint}",
                status=inspection.status,
            )

        unanswered = (await db.execute(
            select(func.count(InspectionResponse.id)).where(
                InspectionResponse.inspection_id == inspection_id,
                InspectionResponse.selected_option.is_(None),
            )
        )).scalar_one()

        if unanswered > 0:
            return Outcome.failure(
                ErrorKind.PRECONDITION_FAILED,
                f"{unanswered} parameters still unanswered",
                unanswered_count=unanswered,
            )

        now = _now()
        inspection.status = InspectionStatus.COMPLETED.value
        inspection.completed_at = now
        inspection.modified_at = now
        await db.commit()

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("inspection_complete_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to complete inspection: {e}")

    logger.info("inspection_completed", inspection_id=inspection_id)
    return await _score_and_advance(db, inspection)


async def rescore_inspection(db: AsyncSession, inspection_id: int) -> Outcome[CompletionResult]:
    """Explicit re-score for an inspection left `completed` (or to refresh a `scored` one)."""
    try:
        inspection = await db.get(Inspection, inspection_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("inspection_rescore_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to load inspection for re-scoring: {e}")

    if inspection is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")
    if inspection.status not in scoring_service.SCORABLE_STATUSES:
        return Outcome.failure(
            ErrorKind.PRECONDITION_FAILED,
            f"Only completed or scored inspections can be re-scored (status: {inspection.status})",
            status=inspection.status,
        )
    return await _score_and_advance(db, inspection)


async def _score_and_advance(db: AsyncSession, inspection: Inspection) -> Outcome[CompletionResult]:
    """
    Score, then move a `completed` inspection to `scored`. Failures report the
    status the row still holds: a failed first scoring leaves it `completed`
    (SCORING_FAILED, retry via rescore); a failed refresh of a `scored`
    inspection keeps the previous score and passes the cause's own kind through.
    """
    inspection_id = inspection.id
    prior_status = inspection.status

    scored = await scoring_service.calculate_scores(db, inspection_id)
    if not scored.ok:
        logger.error("scoring_failed", inspection_id=inspection_id, status=prior_status, error=scored.error)
        if prior_status == InspectionStatus.COMPLETED.value:
            return Outcome.failure(
                ErrorKind.SCORING_FAILED,
                f"Inspection completed but scoring failed: {scored.error}",
                status=prior_status,
                cause=scored.kind.value if scored.kind else None,
            )
        return Outcome.failure(
            scored.kind or ErrorKind.SCORING_FAILED,
            f"Re-scoring failed, previous score kept: {scored.error}",
            status=prior_status,
        )

    try:
        inspection.status = InspectionStatus.SCORED.value
        inspection.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("inspection_status_update_failed", inspection_id=inspection_id, error=str(e))
        if prior_status == InspectionStatus.COMPLETED.value:
            return Outcome.failure(
                ErrorKind.SCORING_FAILED,
                f"Inspection scored but status update failed: {e}",
                status=prior_status,
            )
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to update inspection: {e}", status=prior_status)

    return Outcome.success(CompletionResult(
        inspection_id=inspection_id,
        status=InspectionStatus.SCORED,
        score=scored.value,
    ))


async def get_score(db: AsyncSession, inspection_id: int) -> Outcome[ScoreResult]:
    try:
        score = (await db.execute(
            select(InspectionScore).where(InspectionScore.inspection_id == inspection_id)
        )).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("score_get_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to get score: {e}")

    if score is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Score not found for this inspection")
    return Outcome.success(scoring_service.score_from_row(score))


# ═══════════════════════════════════════════════════════════════
# Photos
# ═══════════════════════════════════════════════════════════════

async def attach_photo(
    db: AsyncSession,
    inspection_id: int,
    response_id: int,
    photo: PhotoReference,
) -> Outcome[PhotoOut]:
    try:
        response = await db.get(InspectionResponse, response_id)
        if response is None or response.inspection_id != inspection_id:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Response not found for this inspection")

        row = InspectionPhoto(
            response_id=response_id,
            file_path=photo.file_path,
            file_name=photo.file_name,
            file_size=photo.file_size,
        )
        db.add(row)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("photo_attach_failed", inspection_id=inspection_id, response_id=response_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to attach photo: {e}")

    logger.info("photo_attached", inspection_id=inspection_id, response_id=response_id, photo_id=row.id)
    return Outcome.success(_photo_out(row))


async def set_inspection_photo(
    db: AsyncSession,
    inspection_id: int,
    kind: InspectionPhotoKind,
    photo: PhotoReference,
) -> Outcome[InspectionPhotoSet]:
    """Record the inspector or vehicle overview photo; a new upload replaces the old path."""
    try:
        inspection = await db.get(Inspection, inspection_id)
        if inspection is None:
            return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")

        if kind == InspectionPhotoKind.INSPECTOR:
            inspection.inspector_photo_path = photo.file_path
        else:
            inspection.vehicle_photo_path = photo.file_path
        inspection.modified_at = _now()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("inspection_photo_failed", inspection_id=inspection_id, kind=kind.value, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to set {kind.value} photo: {e}")

    logger.info("inspection_photo_set", inspection_id=inspection_id, kind=kind.value)
    return Outcome.success(InspectionPhotoSet(inspection_id=inspection_id, kind=kind.value, file_path=photo.file_path))


def _photo_out(photo: InspectionPhoto) -> PhotoOut:
    return PhotoOut(
        id=photo.id,
        response_id=photo.response_id,
        file_path=photo.file_path,
        file_name=photo.file_name,
        file_size=photo.file_size,
    )


# ═══════════════════════════════════════════════════════════════
# Read projections
# ═══════════════════════════════════════════════════════════════

async def get_inspection(db: AsyncSession, inspection_id: int) -> Outcome[InspectionDetail]:
    try:
        inspection = (await db.execute(
            select(Inspection)
            .where(Inspection.id == inspection_id)
            .options(
                selectinload(Inspection.responses).selectinload(InspectionResponse.module),
                selectinload(Inspection.responses).selectinload(InspectionResponse.sub_group),
                selectinload(Inspection.responses).selectinload(InspectionResponse.photos),
                selectinload(Inspection.score),
                selectinload(Inspection.certificate),
            )
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error("inspection_get_failed", inspection_id=inspection_id, error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to get inspection: {e}")

    if inspection is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, "Inspection not found")

    return Outcome.success(InspectionDetail(
        id=inspection.id,
        uuid=inspection.uuid,
        technician_id=inspection.technician_id,
        inspector_name=inspection.inspector_name,
        vehicle_reg_number=inspection.vehicle_reg_number,
        vehicle_make=inspection.vehicle_make,
        vehicle_model=inspection.vehicle_model,
        vehicle_year=inspection.vehicle_year,
        fuel_type=inspection.fuel_type,
        transmission_type=inspection.transmission_type,
        odometer_km=inspection.odometer_km,
        gps_latitude=inspection.gps_latitude,
        gps_longitude=inspection.gps_longitude,
        gps_address=inspection.gps_address,
        inspector_photo_path=inspection.inspector_photo_path,
        vehicle_photo_path=inspection.vehicle_photo_path,
        status=inspection.status,
        total_applicable_params=inspection.total_applicable_params,
        total_answered_params=inspection.total_answered_params,
        started_at=inspection.started_at,
        completed_at=inspection.completed_at,
        modules=group_responses_by_module(inspection.responses),
        score=scoring_service.score_from_row(inspection.score) if inspection.score else None,
        certificate=_certificate_view(inspection.certificate) if inspection.certificate else None,
    ))


def group_responses_by_module(responses: Sequence[InspectionResponse]) -> list[ModuleView]:
    """Module → Sub-Group → Response, with answered/total recomputed from the rows."""
    modules: dict[int, dict] = {}

    for resp in responses:
        mod, sg = resp.module, resp.sub_group
        entry = modules.setdefault(mod.id, {"module": mod, "sub_groups": {}})
        sg_entry = entry["sub_groups"].setdefault(sg.id, {"sub_group": sg, "responses": []})
        sg_entry["responses"].append(resp)

    views: list[ModuleView] = []
    for entry in sorted(modules.values(), key=lambda e: e["module"].sort_order or 0):
        mod = entry["module"]
        sub_groups = []
        total = answered = 0
        for sg_entry in sorted(entry["sub_groups"].values(), key=lambda e: e["sub_group"].sort_order or 0):
            sg = sg_entry["sub_group"]
            rows = sorted(sg_entry["responses"], key=lambda r: r.param_number)
            total += len(rows)
            answered += sum(1 for r in rows if r.selected_option is not None)
            sub_groups.append(SubGroupView(
                id=sg.id,
                name=sg.name,
                sort_order=sg.sort_order or 0,
                responses=[_response_view(r) for r in rows],
            ))
        views.append(ModuleView(
            id=mod.id,
            name=mod.name,
            slug=mod.slug,
            icon=mod.icon,
            weight=mod.weight,
            sort_order=mod.sort_order or 0,
            total_params=total,
            answered_params=answered,
            sub_groups=sub_groups,
        ))
    return views


def _response_view(resp: InspectionResponse) -> ResponseView:
    options, scores = option_slots(resp.option_labels, resp.option_scores)
    return ResponseView(
        response_id=resp.id,
        parameter_id=resp.parameter_id,
        param_number=resp.param_number,
        param_name=resp.parameter_name,
        param_detail=resp.parameter_detail,
        input_type=resp.input_type,
        options=options,
        scores=scores,
        is_red_flag=bool(resp.is_red_flag),
        selected_option=resp.selected_option,
        severity_score=resp.severity_score,
        notes=resp.notes,
        photos=[_photo_out(p) for p in resp.photos],
    )


def _certificate_view(cert) -> CertificateResult:
    return CertificateResult(
        id=cert.id,
        inspection_id=cert.inspection_id,
        certificate_number=cert.certificate_number,
        qr_code_data=cert.qr_code_data,
        rating=cert.rating,
        certification=cert.certification,
        issued_at=cert.issued_at,
        expires_at=cert.expires_at,
    )


async def list_inspections(
    db: AsyncSession,
    technician_id: Optional[str] = None,
    status: Optional[InspectionStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Outcome[InspectionPage]:
    page = max(page, 1)
    limit = max(limit, 1)

    filters = []
    if technician_id:
        filters.append(Inspection.technician_id == technician_id)
    if status:
        filters.append(Inspection.status == InspectionStatus(status).value)

    try:
        total = (await db.execute(
            select(func.count(Inspection.id)).where(*filters)
        )).scalar_one()
        rows = (await db.execute(
            select(Inspection)
            .where(*filters)
            .options(selectinload(Inspection.score))
            .order_by(Inspection.created_at.desc(), Inspection.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .execution_options(populate_existing=True)
        )).scalars().all()
    except SQLAlchemyError as e:
        logger.error("inspection_list_failed", error=str(e))
        return Outcome.failure(ErrorKind.STORE_ERROR, f"Failed to list inspections: {e}")

    return Outcome.success(InspectionPage(
        inspections=[
            InspectionSummary(
                id=i.id,
                uuid=i.uuid,
                technician_id=i.technician_id,
                vehicle_reg_number=i.vehicle_reg_number,
                vehicle_make=i.vehicle_make,
                vehicle_model=i.vehicle_model,
                status=i.status,
                total_applicable_params=i.total_applicable_params,
                total_answered_params=i.total_answered_params,
                rating=i.score.rating if i.score else None,
                certification=i.score.certification if i.score else None,
                has_red_flags=bool(i.score.has_red_flags) if i.score else None,
                total_repair_cost=i.score.total_repair_cost if i.score else None,
                created_at=i.created_at,
            )
            for i in rows
        ],
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if total else 0,
    ))
