"""
Lifecycle tests against an in-memory database: create → answer → complete → score.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.inspection import Inspection, InspectionResponse, InspectionScore
from app.schemas.catalog import ParameterUpdate
from app.schemas.inspection_request import BatchResponseItem, InspectionPhotoKind, PhotoReference
from app.schemas.inspection_response import CertificationTier, InspectionStatus
from app.services import catalog_service, inspection_service, scoring_service
from app.services.outcome import ErrorKind, Outcome

# Petrol/Manual snapshot: #1, #2, #5. These answers give module risks 0.2 / 0.8.
EXAMPLE_ANSWERS = {1: 1, 2: 2, 5: 3}


async def _create(db, vehicle, technician_id="tech-1"):
    outcome = await inspection_service.create_inspection(db, vehicle, technician_id=technician_id)
    assert outcome.ok, outcome.error
    return outcome.value


async def _answer(db, inspection_id, catalog, answers):
    items = [BatchResponseItem(parameter_id=catalog[n], selected_option=o) for n, o in answers.items()]
    outcome = await inspection_service.save_batch(db, inspection_id, items)
    assert outcome.ok, outcome.error
    return outcome.value


async def _response_row(db, inspection_id, parameter_id):
    return (await db.execute(
        select(InspectionResponse)
        .where(InspectionResponse.inspection_id == inspection_id, InspectionResponse.parameter_id == parameter_id)
        .execution_options(populate_existing=True)
    )).scalar_one()


class TestCreate:

    async def test_snapshot_matches_applicable_parameters(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        assert created.status == InspectionStatus.IN_PROGRESS
        assert created.total_applicable_params == 3

        rows = (await db.execute(
            select(InspectionResponse).where(InspectionResponse.inspection_id == created.id)
        )).scalars().all()
        assert sorted(r.parameter_id for r in rows) == sorted([catalog[1], catalog[2], catalog[5]])
        assert all(r.selected_option is None and r.severity_score is None for r in rows)

    async def test_snapshot_copies_catalog_fields(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        knocking = await _response_row(db, created.id, catalog[2])
        assert knocking.param_number == 2
        assert knocking.parameter_name == "Engine Knocking"
        assert knocking.is_red_flag is True
        assert knocking.option_scores == [0, 0.4, 0.75, 1.0, None]

    async def test_records_vehicle_and_technician(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual, technician_id="tech-42")

        inspection = await db.get(Inspection, created.id)
        assert inspection.technician_id == "tech-42"
        assert inspection.vehicle_reg_number == "KA01AB1234"
        assert inspection.fuel_type == "Petrol"
        assert inspection.started_at is not None
        assert len(inspection.uuid) == 36

    async def test_no_applicable_parameters_rejected(self, db, catalog, petrol_manual, session_factory):
        async with session_factory() as admin:
            for module_id in (1, 2):
                await catalog_service.set_module_active(admin, module_id, False, "admin")

        outcome = await inspection_service.create_inspection(db, petrol_manual)

        assert not outcome.ok
        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert (await db.execute(select(func.count(Inspection.id)))).scalar_one() == 0


class TestSaveResponse:

    async def test_severity_derived_from_option(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        outcome = await inspection_service.save_response(db, created.id, catalog[1], 4)

        assert outcome.ok
        assert outcome.value.severity_score == 0.80
        assert outcome.value.total_answered_params == 1
        assert (await _response_row(db, created.id, catalog[1])).severity_score == 0.80

    async def test_resave_same_option_is_idempotent(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        await inspection_service.save_response(db, created.id, catalog[1], 2)
        again = await inspection_service.save_response(db, created.id, catalog[1], 2)
        changed = await inspection_service.save_response(db, created.id, catalog[1], 3)

        assert again.value.total_answered_params == 1
        assert changed.value.total_answered_params == 1
        assert changed.value.severity_score == 0.55

    async def test_clearing_an_answer_decrements(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await inspection_service.save_response(db, created.id, catalog[1], 2)

        cleared = await inspection_service.save_response(db, created.id, catalog[1], None)

        assert cleared.ok
        assert cleared.value.total_answered_params == 0
        assert cleared.value.severity_score is None

    async def test_undefined_option_rejected(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        outcome = await inspection_service.save_response(db, created.id, catalog[2], 5)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert (await _response_row(db, created.id, catalog[2])).selected_option is None

    async def test_parameter_outside_snapshot_rejected(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        outcome = await inspection_service.save_response(db, created.id, catalog[3], 1)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert outcome.details["parameter_id"] == catalog[3]

    async def test_unknown_inspection(self, db, catalog):
        outcome = await inspection_service.save_response(db, 999, catalog[1], 1)
        assert outcome.kind == ErrorKind.NOT_FOUND

    async def test_notes_kept_when_omitted_and_cleared_when_empty(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        await inspection_service.save_response(db, created.id, catalog[1], 2, notes="Oil slightly dark")
        await inspection_service.save_response(db, created.id, catalog[1], 3)
        assert (await _response_row(db, created.id, catalog[1])).notes == "Oil slightly dark"

        await inspection_service.save_response(db, created.id, catalog[1], 3, notes="")
        assert (await _response_row(db, created.id, catalog[1])).notes is None

    async def test_snapshot_survives_catalog_edits(self, db, catalog, petrol_manual, session_factory):
        created = await _create(db, petrol_manual)

        async with session_factory() as admin:
            await catalog_service.update_parameter(admin, catalog[1], ParameterUpdate(score_4=0.95), "admin")
            await catalog_service.set_parameter_active(admin, catalog[1], False, "admin")

        outcome = await inspection_service.save_response(db, created.id, catalog[1], 4)

        assert outcome.ok
        assert outcome.value.severity_score == 0.80


class TestSaveBatch:

    async def test_applies_all_rows_and_skips_foreign_parameters(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        items = [
            BatchResponseItem(parameter_id=catalog[1], selected_option=1),
            BatchResponseItem(parameter_id=catalog[2], selected_option=2, notes="Faint tick"),
            BatchResponseItem(parameter_id=catalog[3], selected_option=1),
        ]

        outcome = await inspection_service.save_batch(db, created.id, items)

        assert outcome.ok
        assert outcome.value.updated == 2
        assert outcome.value.skipped_parameter_ids == [catalog[3]]
        assert outcome.value.total_answered_params == 2
        assert (await _response_row(db, created.id, catalog[2])).notes == "Faint tick"

    async def test_undefined_option_aborts_whole_batch(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        items = [
            BatchResponseItem(parameter_id=catalog[1], selected_option=1),
            BatchResponseItem(parameter_id=catalog[2], selected_option=5),
        ]

        outcome = await inspection_service.save_batch(db, created.id, items)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert (await _response_row(db, created.id, catalog[1])).selected_option is None
        inspection = await db.get(Inspection, created.id, populate_existing=True)
        assert inspection.total_answered_params == 0

    async def test_counter_matches_rows_after_mixed_writes(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        await _answer(db, created.id, catalog, {1: 1, 2: 1})
        await _answer(db, created.id, catalog, {2: 3, 5: 2})
        result = await inspection_service.save_batch(
            db, created.id, [BatchResponseItem(parameter_id=catalog[1], selected_option=None)],
        )

        answered_rows = (await db.execute(
            select(func.count(InspectionResponse.id)).where(
                InspectionResponse.inspection_id == created.id,
                InspectionResponse.selected_option.is_not(None),
            )
        )).scalar_one()
        assert result.value.total_answered_params == answered_rows == 2


class TestComplete:

    async def test_unanswered_count_reported(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, {1: 1, 2: 1})

        outcome = await inspection_service.complete_inspection(db, created.id)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert outcome.details["unanswered_count"] == 1
        inspection = await db.get(Inspection, created.id)
        assert inspection.status == InspectionStatus.IN_PROGRESS.value

    async def test_complete_scores_example_scenario(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)

        outcome = await inspection_service.complete_inspection(db, created.id)

        assert outcome.ok, outcome.error
        result = outcome.value
        assert result.status == InspectionStatus.SCORED
        assert result.score.vri == 0.44
        assert result.score.rating == round(5 * (1 - 0.44 ** 1.3), 2)
        assert result.score.certification == CertificationTier.VERIFIED
        assert result.score.module_risks == {"engine_system": 0.2, "paint_panel": 0.8}

        inspection = await db.get(Inspection, created.id)
        assert inspection.status == InspectionStatus.SCORED.value
        assert inspection.completed_at is not None

        score = (await db.execute(
            select(InspectionScore).where(InspectionScore.inspection_id == created.id)
        )).scalar_one()
        assert score.engine_risk == 0.2
        assert score.paint_risk == 0.8
        assert score.structural_risk is None
        assert score.total_repair_cost == result.score.total_repair_cost

    async def test_red_flag_decertifies(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, {1: 1, 2: 3, 5: 1})

        outcome = await inspection_service.complete_inspection(db, created.id)

        assert outcome.value.score.has_red_flags
        assert outcome.value.score.certification == CertificationTier.NOT_CERTIFIED
        assert outcome.value.score.red_flag_params[0].param_number == 2

    async def test_complete_twice_rejected(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)
        await inspection_service.complete_inspection(db, created.id)

        again = await inspection_service.complete_inspection(db, created.id)

        assert again.kind == ErrorKind.PRECONDITION_FAILED

    async def test_answers_locked_after_completion(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)
        await inspection_service.complete_inspection(db, created.id)

        outcome = await inspection_service.save_response(db, created.id, catalog[1], 5)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED
        assert outcome.details["status"] == InspectionStatus.SCORED.value


class TestScoringFailureAndRescore:

    async def test_scoring_failure_leaves_inspection_completed(self, db, catalog, petrol_manual, monkeypatch):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)

        async def failing_scores(db, inspection_id):
            return Outcome.failure(ErrorKind.STORE_ERROR, "connection reset")

        monkeypatch.setattr(scoring_service, "calculate_scores", failing_scores)
        outcome = await inspection_service.complete_inspection(db, created.id)

        assert outcome.kind == ErrorKind.SCORING_FAILED
        assert outcome.details["status"] == InspectionStatus.COMPLETED.value
        inspection = await db.get(Inspection, created.id)
        assert inspection.status == InspectionStatus.COMPLETED.value

        monkeypatch.undo()
        rescored = await inspection_service.rescore_inspection(db, created.id)

        assert rescored.ok, rescored.error
        assert rescored.value.status == InspectionStatus.SCORED
        assert rescored.value.score.vri == 0.44

    async def test_rescore_overwrites_single_score_row(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)
        first = await inspection_service.complete_inspection(db, created.id)

        second = await inspection_service.rescore_inspection(db, created.id)

        assert second.value.score == first.value.score
        count = (await db.execute(
            select(func.count(InspectionScore.id)).where(InspectionScore.inspection_id == created.id)
        )).scalar_one()
        assert count == 1

    async def test_rescore_requires_completion(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        outcome = await inspection_service.rescore_inspection(db, created.id)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED

    async def test_scoring_before_completion_rejected(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        outcome = await scoring_service.calculate_scores(db, created.id)

        assert outcome.kind == ErrorKind.PRECONDITION_FAILED

    async def test_get_score_not_found_before_scoring(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        assert (await inspection_service.get_score(db, created.id)).kind == ErrorKind.NOT_FOUND

    async def test_failed_refresh_keeps_scored_status(self, db, catalog, petrol_manual, monkeypatch):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)
        assert (await inspection_service.complete_inspection(db, created.id)).ok

        async def failing_scores(db, inspection_id):
            return Outcome.failure(ErrorKind.STORE_ERROR, "connection reset")

        monkeypatch.setattr(scoring_service, "calculate_scores", failing_scores)
        outcome = await inspection_service.rescore_inspection(db, created.id)

        assert outcome.kind == ErrorKind.STORE_ERROR
        assert outcome.details["status"] == InspectionStatus.SCORED.value
        assert "completed" not in outcome.error
        inspection = await db.get(Inspection, created.id, populate_existing=True)
        assert inspection.status == InspectionStatus.SCORED.value
        assert (await inspection_service.get_score(db, created.id)).value.vri == 0.44


class TestStoreFailures:
    """Operations against a database whose tables were never created."""

    @pytest.fixture
    async def bare_db(self):
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        async with async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)() as session:
            yield session
        await engine.dispose()

    async def test_get_score(self, bare_db):
        outcome = await inspection_service.get_score(bare_db, 1)

        assert outcome.kind == ErrorKind.STORE_ERROR
        assert "no such table" in outcome.error

    async def test_rescore(self, bare_db):
        outcome = await inspection_service.rescore_inspection(bare_db, 1)

        assert outcome.kind == ErrorKind.STORE_ERROR
        assert "no such table" in outcome.error

    async def test_set_inspection_photo(self, bare_db):
        outcome = await inspection_service.set_inspection_photo(
            bare_db, 1, InspectionPhotoKind.VEHICLE, PhotoReference(file_path="v.jpg", file_name="v.jpg"),
        )

        assert outcome.kind == ErrorKind.STORE_ERROR


class TestReadProjection:

    async def test_grouped_by_module_and_sub_group(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, {1: 2})

        detail = (await inspection_service.get_inspection(db, created.id)).value

        assert [m.slug for m in detail.modules] == ["engine_system", "paint_panel"]
        engine = detail.modules[0]
        assert engine.total_params == 2
        assert engine.answered_params == 1
        assert [sg.name for sg in engine.sub_groups] == ["Engine Block"]
        oil = engine.sub_groups[0].responses[0]
        assert oil.param_name == "Engine Oil Level"
        assert oil.options == ["Full", "Slightly Low", "Low", "Very Low", "Empty"]
        assert oil.selected_option == 2
        assert oil.severity_score == 0.25
        assert detail.total_answered_params == 1
        assert detail.score is None and detail.certificate is None

    async def test_includes_score_once_scored(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        await _answer(db, created.id, catalog, EXAMPLE_ANSWERS)
        await inspection_service.complete_inspection(db, created.id)

        detail = (await inspection_service.get_inspection(db, created.id)).value

        assert detail.status == InspectionStatus.SCORED
        assert detail.score.vri == 0.44

    async def test_photo_attached_to_response(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        response = await _response_row(db, created.id, catalog[5])

        photo = await inspection_service.attach_photo(
            db, created.id, response.id,
            PhotoReference(file_path="inspections/1/bonnet.jpg", file_name="bonnet.jpg", file_size=204800),
        )
        assert photo.ok

        detail = (await inspection_service.get_inspection(db, created.id)).value
        bonnet = detail.modules[1].sub_groups[0].responses[0]
        assert [p.file_name for p in bonnet.photos] == ["bonnet.jpg"]

    async def test_photo_for_other_inspection_rejected(self, db, catalog, petrol_manual):
        first = await _create(db, petrol_manual)
        second = await _create(db, petrol_manual)
        response = await _response_row(db, first.id, catalog[1])

        outcome = await inspection_service.attach_photo(
            db, second.id, response.id, PhotoReference(file_path="x.jpg", file_name="x.jpg"),
        )

        assert outcome.kind == ErrorKind.NOT_FOUND

    async def test_inspection_level_photos(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)

        inspector = await inspection_service.set_inspection_photo(
            db, created.id, InspectionPhotoKind.INSPECTOR,
            PhotoReference(file_path="uploads/selfie.jpg", file_name="selfie.jpg"),
        )
        await inspection_service.set_inspection_photo(
            db, created.id, InspectionPhotoKind.VEHICLE,
            PhotoReference(file_path="uploads/front.jpg", file_name="front.jpg"),
        )
        replaced = await inspection_service.set_inspection_photo(
            db, created.id, InspectionPhotoKind.VEHICLE,
            PhotoReference(file_path="uploads/front-2.jpg", file_name="front-2.jpg"),
        )

        assert inspector.value.kind == "inspector"
        assert replaced.value.file_path == "uploads/front-2.jpg"
        detail = (await inspection_service.get_inspection(db, created.id)).value
        assert detail.inspector_photo_path == "uploads/selfie.jpg"
        assert detail.vehicle_photo_path == "uploads/front-2.jpg"

    async def test_inspection_photo_for_unknown_inspection(self, db, catalog):
        outcome = await inspection_service.set_inspection_photo(
            db, 404, InspectionPhotoKind.INSPECTOR, PhotoReference(file_path="x.jpg", file_name="x.jpg"),
        )
        assert outcome.kind == ErrorKind.NOT_FOUND

    async def test_option_gaps_keep_labels_and_scores_aligned(self, db, catalog, petrol_manual):
        created = await _create(db, petrol_manual)
        oil = await _response_row(db, created.id, catalog[1])
        oil.option_labels = ["Full", None, "Low", "Very Low", None]
        oil.option_scores = [0, 0.3, 0.55, None, None]
        await db.commit()

        detail = (await inspection_service.get_inspection(db, created.id)).value
        view = detail.modules[0].sub_groups[0].responses[0]

        assert view.options == ["Full", None, "Low", "Very Low"]
        assert view.scores == [0, 0.3, 0.55, None]

    async def test_unknown_inspection(self, db, catalog):
        assert (await inspection_service.get_inspection(db, 404)).kind == ErrorKind.NOT_FOUND


class TestList:

    async def test_filters_and_pagination(self, db, catalog, petrol_manual, cng_automatic):
        a = await _create(db, petrol_manual, technician_id="tech-1")
        await _create(db, cng_automatic, technician_id="tech-1")
        await _create(db, petrol_manual, technician_id="tech-2")
        await _answer(db, a.id, catalog, EXAMPLE_ANSWERS)
        await inspection_service.complete_inspection(db, a.id)

        mine = (await inspection_service.list_inspections(db, technician_id="tech-1")).value
        assert mine.total == 2

        scored = (await inspection_service.list_inspections(db, status=InspectionStatus.SCORED)).value
        assert [i.id for i in scored.inspections] == [a.id]
        assert scored.inspections[0].certification == CertificationTier.VERIFIED

        page = (await inspection_service.list_inspections(db, page=2, limit=2)).value
        assert page.total == 3
        assert page.total_pages == 2
        assert len(page.inspections) == 1

    @pytest.mark.parametrize("page", [1, 3])
    async def test_empty(self, db, catalog, page):
        result = (await inspection_service.list_inspections(db, page=page)).value
        assert result.total == 0
        assert result.inspections == []
        assert result.total_pages == 0
