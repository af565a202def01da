"""
HTTP surface: routing, auth dependencies and Outcome → status mapping.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from app.core.auth import ADMIN_ROLE, verify_token
from app.main import app
from app.models.database import get_db

TECHNICIAN = {"sub": "tech-1", "realm_access": {"roles": ["technician"]}}
ADMIN = {"sub": "admin-1", "realm_access": {"roles": [ADMIN_ROLE]}}

PETROL_MANUAL = {
    "vehicle_reg_number": "KA01AB1234",
    "vehicle_make": "Maruti",
    "vehicle_model": "Swift",
    "vehicle_year": 2019,
    "fuel_type": "Petrol",
    "transmission_type": "Manual",
}


@pytest.fixture
async def client(session_factory, catalog):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[verify_token] = lambda: TECHNICIAN
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _batch(catalog, answers):
    return {"responses": [{"parameter_id": catalog[n], "selected_option": o} for n, o in answers.items()]}


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestParameters:
    async def test_applicable_checklist(self, client):
        resp = await client.get("/v1/parameters", params={"fuel_type": "Petrol", "transmission_type": "Manual"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["total_params"] == 3
        assert [m["slug"] for m in body["modules"]] == ["engine_system", "paint_panel"]

    async def test_unknown_fuel_type_rejected(self, client):
        resp = await client.get("/v1/parameters", params={"fuel_type": "Steam"})
        assert resp.status_code == 422


class TestLifecycle:

    async def test_create_answer_complete_certify_verify(self, client, catalog):
        created = await client.post("/v1/inspections", json=PETROL_MANUAL)
        assert created.status_code == 201
        inspection_id = created.json()["id"]
        assert created.json()["total_applicable_params"] == 3

        saved = await client.put(
            f"/v1/inspections/{inspection_id}/responses/batch", json=_batch(catalog, {1: 1, 2: 2, 5: 3}),
        )
        assert saved.status_code == 200
        assert saved.json()["total_answered_params"] == 3

        completed = await client.post(f"/v1/inspections/{inspection_id}/complete")
        assert completed.status_code == 200
        assert completed.json()["score"]["vri"] == 0.44
        assert completed.json()["score"]["certification"] == "Verified"

        cert = await client.post(f"/v1/inspections/{inspection_id}/certificate")
        assert cert.status_code == 200
        number = cert.json()["certificate_number"]
        assert number.startswith("MTP-") and number.endswith("-00001")

        app.dependency_overrides.pop(verify_token)
        verified = await client.get(f"/v1/certificates/verify/{number}")
        assert verified.status_code == 200
        assert verified.json()["is_expired"] is False
        assert verified.json()["vehicle"]["registration_number"] == "KA01AB1234"

        app.dependency_overrides[verify_token] = lambda: TECHNICIAN
        detail = await client.get(f"/v1/inspections/{inspection_id}")
        assert detail.json()["status"] == "certified"
        assert detail.json()["certificate"]["certificate_number"] == number

    async def test_single_answer(self, client, catalog):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]

        resp = await client.put(
            f"/v1/inspections/{inspection_id}/responses/{catalog[1]}",
            json={"selected_option": 3, "notes": "Dark oil"},
        )

        assert resp.status_code == 200
        assert resp.json()["severity_score"] == 0.55

    async def test_inspection_photos(self, client):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]
        photo = {"file_path": "uploads/front.jpg", "file_name": "front.jpg"}

        resp = await client.post(f"/v1/inspections/{inspection_id}/vehicle-photo", json=photo)
        missing = await client.post("/v1/inspections/404/inspector-photo", json=photo)

        assert resp.status_code == 200
        assert resp.json() == {"inspection_id": inspection_id, "kind": "vehicle", "file_path": "uploads/front.jpg"}
        assert missing.status_code == 404
        detail = await client.get(f"/v1/inspections/{inspection_id}")
        assert detail.json()["vehicle_photo_path"] == "uploads/front.jpg"
        assert detail.json()["inspector_photo_path"] is None

    async def test_technician_taken_from_token(self, client):
        await client.post("/v1/inspections", json=PETROL_MANUAL)

        listed = await client.get("/v1/inspections", params={"technician_id": "tech-1"})

        assert listed.json()["total"] == 1
        assert listed.json()["inspections"][0]["technician_id"] == "tech-1"


class TestErrorMapping:

    async def test_incomplete_answers_conflict(self, client):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]

        resp = await client.post(f"/v1/inspections/{inspection_id}/complete")

        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["kind"] == "PRECONDITION_FAILED"
        assert detail["unanswered_count"] == 3

    async def test_undefined_option_conflict(self, client, catalog):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]

        resp = await client.put(
            f"/v1/inspections/{inspection_id}/responses/{catalog[2]}", json={"selected_option": 5},
        )

        assert resp.status_code == 409

    async def test_option_out_of_range_is_validation_error(self, client, catalog):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]

        resp = await client.put(
            f"/v1/inspections/{inspection_id}/responses/{catalog[1]}", json={"selected_option": 6},
        )

        assert resp.status_code == 422

    async def test_empty_batch_rejected(self, client):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]
        resp = await client.put(f"/v1/inspections/{inspection_id}/responses/batch", json={"responses": []})
        assert resp.status_code == 422

    async def test_unknown_inspection(self, client):
        resp = await client.get("/v1/inspections/4040")
        assert resp.status_code == 404
        assert resp.json()["detail"]["kind"] == "NOT_FOUND"

    async def test_certificate_before_scoring(self, client):
        inspection_id = (await client.post("/v1/inspections", json=PETROL_MANUAL)).json()["id"]
        resp = await client.post(f"/v1/inspections/{inspection_id}/certificate")
        assert resp.status_code == 409

    async def test_unknown_certificate(self, client):
        resp = await client.get("/v1/certificates/verify/MTP-20260101-00009")
        assert resp.status_code == 404


class TestAdmin:

    async def test_technician_forbidden(self, client):
        resp = await client.get("/v1/admin/catalog")
        assert resp.status_code == 403

    async def test_catalog_for_admin(self, client):
        app.dependency_overrides[verify_token] = lambda: ADMIN

        resp = await client.get("/v1/admin/catalog")

        assert resp.status_code == 200
        assert [m["total_count"] for m in resp.json()] == [4, 2]

    async def test_toggle_then_audit(self, client, catalog):
        app.dependency_overrides[verify_token] = lambda: ADMIN

        resp = await client.patch(f"/v1/admin/parameters/{catalog[4]}/status", json={"is_active": True})
        assert resp.status_code == 200

        audit = (await client.get("/v1/admin/audit")).json()
        assert audit[0]["changed_by"] == "admin-1"
        assert audit[0]["action"] == "ACTIVATED"

    async def test_weights_not_summing_to_one(self, client):
        app.dependency_overrides[verify_token] = lambda: ADMIN

        resp = await client.put("/v1/admin/modules/weights", json={"weights": {"engine_system": 0.9}})

        assert resp.status_code == 409
        assert resp.json()["detail"]["total"] == 1.3

    async def test_empty_parameter_update(self, client, catalog):
        app.dependency_overrides[verify_token] = lambda: ADMIN
        resp = await client.put(f"/v1/admin/parameters/{catalog[1]}", json={})
        assert resp.status_code == 400
