# tests/test_api.py

"""HTTP surface: envelopes, role checks, scoping and error mapping."""

import json
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

from app.core.error_handlers import integrity_error_handler
from app.models.enums import UserRole

ADMIN = UserRole.LAB_ADMIN
TECH = UserRole.LAB_TECHNICIAN
VIEWER = UserRole.VIEWER


@pytest_asyncio.fixture(name="api_box")
async def api_box_fixture(client: AsyncClient, auth_headers, test_lab) -> dict:
    res = await client.post(
        "/api/v1/storage/boxes",
        json={"code": "API-BOX", "name": "API box", "box_type": "custom", "rows": 3, "columns": 3},
        headers=auth_headers(test_lab, ADMIN),
    )
    assert res.status_code == 201, res.text
    box = res.json()["data"]
    detail = await client.get(
        f"/api/v1/storage/boxes/{box['id']}", headers=auth_headers(test_lab, VIEWER)
    )
    box["positions"] = {p["position_label"]: p for p in detail.json()["data"]["positions"]}
    return box


def _sample_body(sample_type, barcode="API-001", **extra) -> dict:
    return {
        "barcode": barcode,
        "patient_code": "PAT-9",
        "sample_type_id": str(sample_type.id),
        "collection_datetime": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


# --- Auth ---

@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient):
    res = await client.get("/api/v1/samples")
    assert res.status_code == 401
    assert res.json()["success"] is False


@pytest.mark.asyncio
async def test_rejects_bad_token(client: AsyncClient):
    res = await client.get("/api/v1/samples", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_viewer_cannot_register(client: AsyncClient, auth_headers, test_lab, sample_type):
    res = await client.post(
        "/api/v1/samples", json=_sample_body(sample_type), headers=auth_headers(test_lab, VIEWER)
    )
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_box_creation_roles(client: AsyncClient, auth_headers, test_lab):
    body = {"code": "X", "name": "X"}
    res = await client.post("/api/v1/storage/boxes", json=body, headers=auth_headers(test_lab, VIEWER))
    assert res.status_code == 403

    res = await client.post("/api/v1/storage/boxes", json=body, headers=auth_headers(test_lab, TECH))
    assert res.status_code == 201, res.text
    assert res.json()["data"]["total_slots"] == 81


@pytest.mark.asyncio
async def test_technician_cannot_block_position(client: AsyncClient, auth_headers, test_lab, api_box):
    a1 = api_box["positions"]["A1"]
    res = await client.put(
        f"/api/v1/storage/positions/{a1['id']}/block",
        json={"is_blocked": True},
        headers=auth_headers(test_lab, TECH),
    )
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_user_without_lab_is_forbidden(client: AsyncClient, auth_headers):
    res = await client.get("/api/v1/samples", headers=auth_headers(None, VIEWER))
    assert res.status_code == 403
    assert res.json()["error"]["code"] == "FORBIDDEN"


# --- Samples ---

@pytest.mark.asyncio
async def test_register_move_discard_flow(client: AsyncClient, auth_headers, test_lab, sample_type, api_box):
    tech = auth_headers(test_lab, TECH)
    a1 = api_box["positions"]["A1"]

    res = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=tech)
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["success"] is True
    sample = body["data"]
    assert sample["status"] == "COLLECTED"

    res = await client.post(
        f"/api/v1/samples/{sample['id']}/move",
        json={"to_position_id": a1["id"], "reason": "Initial storage"},
        headers=tech,
    )
    assert res.status_code == 200, res.text
    assert res.json()["data"]["status"] == "STORED"
    assert res.json()["data"]["current_position_id"] == a1["id"]

    res = await client.post(
        f"/api/v1/samples/{sample['id']}/move",
        json={"to_position_id": a1["id"]},
        headers=tech,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_STATE"

    res = await client.post(
        f"/api/v1/samples/{sample['id']}/status",
        json={"status": "DISCARDED", "reason": "Hemolyzed"},
        headers=tech,
    )
    assert res.status_code == 200
    assert res.json()["data"]["current_position_id"] is None

    res = await client.get(f"/api/v1/samples/{sample['id']}/history", headers=tech)
    history = res.json()
    assert history["meta"]["total"] == 3
    assert [row["new_status"] for row in history["data"]] == ["DISCARDED", "STORED", "COLLECTED"]
    assert history["data"][1]["to_position_label"] == "A1"


@pytest.mark.asyncio
async def test_duplicate_barcode_is_409(client: AsyncClient, auth_headers, test_lab, sample_type):
    tech = auth_headers(test_lab, TECH)
    first = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=tech)
    assert first.status_code == 201
    again = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=tech)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_invalid_body_is_422(client: AsyncClient, auth_headers, test_lab, sample_type):
    res = await client.post(
        "/api/v1/samples",
        json=_sample_body(sample_type, barcode="", volume_ml=-1),
        headers=auth_headers(test_lab, TECH),
    )
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert {d["field"] for d in error["details"]} >= {"body -> barcode", "body -> volume_ml"}


@pytest.mark.asyncio
async def test_update_rejects_status_field(client: AsyncClient, auth_headers, test_lab, sample_type):
    tech = auth_headers(test_lab, TECH)
    created = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=tech)
    sample_id = created.json()["data"]["id"]

    res = await client.put(f"/api/v1/samples/{sample_id}", json={"status": "STORED"}, headers=tech)
    assert res.status_code == 422

    res = await client.put(f"/api/v1/samples/{sample_id}", json={"notes": "Lipemic"}, headers=tech)
    assert res.status_code == 200
    assert res.json()["data"]["notes"] == "Lipemic"


@pytest.mark.asyncio
async def test_list_and_lookup(client: AsyncClient, auth_headers, test_lab, other_lab, sample_type):
    tech = auth_headers(test_lab, TECH)
    for i in range(3):
        await client.post("/api/v1/samples", json=_sample_body(sample_type, f"LST-{i}"), headers=tech)

    res = await client.get("/api/v1/samples", params={"limit": 2}, headers=tech)
    body = res.json()
    assert body["meta"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert len(body["data"]) == 2

    res = await client.get("/api/v1/samples", params={"status": "STORED"}, headers=tech)
    assert res.json()["meta"]["total"] == 0

    # Barcode lookup crosses laboratories; get by id does not.
    outsider = auth_headers(other_lab, VIEWER)
    found = await client.get("/api/v1/samples/barcode/LST-1", headers=outsider)
    assert found.status_code == 200
    sample_id = found.json()["data"]["id"]
    hidden = await client.get(f"/api/v1/samples/{sample_id}", headers=outsider)
    assert hidden.status_code == 404

    missing = await client.get("/api/v1/samples/barcode/NOPE", headers=tech)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_expiring_route(client: AsyncClient, auth_headers, test_lab, sample_type):
    tech = auth_headers(test_lab, TECH)
    today = datetime.now(timezone.utc).date()
    await client.post(
        "/api/v1/samples",
        json=_sample_body(sample_type, "EXP-1", expiration_date=today.isoformat()),
        headers=tech,
    )
    res = await client.get("/api/v1/samples/expiring", params={"days": 1}, headers=tech)
    assert res.status_code == 200
    assert [s["barcode"] for s in res.json()["data"]] == ["EXP-1"]


@pytest.mark.asyncio
async def test_delete_requires_lab_admin(client: AsyncClient, auth_headers, test_lab, sample_type):
    tech = auth_headers(test_lab, TECH)
    created = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=tech)
    sample_id = created.json()["data"]["id"]

    denied = await client.delete(f"/api/v1/samples/{sample_id}", headers=tech)
    assert denied.status_code == 403

    res = await client.delete(f"/api/v1/samples/{sample_id}", headers=auth_headers(test_lab, ADMIN))
    assert res.status_code == 200
    assert res.json()["data"]["deleted"] is True

    gone = await client.get(f"/api/v1/samples/{sample_id}", headers=tech)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_unknown_sample_is_404(client: AsyncClient, auth_headers, test_lab):
    res = await client.get(f"/api/v1/samples/{uuid.uuid4()}", headers=auth_headers(test_lab, VIEWER))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "NOT_FOUND"


# --- Global admin ---

@pytest.mark.asyncio
async def test_global_admin_targets_lab_with_header(client: AsyncClient, auth_headers, test_lab, sample_type):
    unscoped = auth_headers(None, is_global_admin=True)
    res = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=unscoped)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    targeted = auth_headers(None, is_global_admin=True, target_lab=test_lab)
    res = await client.post("/api/v1/samples", json=_sample_body(sample_type), headers=targeted)
    assert res.status_code == 201
    assert res.json()["data"]["laboratory_id"] == str(test_lab.id)

    listed = await client.get("/api/v1/samples", headers=unscoped)
    assert listed.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_member_cannot_use_other_lab_header(client: AsyncClient, auth_headers, test_lab, other_lab):
    res = await client.get(
        "/api/v1/samples", headers=auth_headers(test_lab, VIEWER, target_lab=other_lab)
    )
    assert res.status_code == 403


# --- Storage ---

@pytest.mark.asyncio
async def test_box_detail_and_available(client: AsyncClient, auth_headers, test_lab, api_box):
    viewer = auth_headers(test_lab, VIEWER)
    assert list(api_box["positions"]) == ["A1", "A2", "A3", "B1", "B2", "B3", "C1", "C2", "C3"]
    assert api_box["total_slots"] == 9

    res = await client.get(
        "/api/v1/storage/positions/available", params={"box_id": api_box["id"]}, headers=viewer
    )
    assert res.json()["meta"]["total"] == 9


@pytest.mark.asyncio
async def test_block_and_occupancy(client: AsyncClient, auth_headers, test_lab, sample_type, api_box):
    admin = auth_headers(test_lab, ADMIN)
    b2 = api_box["positions"]["B2"]

    res = await client.put(
        f"/api/v1/storage/positions/{b2['id']}/block", json={"is_blocked": True}, headers=admin
    )
    assert res.status_code == 200
    assert res.json()["data"]["is_blocked"] is True

    created = await client.post(
        "/api/v1/samples",
        json=_sample_body(sample_type, current_position_id=b2["id"]),
        headers=admin,
    )
    assert created.status_code == 400

    await client.post(
        "/api/v1/samples",
        json=_sample_body(sample_type, "OCC-1", current_position_id=api_box["positions"]["A1"]["id"]),
        headers=admin,
    )
    res = await client.get("/api/v1/storage/occupancy", headers=admin)
    assert res.json()["data"] == {
        "total": 9, "occupied": 1, "blocked": 1, "available": 7, "percentage": 11,
    }


@pytest.mark.asyncio
async def test_create_box_with_bad_dimensions(client: AsyncClient, auth_headers, test_lab):
    res = await client.post(
        "/api/v1/storage/boxes",
        json={"code": "HUGE", "name": "Huge", "box_type": "custom", "rows": 30, "columns": 9},
        headers=auth_headers(test_lab, ADMIN),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_STATE"


# --- Error mapping ---

@pytest.mark.asyncio
async def test_commit_time_integrity_error_is_409():
    request = Request({
        "type": "http", "method": "POST", "path": "/api/v1/samples/x/move",
        "headers": [], "query_string": b"",
    })
    exc = IntegrityError("INSERT INTO sample_movement", {}, Exception("UNIQUE constraint failed"))

    res = await integrity_error_handler(request, exc)

    assert res.status_code == 409
    assert json.loads(res.body) == {
        "success": False,
        "error": {
            "code": "CONFLICT",
            "message": "The record was changed by another request. Reload and retry.",
        },
    }


@pytest.mark.asyncio
async def test_box_type_and_grid_must_agree(client: AsyncClient, auth_headers, test_lab):
    res = await client.post(
        "/api/v1/storage/boxes",
        json={"code": "R96", "name": "Rack", "box_type": "rack_96", "rows": 9, "columns": 9},
        headers=auth_headers(test_lab, ADMIN),
    )
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"
