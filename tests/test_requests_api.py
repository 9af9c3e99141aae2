import pytest
from bson import ObjectId
from httpx import AsyncClient


def request_body(**overrides) -> dict:
    body = {
        "title": "Deep Learning",
        "authors": "Goodfellow, Bengio, Courville",
        "publicationYear": 2016,
        "description": "Standard graduate textbook on deep learning.",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_submit_request(client: AsyncClient, student, student_headers):
    response = await client.post("/api/v1/requests", json=request_body(), headers=student_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["requestedBy"] == student.id
    assert data["authors"] == ["Goodfellow", "Bengio", "Courville"]


@pytest.mark.asyncio
async def test_submit_request_validation(client: AsyncClient, student_headers, requests_repo):
    response = await client.post(
        "/api/v1/requests", json=request_body(description="too short"), headers=student_headers
    )

    assert response.status_code == 422
    assert requests_repo.docs == {}


@pytest.mark.asyncio
async def test_my_requests(client: AsyncClient, student_headers, other_student_headers):
    await client.post("/api/v1/requests", json=request_body(), headers=student_headers)
    await client.post("/api/v1/requests", json=request_body(title="Pattern Recognition"), headers=other_student_headers)

    response = await client.get("/api/v1/requests/my", headers=student_headers)

    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert response.json()["data"][0]["title"] == "Deep Learning"


@pytest.mark.asyncio
async def test_all_requests_for_staff(client: AsyncClient, student, student_headers, faculty_headers):
    await client.post("/api/v1/requests", json=request_body(), headers=student_headers)

    forbidden = await client.get("/api/v1/requests", headers=student_headers)
    response = await client.get("/api/v1/requests", params={"status": "pending"}, headers=faculty_headers)

    assert forbidden.status_code == 403
    assert response.status_code == 200
    assert response.json()["data"][0]["requester"]["email"] == student.email


@pytest.mark.asyncio
async def test_approve_request_with_notes(client: AsyncClient, student_headers, admin_headers):
    created = await client.post("/api/v1/requests", json=request_body(), headers=student_headers)
    request_id = created.json()["_id"]

    response = await client.patch(
        f"/api/v1/requests/{request_id}/status",
        json={"status": "approved", "actionNotes": "  Ordered from the publisher. "},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["actionNotes"] == "Ordered from the publisher."


@pytest.mark.asyncio
async def test_fulfil_request_links_material(client: AsyncClient, materials, student_headers, faculty_headers):
    material = materials.add(title="Deep Learning", total_copies=1)
    created = await client.post("/api/v1/requests", json=request_body(), headers=student_headers)
    request_id = created.json()["_id"]

    response = await client.patch(
        f"/api/v1/requests/{request_id}/status",
        json={"status": "fulfilled", "fulfilledMaterialId": material.id},
        headers=faculty_headers,
    )
    unknown_material = await client.patch(
        f"/api/v1/requests/{request_id}/status",
        json={"status": "fulfilled", "fulfilledMaterialId": str(ObjectId())},
        headers=faculty_headers,
    )

    assert response.status_code == 200
    assert response.json()["fulfilledMaterialId"] == material.id
    assert unknown_material.status_code == 404


@pytest.mark.asyncio
async def test_status_update_rules(client: AsyncClient, student_headers, faculty_headers, materials):
    created = await client.post("/api/v1/requests", json=request_body(), headers=student_headers)
    url = f"/api/v1/requests/{created.json()['_id']}/status"

    back_to_pending = await client.patch(url, json={"status": "pending"}, headers=faculty_headers)
    by_student = await client.patch(url, json={"status": "approved"}, headers=student_headers)
    material_on_reject = await client.patch(
        url,
        json={"status": "rejected", "fulfilledMaterialId": materials.add(title="Other").id},
        headers=faculty_headers,
    )
    missing = await client.patch(
        f"/api/v1/requests/{ObjectId()}/status", json={"status": "approved"}, headers=faculty_headers
    )

    assert back_to_pending.status_code == 422
    assert by_student.status_code == 403
    assert material_on_reject.status_code == 400
    assert missing.status_code == 404
