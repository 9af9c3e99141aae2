import pytest
from bson import ObjectId
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_borrow_material(client: AsyncClient, materials, student, student_headers):
    material = materials.add(title="Introduction to Algorithms", total_copies=2)

    response = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "active"
    assert data["userId"] == student.id
    assert data["materialId"] == material.id
    assert data["material"]["title"] == "Introduction to Algorithms"
    assert data["returnedAt"] is None
    assert "_id" in data and "dueDate" in data
    assert materials.raw(material.id)["available_copies"] == 1


@pytest.mark.asyncio
async def test_borrow_requires_authentication(client: AsyncClient, materials):
    material = materials.add(title="Databases", total_copies=1)

    response = await client.post("/api/v1/bookings", json={"materialId": material.id})

    assert response.status_code == 401
    assert materials.raw(material.id)["available_copies"] == 1


@pytest.mark.asyncio
async def test_borrow_without_copies(client: AsyncClient, materials, student_headers):
    material = materials.add(title="Networks", total_copies=1, available_copies=0)

    response = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "NoCopiesAvailable",
        "detail": "No copies currently available for borrowing.",
    }


@pytest.mark.asyncio
async def test_borrow_digital_material(client: AsyncClient, materials, student_headers):
    material = materials.add(title="Open Lecture Notes", is_physical=False)

    response = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "NotBorrowable"


@pytest.mark.asyncio
async def test_borrow_twice(client: AsyncClient, materials, student_headers):
    material = materials.add(title="Discrete Mathematics", total_copies=3)
    await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    response = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "DuplicateActiveLoan"
    assert materials.raw(material.id)["available_copies"] == 2


@pytest.mark.asyncio
async def test_borrow_unknown_and_malformed_material(client: AsyncClient, student_headers):
    missing = await client.post("/api/v1/bookings", json={"materialId": str(ObjectId())}, headers=student_headers)
    malformed = await client.post("/api/v1/bookings", json={"materialId": "not-an-id"}, headers=student_headers)

    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFound"
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_my_bookings_only_lists_own_loans(
    client: AsyncClient, materials, bookings, student, other_student, student_headers
):
    material = materials.add(title="Marine Biology", total_copies=3)
    own = bookings.add(student.id, material.id)
    bookings.add(other_student.id, material.id)

    response = await client.get("/api/v1/bookings/my", headers=student_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["count"] == 1
    assert data["data"][0]["_id"] == own.id
    assert data["data"][0]["material"]["title"] == "Marine Biology"


@pytest.mark.asyncio
async def test_my_bookings_status_filter(client: AsyncClient, materials, bookings, student, student_headers):
    material = materials.add(title="Paleontology", total_copies=3)
    bookings.add(student.id, material.id, status="returned")
    active = bookings.add(student.id, material.id)

    response = await client.get("/api/v1/bookings/my", params={"status": "active"}, headers=student_headers)

    assert [b["_id"] for b in response.json()["data"]] == [active.id]


@pytest.mark.asyncio
async def test_all_bookings_is_staff_only(client: AsyncClient, student_headers):
    response = await client.get("/api/v1/bookings", headers=student_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_all_bookings_populates_borrowers(
    client: AsyncClient, materials, bookings, student, other_student, faculty_headers
):
    material = materials.add(title="Seismology", total_copies=3)
    bookings.add(student.id, material.id)
    bookings.add(other_student.id, material.id)

    response = await client.get(
        "/api/v1/bookings", params={"userId": student.id, "materialId": material.id}, headers=faculty_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    assert data["data"][0]["user"]["email"] == student.email


@pytest.mark.asyncio
async def test_return_booking(client: AsyncClient, materials, student_headers, faculty_headers):
    material = materials.add(title="Hydrology", total_copies=1)
    created = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)
    booking_id = created.json()["_id"]

    response = await client.patch(f"/api/v1/bookings/{booking_id}/return", headers=faculty_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "returned"
    assert response.json()["returnedAt"] is not None
    assert materials.raw(material.id)["available_copies"] == 1

    again = await client.patch(f"/api/v1/bookings/{booking_id}/return", headers=faculty_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "AlreadyReturned"
    assert materials.raw(material.id)["available_copies"] == 1


@pytest.mark.asyncio
async def test_borrower_cannot_mark_own_return(client: AsyncClient, materials, student_headers):
    material = materials.add(title="Volcanology", total_copies=1)
    created = await client.post("/api/v1/bookings", json={"materialId": material.id}, headers=student_headers)

    response = await client.patch(f"/api/v1/bookings/{created.json()['_id']}/return", headers=student_headers)

    assert response.status_code == 403
    assert materials.raw(material.id)["available_copies"] == 0


@pytest.mark.asyncio
async def test_return_failure_is_reported_as_server_error(
    client: AsyncClient, materials, bookings, student, admin_headers
):
    material = materials.add(title="Glaciology", total_copies=1, available_copies=0)
    booking = bookings.add(student.id, material.id)
    materials.fail_increment = 1

    response = await client.patch(f"/api/v1/bookings/{booking.id}/return", headers=admin_headers)

    assert response.status_code == 500
    assert response.json()["error"] == "ReturnFailed"
    assert bookings.docs[booking.id]["status"] == "active"
