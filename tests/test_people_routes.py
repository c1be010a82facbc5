import pytest
from fastapi.testclient import TestClient

from maintdesk.dependencies.services import get_person_service
from maintdesk.main import create_app
from maintdesk.people.service import PersonService


@pytest.fixture
def client(person_repository):
    app = create_app()
    service = PersonService(person_repository)

    async def override_service():
        return service

    app.dependency_overrides[get_person_service] = override_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_create_and_fetch_person(client):
    created = client.post(
        "/people",
        json={"firstName": "Ana", "lastName": "Diaz", "email": "Ana@Central.com", "department": "MAINTENANCE"},
    )

    assert created.status_code == 201
    person_id = created.json()["data"]["id"]
    fetched = client.get(f"/people/{person_id}").json()["data"]
    assert fetched["email"] == "ana@central.com"
    assert fetched["department"] == "MAINTENANCE"


def test_duplicate_email_is_409(client):
    client.post("/people", json={"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"})

    response = client.post("/people", json={"firstName": "Ana", "lastName": "Copy", "email": "ana@central.com"})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_EMAIL"


def test_bulk_create_reports_failures(client):
    response = client.post(
        "/people/bulk",
        json={
            "items": [
                {"firstName": "Ana", "lastName": "Diaz", "email": "ana@central.com"},
                {"firstName": "Ana", "lastName": "Copy", "email": "ana@central.com"},
            ]
        },
    )

    data = response.json()["data"]
    assert response.status_code == 200
    assert len(data["succeeded"]) + len(data["failed"]) == 2
    assert [failure["error"]["code"] for failure in data["failed"]] == ["DUPLICATE_EMAIL"]


def test_missing_person_is_404(client):
    response = client.get("/people/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False
