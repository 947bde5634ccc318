from httpx import ASGITransport, AsyncClient
from fastapi import status

from src.befree.main import app

SUBJECT = {"X-User-ID": "subject-1"}
STAFF = {"X-User-ID": "staff-1", "X-Role": "admin"}


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_submit_hiv_screening_via_api():
    async with _client() as ac:
        response = await ac.post(
            "/api/v1/screenings/hiv",
            json={"name": "Amara", "sexual_activity": "no", "testing_history": "never_tested"},
            headers=SUBJECT,
        )
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["success"] is True
    assert body["referral_id"] is None
    assert body["recommendation"]["classification"] == "informational"


async def test_submit_gbv_screening_opens_referral(gbv_answers):
    async with _client() as ac:
        response = await ac.post("/api/v1/screenings/gbv", json=gbv_answers, headers=SUBJECT)
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["referral"]["status"] == "Pending Consent"
    assert body["referral"]["consent_status"] == "pending"
    assert body["referral"]["user_id"] == "subject-1"
    assert body["recommendation"]["urgency_notes"] == ["Suicide/self-harm thoughts indicated."]


async def test_invalid_answers_return_422_with_field_errors(gbv_answers):
    gbv_answers["suicide_attempt"] = None
    async with _client() as ac:
        response = await ac.post("/api/v1/screenings/gbv", json=gbv_answers, headers=SUBJECT)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    detail = response.json()["detail"]
    assert detail["success"] is False
    assert detail["error_kind"] == "validation"
    assert "suicide_attempt" in detail["field_errors"]


async def test_unknown_screening_kind_is_rejected():
    async with _client() as ac:
        response = await ac.post("/api/v1/screenings/malaria", json={"name": "Amara"}, headers=SUBJECT)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


async def test_staff_can_read_a_screening(prep_answers):
    async with _client() as ac:
        created = (await ac.post("/api/v1/screenings/prep", json=prep_answers, headers=SUBJECT)).json()
        screening_id = created["screening_id"]

        response = await ac.get(f"/api/v1/screenings/prep/{screening_id}", headers=STAFF)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["answers"]["unprotected_sex"] == "yes"

        forbidden = await ac.get(f"/api/v1/screenings/prep/{screening_id}", headers=SUBJECT)
        assert forbidden.status_code == status.HTTP_403_FORBIDDEN

        missing = await ac.get("/api/v1/screenings/prep/missing", headers=STAFF)
        assert missing.status_code == status.HTTP_404_NOT_FOUND
