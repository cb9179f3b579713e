import pytest

from conftest import PDF_BYTES, PNG_BYTES, auth_headers, register_user, wallet
from eresidency.core.security import password_manager

pytestmark = pytest.mark.anyio

REGISTRATION = {
    "fullName": "Grace Hopper",
    "email": "grace@example.com",
    "password": "correct horse battery",
    "passportNumber": "US1234567",
    "country": "United States",
    "residencyType": "draper",
}


async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200


async def test_visa_flow_end_to_end(async_client, memory_cache, ledger):
    """Register, apply, upload, review, mint and verify over HTTP."""
    response = await async_client.post("/api/users", json=REGISTRATION)
    assert response.status_code == 201
    user = response.json()["data"]
    assert "password" not in user and "passwordHash" not in user
    applicant = auth_headers(memory_cache, user["id"])
    reviewer = auth_headers(memory_cache, "reviewer-1", role="reviewer")

    response = await async_client.post(
        "/api/applications", headers=applicant, json={"type": "visa"}
    )
    assert response.status_code == 201
    application_id = response.json()["applicationId"]
    assert response.json()["status"] == "pending"

    for doc_type, name, mime, content in (
        ("passport", "passport.pdf", "application/pdf", PDF_BYTES),
        ("photo", "photo.png", "image/png", PNG_BYTES),
    ):
        response = await async_client.post(
            "/api/documents",
            headers=applicant,
            data={"type": doc_type, "applicationId": application_id},
            files=[("files", (name, content, mime))],
        )
        assert response.status_code == 201
        response = await async_client.put(
            f"/api/documents/{response.json()['documentId']}/status",
            headers=reviewer,
            json={"status": "verified"},
        )
        assert response.status_code == 200

    response = await async_client.post(
        "/api/residency/mint",
        headers=applicant,
        json={"userId": user["id"], "walletAddress": wallet(21)},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_TRANSITION"

    response = await async_client.post(
        f"/api/applications/{application_id}/review/start", headers=reviewer
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "in_review"

    response = await async_client.post(
        f"/api/applications/{application_id}/review/decision",
        headers=reviewer,
        json={"decision": "approved"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "approved"

    response = await async_client.post(
        "/api/residency/mint",
        headers=applicant,
        json={"userId": user["id"], "walletAddress": wallet(21)},
    )
    assert response.status_code == 200
    minted = response.json()
    assert minted["success"] is True
    assert minted["applicationId"] == application_id
    assert minted["eResidencyId"].startswith("ER-")
    assert minted["transactionHash"].startswith("0x")

    response = await async_client.post(
        "/api/residency/mint",
        headers=applicant,
        json={"userId": user["id"], "walletAddress": wallet(21)},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ALREADY_MINTED"

    response = await async_client.get(f"/api/residency/status/{user['id']}")
    status = response.json()
    assert status["hasMinted"] is True
    assert status["tokenId"] == minted["tokenId"]
    assert status["metadata"]["citizenshipCountry"] == "United States"

    response = await async_client.get(f"/api/verify/{application_id}")
    assert response.status_code == 200
    verification = response.json()
    assert set(verification) == {"name", "country", "residencyType", "status", "issuedAt"}
    assert verification["name"] == "Grace Hopper"
    assert verification["status"] == "completed"
    assert verification["issuedAt"] is not None

    response = await async_client.get(f"/api/verify/{user['id']}")
    assert response.json()["status"] == "completed"


async def test_unknown_residency_is_not_found(async_client):
    response = await async_client.get("/api/verify/65f0c0ffee0000000000abcd")
    assert response.status_code == 404
    assert response.json()["error"] == "Residency not found"

    response = await async_client.get("/api/verify/not-an-id")
    assert response.status_code == 404


async def test_status_without_mint(async_client):
    response = await async_client.get("/api/residency/status/65f0c0ffee0000000000abcd")
    assert response.status_code == 200
    assert response.json() == {"hasMinted": False}


async def test_duplicate_registration_conflicts(async_client):
    first = await async_client.post("/api/users", json=REGISTRATION)
    assert first.status_code == 201

    second = await async_client.post("/api/users", json=REGISTRATION)
    assert second.status_code == 409
    assert second.json()["success"] is False


async def test_email_uniqueness_ignores_case(async_client):
    response = await async_client.post("/api/users", json=REGISTRATION)
    assert response.status_code == 201

    response = await async_client.post(
        "/api/users",
        json={**REGISTRATION, "email": "Grace@Example.COM", "passportNumber": "US7654321"},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"


async def test_passport_number_is_unique(async_client):
    response = await async_client.post("/api/users", json=REGISTRATION)
    assert response.status_code == 201

    response = await async_client.post(
        "/api/users", json={**REGISTRATION, "email": "amazing.grace@example.com"}
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"


async def test_registration_validation_error(async_client):
    response = await async_client.post("/api/users", json={**REGISTRATION, "password": "short"})
    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["details"]["errors"]


async def test_profile_visible_to_owner_and_reviewer_only(async_client, memory_cache):
    owner = await register_user()
    stranger = await register_user(name="Mallory")
    url = f"/api/users/{owner['id']}"

    assert (await async_client.get(url)).status_code == 401
    assert (
        await async_client.get(url, headers=auth_headers(memory_cache, stranger["id"]))
    ).status_code == 403

    response = await async_client.get(url, headers=auth_headers(memory_cache, owner["id"]))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == owner["email"]

    response = await async_client.get(
        url, headers=auth_headers(memory_cache, "reviewer-1", role="reviewer")
    )
    assert response.status_code == 200


async def test_wallet_binding(async_client, memory_cache):
    user = await register_user()
    headers = auth_headers(memory_cache, user["id"])

    response = await async_client.put(
        "/api/users/wallet",
        headers=headers,
        json={"userId": user["id"], "walletAddress": "0x1234"},
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_WALLET_ADDRESS"

    response = await async_client.put(
        "/api/users/wallet",
        headers=headers,
        json={"userId": user["id"], "walletAddress": wallet(30)},
    )
    assert response.status_code == 200
    assert response.json()["changed"] is True

    response = await async_client.put(
        "/api/users/wallet",
        headers=headers,
        json={"userId": user["id"], "walletAddress": wallet(30)},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Wallet already bound"


async def test_wallet_held_by_another_user_conflicts(async_client, memory_cache):
    first = await register_user()
    second = await register_user(name="Mallory")

    response = await async_client.put(
        "/api/users/wallet",
        headers=auth_headers(memory_cache, first["id"]),
        json={"userId": first["id"], "walletAddress": wallet(31)},
    )
    assert response.status_code == 200

    response = await async_client.put(
        "/api/users/wallet",
        headers=auth_headers(memory_cache, second["id"]),
        json={"userId": second["id"], "walletAddress": wallet(31)},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "WALLET_ALREADY_LINKED"


async def test_wallet_and_mint_act_only_on_own_account(async_client, memory_cache, ledger):
    owner = await register_user()
    stranger = await register_user(name="Mallory")
    body = {"userId": owner["id"], "walletAddress": wallet(32)}

    response = await async_client.put("/api/users/wallet", json=body)
    assert response.status_code == 401

    stranger_headers = auth_headers(memory_cache, stranger["id"])
    response = await async_client.put("/api/users/wallet", headers=stranger_headers, json=body)
    assert response.status_code == 403

    response = await async_client.post("/api/residency/mint", headers=stranger_headers, json=body)
    assert response.status_code == 403
    assert ledger.mint_calls == 0


async def test_certificate_preview(async_client, memory_cache):
    user = await register_user()
    response = await async_client.post(
        "/api/certificates/preview",
        headers=auth_headers(memory_cache, user["id"]),
        json={"payload": "https://eresidency.example.com/verify/abc", "options": {"format": "svg"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["format"] == "svg"
    assert body["dataUrl"].startswith("data:image/svg+xml;base64,")


async def test_maintenance_requires_admin(async_client, memory_cache, ledger):
    user = await register_user()

    response = await async_client.post(
        "/api/admin/maintenance/reconcile", headers=auth_headers(memory_cache, user["id"])
    )
    assert response.status_code == 403

    response = await async_client.post(
        "/api/admin/maintenance/reconcile",
        headers=auth_headers(memory_cache, "admin-1", role="admin"),
    )
    assert response.status_code == 200
    assert response.json()["examined"] == 0

    response = await async_client.post(
        "/api/admin/maintenance/expire-documents",
        headers=auth_headers(memory_cache, "admin-1", role="admin"),
    )
    assert response.status_code == 200
    assert response.json()["expired"] == 0


async def test_registration_stores_only_a_password_hash(async_client, db):
    response = await async_client.post("/api/users", json=REGISTRATION)
    assert response.status_code == 201

    stored = await db["users"].find_one({"email": REGISTRATION["email"]})
    assert "password" not in stored
    assert stored["password_hash"] != REGISTRATION["password"]
    assert password_manager.verify_password(REGISTRATION["password"], stored["password_hash"])
    assert not password_manager.verify_password("wrong password", stored["password_hash"])
