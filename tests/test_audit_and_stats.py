from datetime import datetime

import pytest

from conftest import approved_visa_application, auth_headers, register_user, wallet
from eresidency.api.dto.application_dto import ApplicationCreateRequestDTO
from eresidency.api.services.application_service import application_service
from eresidency.api.services.minting_coordinator import minting_coordinator
from eresidency.core.exceptions import DatabaseError, LedgerRejectedError
from eresidency.domain.models.application import ApplicationType
from eresidency.domain.repositories.audit_log_repository import audit_log_repository

pytestmark = pytest.mark.anyio

CHRONOLOGICAL = [("created_at", 1), ("_id", 1)]


async def _actions(db, entity_id):
    cursor = db["audit_logs"].find({"entity_id": entity_id}).sort(CHRONOLOGICAL)
    return [entry["action"] for entry in await cursor.to_list(length=None)]


async def test_lifecycle_and_mint_are_audited(db, ledger):
    user, application = await approved_visa_application()
    result = await minting_coordinator.mint(user["id"], wallet(40))

    assert await _actions(db, application["id"]) == [
        "application.submitted",
        "application.in_review",
        "application.approved",
        "application.completed",
    ]
    approved = await db["audit_logs"].find_one({"action": "application.approved"})
    assert approved["actor_id"] == "reviewer-1"
    assert approved["user_id"] == user["id"]
    assert approved["metadata"]["from_status"] == "in_review"

    cursor = db["audit_logs"].find({"entity_type": "mint_record"}).sort(CHRONOLOGICAL)
    record_entries = await cursor.to_list(length=None)
    assert [entry["action"] for entry in record_entries] == ["mint.claimed", "mint.settled"]
    settled = record_entries[1]
    assert settled["status"] == "success"
    assert settled["metadata"]["transaction_hash"] == result["transaction_hash"]
    assert settled["metadata"]["application_id"] == application["id"]


async def test_rejected_mint_is_audited_as_failure(db, ledger):
    user, _ = await approved_visa_application()
    ledger.mode = "reject"

    with pytest.raises(LedgerRejectedError):
        await minting_coordinator.mint(user["id"], wallet(41))

    failed = await db["audit_logs"].find_one({"action": "mint.failed"})
    assert failed["status"] == "failure"
    assert failed["metadata"]["error"] == "execution reverted"


async def test_audit_write_failure_does_not_fail_the_transition(db, monkeypatch):
    user = await register_user()

    async def unavailable(entry):
        raise DatabaseError("audit_logs unavailable")

    monkeypatch.setattr(audit_log_repository, "append", unavailable)
    application = await application_service.create(
        user["id"], ApplicationCreateRequestDTO(type=ApplicationType.VISA)
    )

    assert application["status"] == "pending"
    assert await db["audit_logs"].count_documents({}) == 0


async def test_audit_log_listing_is_admin_only(async_client, memory_cache):
    user, application = await approved_visa_application()
    url = "/api/admin/audit-logs"

    response = await async_client.get(
        url, headers=auth_headers(memory_cache, "reviewer-1", role="reviewer")
    )
    assert response.status_code == 403

    admin = auth_headers(memory_cache, "admin-1", role="admin")
    response = await async_client.get(
        url, headers=admin, params={"entityId": application["id"], "limit": 2}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert [entry["action"] for entry in body["data"]] == [
        "application.approved",
        "application.in_review",
    ]
    assert body["data"][0]["entityType"] == "application"

    response = await async_client.get(
        url, headers=admin, params={"action": "application.submitted", "user": user["id"]}
    )
    assert response.json()["total"] == 1


async def test_application_stats(async_client, memory_cache):
    await approved_visa_application()
    applicant = await register_user()
    await application_service.create(
        applicant["id"], ApplicationCreateRequestDTO(type=ApplicationType.COMPANY_REGISTRATION)
    )

    response = await async_client.get(
        "/api/applications/stats", headers=auth_headers(memory_cache, applicant["id"])
    )
    assert response.status_code == 403

    response = await async_client.get(
        "/api/applications/stats",
        headers=auth_headers(memory_cache, "reviewer-1", role="reviewer"),
    )
    assert response.status_code == 200
    stats = response.json()
    assert stats["total"] == 2
    assert stats["byStatus"] == {
        "pending": 1,
        "in_review": 0,
        "approved": 1,
        "rejected": 0,
        "completed": 0,
    }
    assert stats["byType"]["visa"] == 1
    assert stats["byType"]["company_registration"] == 1
    assert stats["byType"]["other"] == 0
    assert len(stats["monthly"]) == 6
    assert stats["monthly"][-1]["count"] == 2


async def test_monthly_stats_cover_calendar_months(db):
    for created_at in (
        datetime(2025, 9, 30, 23, 59),
        datetime(2025, 10, 1, 0, 0),
        datetime(2026, 1, 10),
        datetime(2026, 1, 20),
        datetime(2026, 3, 14),
    ):
        await db["applications"].insert_one(
            {"user_id": "u1", "type": "visa", "status": "pending", "created_at": created_at}
        )

    stats = await application_service.stats(months=6, now=datetime(2026, 3, 15))

    assert stats["total"] == 5
    assert [(m["year"], m["month"], m["count"]) for m in stats["monthly"]] == [
        (2025, 10, 1),
        (2025, 11, 0),
        (2025, 12, 0),
        (2026, 1, 2),
        (2026, 2, 0),
        (2026, 3, 1),
    ]
