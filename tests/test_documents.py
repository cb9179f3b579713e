from datetime import timedelta
from pathlib import Path

import pytest

from conftest import PDF_BYTES, PNG_BYTES, auth_headers, register_user
from eresidency.api.dto.application_dto import ApplicationCreateRequestDTO
from eresidency.api.services.application_service import application_service
from eresidency.api.services.document_service import IncomingFile, document_service
from eresidency.core.config import settings
from eresidency.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from eresidency.domain.models.application import ApplicationType
from eresidency.domain.models.common import utc_now
from eresidency.domain.models.document import DocumentStatus, DocumentType
from eresidency.domain.repositories.application_repository import application_repository
from eresidency.domain.repositories.document_repository import document_repository

pytestmark = pytest.mark.anyio

MIB = 1024 * 1024


def _stored_files():
    return sorted(p.name for p in Path(settings.UPLOAD_DIR).iterdir())


async def test_upload_document(async_client, memory_cache):
    user = await register_user()
    headers = auth_headers(memory_cache, user["id"])

    response = await async_client.post(
        "/api/documents",
        headers=headers,
        data={"type": "passport"},
        files=[("files", ("passport.pdf", PDF_BYTES, "application/pdf"))],
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["documentId"]
    assert body["url"].startswith("/uploads/")
    assert body["status"] == "pending"
    assert len(body["documents"]) == 1
    assert body["documents"][0]["name"] == "passport.pdf"
    assert body["documents"][0]["mimeType"] == "application/pdf"


async def test_oversized_upload_is_rejected_without_storing(async_client, memory_cache):
    user = await register_user()
    headers = auth_headers(memory_cache, user["id"])
    before = _stored_files()

    response = await async_client.post(
        "/api/documents",
        headers=headers,
        data={"type": "passport"},
        files=[
            ("files", ("small.pdf", PDF_BYTES, "application/pdf")),
            ("files", ("scan.pdf", b"0" * (15 * MIB), "application/pdf")),
        ],
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "UPLOAD_REJECTED"
    assert _stored_files() == before
    assert await document_repository.list_for_user(user["id"]) == []


async def test_executable_upload_is_rejected(async_client, memory_cache):
    user = await register_user()
    response = await async_client.post(
        "/api/documents",
        headers=auth_headers(memory_cache, user["id"]),
        data={"type": "other"},
        files=[("files", ("setup.exe", b"MZ\x90\x00", "application/x-msdownload"))],
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "UPLOAD_REJECTED"


async def test_too_many_files_are_rejected(async_client, memory_cache):
    user = await register_user()
    files = [
        ("files", (f"page-{i}.pdf", PDF_BYTES, "application/pdf"))
        for i in range(settings.MAX_FILES_PER_UPLOAD + 1)
    ]

    response = await async_client.post(
        "/api/documents",
        headers=auth_headers(memory_cache, user["id"]),
        data={"type": "passport"},
        files=files,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


async def test_upload_requires_session(async_client):
    response = await async_client.post(
        "/api/documents",
        data={"type": "passport"},
        files=[("files", ("passport.pdf", PDF_BYTES, "application/pdf"))],
    )
    assert response.status_code == 401


async def test_download_access(async_client, memory_cache):
    owner = await register_user()
    stranger = await register_user(name="Mallory")
    documents = await document_service.upload(
        owner["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
    )
    url = f"/api/documents/{documents[0]['id']}/download"

    denied = await async_client.get(url, headers=auth_headers(memory_cache, stranger["id"]))
    assert denied.status_code == 403

    owned = await async_client.get(url, headers=auth_headers(memory_cache, owner["id"]))
    assert owned.status_code == 200
    assert owned.content == PDF_BYTES

    reviewed = await async_client.get(
        url, headers=auth_headers(memory_cache, "reviewer-1", role="reviewer")
    )
    assert reviewed.status_code == 200
    assert reviewed.headers["content-type"].startswith("application/pdf")


async def test_review_endpoint_requires_reviewer(async_client, memory_cache):
    user = await register_user()
    documents = await document_service.upload(
        user["id"],
        [IncomingFile("photo.png", "image/png", PNG_BYTES)],
        DocumentType.PHOTO,
    )
    url = f"/api/documents/{documents[0]['id']}/status"

    response = await async_client.put(
        url, headers=auth_headers(memory_cache, user["id"]), json={"status": "verified"}
    )
    assert response.status_code == 403

    response = await async_client.put(
        url,
        headers=auth_headers(memory_cache, "reviewer-1", role="reviewer"),
        json={"status": "rejected", "reason": "Glare over the face"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "rejected"
    assert data["rejectionReason"] == "Glare over the face"
    assert data["reviewedBy"] == "reviewer-1"


async def test_resubmission_creates_new_version(db):
    user = await register_user()
    application = await application_service.create(
        user["id"], ApplicationCreateRequestDTO(type=ApplicationType.VISA)
    )
    original = await document_service.upload(
        user["id"],
        [IncomingFile("photo.png", "image/png", PNG_BYTES)],
        DocumentType.PHOTO,
        application_id=application["id"],
    )
    await document_service.review(
        original[0]["id"], "reviewer-1", DocumentStatus.REJECTED, "Blurry"
    )

    replacement = await document_service.upload(
        user["id"],
        [IncomingFile("photo-2.png", "image/png", PNG_BYTES)],
        DocumentType.PHOTO,
        application_id=application["id"],
        previous_version_id=original[0]["id"],
    )

    old = await document_repository.get_by_id(original[0]["id"])
    assert old["status"] == DocumentStatus.REJECTED.value
    assert old["is_latest"] is False
    assert replacement[0]["previous_version"] == original[0]["id"]
    assert replacement[0]["status"] == DocumentStatus.PENDING.value

    latest = await document_service.list_for_user(user["id"])
    assert [d["id"] for d in latest] == [replacement[0]["id"]]

    stored = await application_repository.get_by_id(application["id"])
    assert {d["document_id"] for d in stored["documents"]} == {
        original[0]["id"],
        replacement[0]["id"],
    }


async def test_only_rejected_documents_can_be_replaced(db):
    user = await register_user()
    pending = await document_service.upload(
        user["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
    )

    with pytest.raises(ValidationError):
        await document_service.upload(
            user["id"],
            [IncomingFile("passport-2.pdf", "application/pdf", PDF_BYTES)],
            DocumentType.PASSPORT,
            previous_version_id=pending[0]["id"],
        )


async def test_reviewed_document_cannot_be_reviewed_again(db):
    user = await register_user()
    documents = await document_service.upload(
        user["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
    )
    await document_service.review(documents[0]["id"], "reviewer-1", DocumentStatus.VERIFIED)

    with pytest.raises(InvalidTransitionError):
        await document_service.review(
            documents[0]["id"], "reviewer-2", DocumentStatus.REJECTED, "Changed my mind"
        )

    stored = await document_repository.get_by_id(documents[0]["id"])
    assert stored["status"] == DocumentStatus.VERIFIED.value
    assert stored["reviewed_by"] == "reviewer-1"


async def test_rejection_requires_reason(db):
    user = await register_user()
    documents = await document_service.upload(
        user["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
    )

    with pytest.raises(ValidationError):
        await document_service.review(documents[0]["id"], "reviewer-1", DocumentStatus.REJECTED)


async def test_expiry_sweep_removes_record_and_file(db):
    user = await register_user()
    expired = await document_service.upload(
        user["id"],
        [IncomingFile("temp.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.OTHER,
        expires_at=utc_now() - timedelta(minutes=1),
    )
    kept = await document_service.upload(
        user["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
        expires_at=utc_now() + timedelta(days=30),
    )

    report = await document_service.expire_documents()

    assert report == {"expired": 1, "files_deleted": 1}
    with pytest.raises(NotFoundError):
        await document_repository.get_by_id(expired[0]["id"])
    assert not (Path(settings.UPLOAD_DIR) / expired[0]["storage_path"]).exists()
    assert (await document_repository.get_by_id(kept[0]["id"]))["id"] == kept[0]["id"]
