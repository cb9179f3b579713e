import random

import pytest

from conftest import (
    PDF_BYTES,
    PNG_BYTES,
    approved_visa_application,
    register_user,
    wallet,
)
from eresidency.api.dto.application_dto import ApplicationCreateRequestDTO
from eresidency.api.services.application_service import application_service
from eresidency.api.services.document_service import IncomingFile, document_service
from eresidency.api.services.minting_coordinator import minting_coordinator
from eresidency.core.exceptions import (
    AuthorizationError,
    IncompleteDocumentationError,
    InvalidTransitionError,
    ResidencyException,
    ValidationError,
)
from eresidency.domain.lifecycle import (
    TransitionActor,
    ensure_document_transition,
    ensure_transition,
    missing_document_types,
)
from eresidency.domain.models.application import ApplicationStatus, ApplicationType
from eresidency.domain.models.document import DocumentStatus, DocumentType
from eresidency.domain.repositories.application_repository import application_repository

pytestmark = pytest.mark.anyio

S = ApplicationStatus


@pytest.mark.parametrize(
    "current,target",
    [
        (S.PENDING, S.IN_REVIEW),
        (S.IN_REVIEW, S.APPROVED),
        (S.IN_REVIEW, S.REJECTED),
    ],
)
def test_reviewer_transitions(current, target):
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (S.PENDING, S.APPROVED),
        (S.PENDING, S.COMPLETED),
        (S.REJECTED, S.COMPLETED),
        (S.REJECTED, S.IN_REVIEW),
        (S.COMPLETED, S.APPROVED),
        (S.APPROVED, S.REJECTED),
    ],
)
def test_illegal_transitions(current, target):
    with pytest.raises(InvalidTransitionError) as exc:
        ensure_transition(current, target, TransitionActor.MINTING)
    assert exc.value.current_status == current.value
    assert exc.value.target_status == target.value


def test_only_minting_completes_an_application():
    with pytest.raises(AuthorizationError):
        ensure_transition(S.APPROVED, S.COMPLETED)
    ensure_transition(S.APPROVED, S.COMPLETED, TransitionActor.MINTING)


def test_missing_documents_ignore_unverified_and_superseded():
    documents = [
        {"type": "passport", "status": "verified", "is_latest": False},
        {"type": "passport", "status": "rejected"},
        {"type": "photo", "status": "verified"},
    ]
    assert missing_document_types(ApplicationType.VISA, documents) == ["passport"]
    assert missing_document_types(ApplicationType.OTHER, []) == []


def test_documents_are_reviewed_once():
    ensure_document_transition(DocumentStatus.PENDING, DocumentStatus.REJECTED)
    with pytest.raises(InvalidTransitionError):
        ensure_document_transition(DocumentStatus.REJECTED, DocumentStatus.PENDING)
    with pytest.raises(InvalidTransitionError):
        ensure_document_transition(DocumentStatus.VERIFIED, DocumentStatus.REJECTED)


async def _visa_application(user_id: str) -> dict:
    return await application_service.create(
        user_id, ApplicationCreateRequestDTO(type=ApplicationType.VISA)
    )


async def test_illegal_transition_leaves_state_unchanged(db):
    user = await register_user()
    application = await _visa_application(user["id"])

    with pytest.raises(InvalidTransitionError):
        await application_service.decide(application["id"], "reviewer-1", "approved")
    with pytest.raises(InvalidTransitionError):
        await application_service.complete(application["id"])

    stored = await application_repository.get_by_id(application["id"])
    assert stored["status"] == S.PENDING.value
    assert stored.get("reviewed_by") is None


async def test_start_review_records_reviewer(db):
    user = await register_user()
    application = await _visa_application(user["id"])

    updated = await application_service.start_review(application["id"], "reviewer-9")

    assert updated["status"] == S.IN_REVIEW.value
    assert updated["reviewed_by"] == "reviewer-9"
    assert updated["review_started_at"] is not None


async def test_rejection_requires_notes(db):
    user = await register_user()
    application = await _visa_application(user["id"])
    await application_service.start_review(application["id"], "reviewer-1")

    with pytest.raises(ValidationError):
        await application_service.decide(application["id"], "reviewer-1", "rejected", "   ")

    rejected = await application_service.decide(
        application["id"], "reviewer-1", "rejected", "Passport expired"
    )
    assert rejected["status"] == S.REJECTED.value
    assert rejected["review_notes"] == "Passport expired"

    with pytest.raises(InvalidTransitionError):
        await application_service.start_review(application["id"], "reviewer-1")


async def test_approval_requires_verified_documents(db):
    user = await register_user()
    application = await _visa_application(user["id"])
    passport = await document_service.upload(
        user["id"],
        [IncomingFile("passport.pdf", "application/pdf", PDF_BYTES)],
        DocumentType.PASSPORT,
        application_id=application["id"],
    )
    await document_service.review(passport[0]["id"], "reviewer-1", DocumentStatus.VERIFIED)
    photo = await document_service.upload(
        user["id"],
        [IncomingFile("photo.png", "image/png", PNG_BYTES)],
        DocumentType.PHOTO,
        application_id=application["id"],
    )
    await document_service.review(
        photo[0]["id"], "reviewer-1", DocumentStatus.REJECTED, "Blurry"
    )
    await application_service.start_review(application["id"], "reviewer-1")

    with pytest.raises(IncompleteDocumentationError) as exc:
        await application_service.decide(application["id"], "reviewer-1", "approved")

    assert exc.value.missing_types == ["photo"]
    stored = await application_repository.get_by_id(application["id"])
    assert stored["status"] == S.IN_REVIEW.value
    embedded = {d["document_id"]: d["status"] for d in stored["documents"]}
    assert embedded[photo[0]["id"]] == DocumentStatus.REJECTED.value


async def test_complete_without_mint_is_refused(db):
    _, application = await approved_visa_application()

    with pytest.raises(InvalidTransitionError):
        await application_service.complete(application["id"])

    stored = await application_repository.get_by_id(application["id"])
    assert stored["status"] == S.APPROVED.value


async def _assert_completed_implies_minted(db):
    completed = await db["applications"].find({"status": "completed"}).to_list(length=None)
    for application in completed:
        succeeded = await db["mint_records"].count_documents(
            {"application_id": str(application["_id"]), "outcome": "succeeded"}
        )
        assert succeeded == 1
    for user_id in await db["mint_records"].distinct("user_id"):
        assert await db["mint_records"].count_documents(
            {"user_id": user_id, "outcome": "succeeded"}
        ) <= 1


async def test_fuzzed_lifecycle_never_completes_without_mint(db, ledger):
    """Random action sequences keep completed applications backed by one succeeded mint."""
    rng = random.Random(20240611)
    actions = ["documents", "start_review", "approve", "reject", "complete", "mint"]

    for round_number in range(12):
        user = await register_user(name=f"Applicant {round_number}")
        application = await _visa_application(user["id"])

        for _ in range(10):
            action = rng.choice(actions)
            try:
                if action == "documents":
                    for doc_type, name, mime, content in (
                        (DocumentType.PASSPORT, "passport.pdf", "application/pdf", PDF_BYTES),
                        (DocumentType.PHOTO, "photo.png", "image/png", PNG_BYTES),
                    ):
                        stored = await document_service.upload(
                            user["id"],
                            [IncomingFile(name, mime, content)],
                            doc_type,
                            application_id=application["id"],
                        )
                        await document_service.review(
                            stored[0]["id"], "reviewer-1", DocumentStatus.VERIFIED
                        )
                elif action == "start_review":
                    await application_service.start_review(application["id"], "reviewer-1")
                elif action == "approve":
                    await application_service.decide(application["id"], "reviewer-1", "approved")
                elif action == "reject":
                    await application_service.decide(
                        application["id"], "reviewer-1", "rejected", "Not eligible"
                    )
                elif action == "complete":
                    await application_service.complete(application["id"])
                else:
                    ledger.mode = rng.choice(["succeed", "reject"])
                    await minting_coordinator.mint(user["id"], wallet(round_number + 1))
            except ResidencyException:
                pass

            await _assert_completed_implies_minted(db)

    await minting_coordinator.drain()
