"""
Application lifecycle rules.

Pure functions: they decide whether a transition is legal and which
documents are still missing. Persisting a transition is the repository's
job, through a conditional write on the current status.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping

from eresidency.core.exceptions import (
    AuthorizationError,
    IncompleteDocumentationError,
    InvalidTransitionError,
)
from eresidency.domain.models.application import (
    REQUIRED_DOCUMENTS,
    ApplicationStatus,
    ApplicationType,
)
from eresidency.domain.models.document import DocumentStatus, DocumentType


class TransitionActor(str, Enum):
    """Who triggers a transition."""

    REVIEWER = "reviewer"
    MINTING = "minting"


ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({ApplicationStatus.IN_REVIEW}),
    ApplicationStatus.IN_REVIEW: frozenset(
        {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED}
    ),
    ApplicationStatus.APPROVED: frozenset({ApplicationStatus.COMPLETED}),
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.COMPLETED: frozenset(),
}

# Transitions a reviewer may never trigger
SYSTEM_ONLY_TARGETS: FrozenSet[ApplicationStatus] = frozenset({ApplicationStatus.COMPLETED})

# Applications that still accept documents
OPEN_FOR_DOCUMENTS = (ApplicationStatus.PENDING, ApplicationStatus.IN_REVIEW)


def ensure_transition(
    current: ApplicationStatus,
    target: ApplicationStatus,
    actor: TransitionActor = TransitionActor.REVIEWER,
) -> None:
    """
    Check that ``current -> target`` is legal for ``actor``.

    Raises:
        InvalidTransitionError: If the transition is not in the state graph
        AuthorizationError: If a reviewer tries a system-only transition
    """
    current = ApplicationStatus(current)
    target = ApplicationStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    if target in SYSTEM_ONLY_TARGETS and actor != TransitionActor.MINTING:
        raise AuthorizationError(
            "Applications are completed only by a successful mint",
            {"current_status": current.value, "target_status": target.value},
        )


def missing_document_types(
    application_type: ApplicationType,
    documents: Iterable[Mapping],
) -> List[str]:
    """
    Required document types without a verified latest version.

    Args:
        application_type: Type of the application
        documents: Documents attached to the application (``type``, ``status``)

    Returns:
        Missing types in the order they are required
    """
    verified = {
        DocumentType(document["type"])
        for document in documents
        if document.get("status") == DocumentStatus.VERIFIED.value
        and document.get("is_latest", True)
    }
    required = REQUIRED_DOCUMENTS[ApplicationType(application_type)]
    return [doc_type.value for doc_type in required if doc_type not in verified]


def ensure_documents_complete(
    application_type: ApplicationType,
    documents: Iterable[Mapping],
) -> None:
    """
    Raises:
        IncompleteDocumentationError: If any required document is missing or not verified
    """
    missing = missing_document_types(application_type, documents)
    if missing:
        raise IncompleteDocumentationError(missing)


DOCUMENT_TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.VERIFIED, DocumentStatus.REJECTED}),
    DocumentStatus.VERIFIED: frozenset(),
    DocumentStatus.REJECTED: frozenset(),
}


def ensure_document_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    """
    Documents are reviewed once. A rejected document is replaced by a new
    record, never moved back to pending.

    Raises:
        InvalidTransitionError: If the document was already reviewed
    """
    current = DocumentStatus(current)
    target = DocumentStatus(target)
    if target not in DOCUMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
