"""
Document Router for e-Residency Backend.
Handles uploads, downloads and reviewer decisions on identity documents.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from eresidency.api.deps.auth_guard import (
    AuthenticatedUser,
    get_current_user,
    get_reviewer_user,
)
from eresidency.api.dto.document_dto import (
    DocumentEnvelopeDTO,
    DocumentListResponseDTO,
    DocumentReviewRequestDTO,
    DocumentUploadItemDTO,
    DocumentUploadResponseDTO,
)
from eresidency.api.services.document_service import IncomingFile, document_service
from eresidency.core.config import settings
from eresidency.core.logging import get_logger
from eresidency.domain.models.document import DocumentStatus, DocumentType

logger = get_logger(__name__)

# Create router
router = APIRouter()


@router.post("", response_model=DocumentUploadResponseDTO, status_code=status.HTTP_201_CREATED)
async def upload_documents(
    files: List[UploadFile] = File(..., description="One to five files"),
    type: DocumentType = Form(..., description="Declared document type"),
    application_id: Optional[str] = Form(None, alias="applicationId"),
    previous_version_id: Optional[str] = Form(None, alias="previousVersionId"),
    expires_at: Optional[datetime] = Form(None, alias="expiresAt"),
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> DocumentUploadResponseDTO:
    """
    Upload documents (multipart).

    Accepts PDF, JPEG, PNG, DOC and DOCX files up to 10 MiB each. Nothing is
    stored unless every file passes validation.

    **Access**: Authenticated user

    Returns:
        DocumentUploadResponseDTO; ``documentId``/``url``/``status`` describe the first file
    """
    incoming = []
    for upload in files:
        # One byte past the limit is enough to reject an oversized file
        content = await upload.read(settings.MAX_UPLOAD_SIZE_BYTES + 1)
        incoming.append(
            IncomingFile(
                filename=upload.filename or "",
                content_type=upload.content_type or "",
                content=content,
            )
        )

    documents = await document_service.upload(
        current_user.user_id,
        incoming,
        type,
        application_id=application_id,
        previous_version_id=previous_version_id,
        expires_at=expires_at,
    )

    items = [
        DocumentUploadItemDTO(
            document_id=document["id"],
            url=document["url"],
            status=document["status"],
            name=document["name"],
            type=document["type"],
            mime_type=document["mime_type"],
            size=document["size"],
        )
        for document in documents
    ]
    return DocumentUploadResponseDTO(
        success=True,
        message=f"Uploaded {len(items)} document(s)",
        document_id=items[0].document_id,
        url=items[0].url,
        status=items[0].status,
        documents=items,
    )


@router.get("", response_model=DocumentListResponseDTO)
async def list_documents(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> DocumentListResponseDTO:
    """
    The caller's documents, latest versions only.

    **Access**: Authenticated user
    """
    documents = await document_service.list_for_user(current_user.user_id)
    return DocumentListResponseDTO(
        success=True,
        message=f"Found {len(documents)} document(s)",
        data=[document_service.serialize(d) for d in documents],
    )


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    """
    Download a document's artifact.

    **Access**: Owner, or a reviewer
    """
    document = await document_service.get(document_id)
    document_service.ensure_access(document, current_user.user_id, current_user.is_reviewer)

    document, content = await document_service.download(document["id"])
    return Response(
        content=content,
        media_type=document["mime_type"],
        headers={"Content-Disposition": f'attachment; filename="{document["storage_path"]}"'},
    )


@router.put("/{document_id}/status", response_model=DocumentEnvelopeDTO)
async def review_document(
    document_id: str,
    request: DocumentReviewRequestDTO,
    current_user: AuthenticatedUser = Depends(get_reviewer_user),
) -> DocumentEnvelopeDTO:
    """
    Verify or reject a pending document. Rejection requires a reason.

    **Access**: Reviewer or admin
    """
    document = await document_service.review(
        document_id, current_user.user_id, DocumentStatus(request.status), request.reason
    )
    return DocumentEnvelopeDTO(
        success=True,
        message=f"Document {document['status']}",
        data=document_service.serialize(document),
    )
