"""
Document intake service layer.

Responsibilities:
- Validate uploaded PDFs and read their page count
- Hash and store the bytes through the configured blob store
- Register the resulting DocumentReference
"""

import logging
from io import BytesIO

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from signing.collaborators import get_blob_store
from signing.exceptions import ValidationError
from ..models import DocumentReference
from .hashing import HashingService

logger = logging.getLogger(__name__)


class DocumentService:
    """Service for document intake."""

    MAX_UPLOAD_BYTES = 25 * 1024 * 1024

    @staticmethod
    def count_pages(data: bytes) -> int:
        """
        Read the page count of a PDF payload.

        Raises:
            ValidationError: if the payload is not a readable PDF
        """
        try:
            reader = PdfReader(BytesIO(data))
            pages = len(reader.pages)
        except (PdfReadError, ValueError) as e:
            raise ValidationError(f"Uploaded file is not a readable PDF: {e}") from e
        if pages < 1:
            raise ValidationError("Uploaded PDF has no pages")
        return pages

    @staticmethod
    def register_upload(uploaded_file, display_name=None) -> DocumentReference:
        """
        Store an uploaded file and return its DocumentReference.

        Args:
            uploaded_file: Django UploadedFile
            display_name: optional name shown to recipients (defaults to the filename)
        """
        data = uploaded_file.read()
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > DocumentService.MAX_UPLOAD_BYTES:
            raise ValidationError("Uploaded file exceeds the 25 MB limit")

        page_count = DocumentService.count_pages(data)
        sha256 = HashingService.compute_bytes_sha256(data)

        ref = get_blob_store().put(data, {
            'filename': uploaded_file.name,
            'content_type': 'application/pdf',
        })

        document = DocumentReference.objects.create(
            ref=ref,
            display_name=display_name or uploaded_file.name,
            content_type='application/pdf',
            page_count=page_count,
            size_bytes=len(data),
            sha256=sha256,
        )
        logger.info(f"Registered document {document.pk} ({page_count} pages, sha256={sha256[:12]})")
        return document


# Singleton instance
_document_service = None


def get_document_service() -> DocumentService:
    """Get singleton instance of document service."""
    global _document_service
    if _document_service is None:
        _document_service = DocumentService()
    return _document_service
