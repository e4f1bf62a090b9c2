from .hashing import HashingService
from .blob_store import StorageBlobStore
from .pdf_flattening import PdfArtifactAssembler
from .document_service import DocumentService, get_document_service

__all__ = [
    'HashingService',
    'StorageBlobStore',
    'PdfArtifactAssembler',
    'DocumentService',
    'get_document_service',
]
