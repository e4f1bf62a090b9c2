"""
Blob store backed by Django's storage API.

Implements the narrow contract the signing workflow depends on:
``put(data, meta) -> ref`` and ``get(ref) -> bytes``. Storage errors are
raised as DependencyFailure so callers can retry instead of corrupting
workflow state.
"""

import logging
import os
import uuid

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone

from signing.exceptions import DependencyFailure, NotFoundError

logger = logging.getLogger(__name__)


class StorageBlobStore:
    """Stores blobs under ``blobs/YYYY/MM/DD/<uuid><ext>``."""

    PREFIX = 'blobs'

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def put(self, data: bytes, meta: dict = None) -> str:
        meta = meta or {}
        ext = os.path.splitext(meta.get('filename') or '')[1] or '.bin'
        name = f"{self.PREFIX}/{timezone.now():%Y/%m/%d}/{uuid.uuid4().hex}{ext}"

        try:
            ref = self.storage.save(name, ContentFile(data))
        except OSError as e:
            logger.error(f"Blob write failed for {name}: {e}")
            raise DependencyFailure(f"Blob store write failed: {e}") from e

        logger.info(f"Stored blob {ref} ({len(data)} bytes)")
        return ref

    def get(self, ref: str) -> bytes:
        try:
            with self.storage.open(ref, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f"Blob {ref} not found") from e
        except OSError as e:
            logger.error(f"Blob read failed for {ref}: {e}")
            raise DependencyFailure(f"Blob store read failed: {e}") from e
