from django.core.validators import MinValueValidator
from django.db import models


class DocumentReference(models.Model):
    """
    Pointer to an uploaded document held in the blob store.

    Only the opaque blob reference and the metadata the signing workflow
    needs (page count for field placement, sha256 for the audit trail)
    are kept here; the bytes live behind the blob store.
    """
    ref = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Opaque blob store reference"
    )
    display_name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=100, default='application/pdf')
    page_count = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    size_bytes = models.PositiveIntegerField(default=0)
    sha256 = models.CharField(
        max_length=64,
        blank=True,
        help_text="SHA256 hash of the uploaded bytes"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.display_name} ({self.page_count} pages)"
