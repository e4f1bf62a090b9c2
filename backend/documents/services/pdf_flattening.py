"""
Artifact assembly: flatten signed field values onto the source PDF.

The assembler is the default implementation of the workflow's artifact
contract: ``compose(document, signed_entries) -> ref`` renders one
document, ``merge(refs) -> ref`` concatenates envelope documents into a
single completed artifact.
"""

import logging
from collections import namedtuple
from io import BytesIO

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.colors import HexColor
from reportlab.pdfgen import canvas

from signing.exceptions import DependencyFailure
from .blob_store import StorageBlobStore

logger = logging.getLogger(__name__)


OverlayField = namedtuple(
    'OverlayField',
    ['field_type', 'value', 'page_number', 'x_pct', 'y_pct', 'width_pct', 'height_pct'],
)


class PDFCoordinateConverter:
    """Convert between UI coordinates (top-left origin) and PDF coordinates (bottom-left origin)."""

    @staticmethod
    def ui_to_pdf(y_pct: float, height_pct: float, page_height: float = 792) -> tuple:
        """
        Convert UI y-coordinate (top-left origin) to PDF y-coordinate (bottom-left origin).

        Args:
            y_pct: Y position as percentage from top (0.0 to 1.0)
            height_pct: Height as percentage (0.0 to 1.0)
            page_height: Page height in points

        Returns:
            (pdf_y_bottom, pdf_y_top) tuple in points
        """
        top = y_pct * page_height
        field_height = height_pct * page_height
        return (page_height - top - field_height, page_height - top)

    @staticmethod
    def compute_font_size(height_pct: float, page_height: float = 792,
                          field_type: str = 'text', min_size: int = 8,
                          max_size: int = 32) -> int:
        """Compute appropriate font size based on field height."""
        height_points = height_pct * page_height
        ratio = 0.7 if field_type == 'signature' else 0.6
        return max(min_size, min(int(height_points * ratio), max_size))


class PDFOverlayRenderer:
    """Render field overlays onto a reportlab canvas."""

    def __init__(self):
        self.converter = PDFCoordinateConverter()

    def render_field(self, canvas_obj, field, page_width: float, page_height: float) -> None:
        if field.value is None or str(field.value).strip() == '':
            return

        x = field.x_pct * page_width
        y, _ = self.converter.ui_to_pdf(field.y_pct, field.height_pct, page_height)
        width = field.width_pct * page_width
        height = field.height_pct * page_height
        font_size = self.converter.compute_font_size(field.height_pct, page_height, field.field_type)

        if field.field_type in ('signature', 'initials'):
            self._render_signature(canvas_obj, field, x, y, height, font_size)
        elif field.field_type == 'checkbox':
            self._render_checkbox(canvas_obj, field, x, y, width, height, font_size)
        else:
            self._render_text(canvas_obj, field, x, y, width, height, font_size)

    def _render_signature(self, canvas_obj, field, x, y, height, font_size):
        canvas_obj.setFont('Helvetica-Oblique', max(12, min(font_size, 28)))
        canvas_obj.setFillColor(HexColor('#1a1a1a'))
        canvas_obj.drawString(x + 4, y + (height * 0.2), str(field.value).strip()[:50])

    def _render_checkbox(self, canvas_obj, field, x, y, width, height, font_size):
        if str(field.value).lower() not in ('true', '1', 'yes', 'checked'):
            return
        canvas_obj.setFont('Helvetica-Bold', min(font_size, 14))
        canvas_obj.setFillColor(HexColor('#000000'))
        canvas_obj.drawString(x + (width / 2) - 3, y + (height / 2) - 3, 'X')

    def _render_text(self, canvas_obj, field, x, y, width, height, font_size):
        font_size = min(font_size, 10)
        canvas_obj.setFont('Helvetica', font_size)
        canvas_obj.setFillColor(HexColor('#000000'))

        text = str(field.value)
        chars_per_line = max(1, int(width / (font_size * 0.5)))
        if len(text) > chars_per_line:
            text = text[:chars_per_line - 1] + '...'
        canvas_obj.drawString(x + 2, y + (height * 0.15), text)


class PdfArtifactAssembler:
    """Flattens signed values onto documents and stores the results."""

    def __init__(self, blob_store=None):
        self.blob_store = blob_store or StorageBlobStore()
        self.renderer = PDFOverlayRenderer()

    def compose(self, document, signed_entries) -> str:
        """
        Render every signed entry's values for ``document`` and store the result.

        Args:
            document: DocumentReference instance
            signed_entries: iterable of signed RecipientLedgerEntry instances

        Returns:
            str: blob reference of the flattened PDF
        """
        overlays = self.collect_overlays(document, signed_entries)
        source = self.blob_store.get(document.ref)
        flattened = self.flatten(source, overlays)
        ref = self.blob_store.put(flattened, {
            'filename': f'signed-{document.pk}.pdf',
            'content_type': 'application/pdf',
        })
        logger.info(f"Composed artifact {ref} for document {document.pk} ({len(overlays)} fields)")
        return ref

    def merge(self, refs) -> str:
        """Concatenate several stored PDFs into one artifact."""
        writer = PdfWriter()
        try:
            for ref in refs:
                reader = PdfReader(BytesIO(self.blob_store.get(ref)))
                for page in reader.pages:
                    writer.add_page(page)
            output = BytesIO()
            writer.write(output)
        except (PdfReadError, ValueError) as e:
            logger.error(f"Envelope merge failed: {e}")
            raise DependencyFailure(f"Could not merge envelope documents: {e}") from e

        ref = self.blob_store.put(output.getvalue(), {
            'filename': 'envelope.pdf',
            'content_type': 'application/pdf',
        })
        logger.info(f"Merged {len(refs)} documents into {ref}")
        return ref

    @staticmethod
    def collect_overlays(document, signed_entries):
        overlays = []
        for entry in signed_entries:
            payload = entry.signed_payload or {}
            placements = entry.group.fields.filter(
                document=document,
                recipient_index=entry.recipient_index,
            )
            for placement in placements:
                value = payload.get(str(placement.pk))
                if value in (None, ''):
                    continue
                overlays.append(OverlayField(
                    placement.field_type,
                    value,
                    placement.page_number,
                    placement.x_pct,
                    placement.y_pct,
                    placement.width_pct,
                    placement.height_pct,
                ))
        return overlays

    def flatten(self, source: bytes, overlays) -> bytes:
        try:
            reader = PdfReader(BytesIO(source))
            writer = PdfWriter()

            for page_num, page in enumerate(reader.pages, start=1):
                page_fields = [f for f in overlays if f.page_number == page_num]
                if page_fields:
                    width = float(page.mediabox.width)
                    height = float(page.mediabox.height)
                    overlay = PdfReader(self._create_overlay_page(page_fields, width, height))
                    page.merge_page(overlay.pages[0])
                writer.add_page(page)

            output = BytesIO()
            writer.write(output)
        except (PdfReadError, ValueError) as e:
            logger.error(f"PDF flattening failed: {e}")
            raise DependencyFailure(f"Could not flatten document: {e}") from e

        return output.getvalue()

    def _create_overlay_page(self, fields, page_width, page_height) -> BytesIO:
        buffer = BytesIO()
        overlay_canvas = canvas.Canvas(buffer, pagesize=(page_width, page_height))
        for field in fields:
            self.renderer.render_field(overlay_canvas, field, page_width, page_height)
        overlay_canvas.save()
        buffer.seek(0)
        return buffer
