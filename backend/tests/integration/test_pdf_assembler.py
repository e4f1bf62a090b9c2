"""Real PDF flattening and merging against the in-memory blob store."""

from io import BytesIO
from unittest import mock

import pytest
from PyPDF2 import PdfReader

from documents.models import DocumentReference
from documents.services.pdf_flattening import PDFCoordinateConverter, PdfArtifactAssembler
from signing.exceptions import DependencyFailure
from signing.models import FinalizationState
from signing.services import TransitionEngine
from signing.tasks import retry_finalization

from ..factories import build_group, make_document
from ..fakes import InMemoryBlobStore

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture(autouse=True)
def pdf_assembler(settings):
    settings.SIGNING = {
        **settings.SIGNING,
        'ARTIFACT_ASSEMBLER': 'documents.services.pdf_flattening.PdfArtifactAssembler',
    }


def sign_all(handle, value=None):
    for index, token in enumerate(handle.tokens):
        TransitionEngine.submit_action(token, 'sign', {'fields': handle.values_for(index, value=value)})


def read(ref):
    return PdfReader(BytesIO(InMemoryBlobStore.blobs[ref]))


class TestPdfArtifacts:

    def test_single_document_is_flattened(self):
        handle = build_group(count=2, documents=[make_document('lease.pdf', pages=2)])

        sign_all(handle, value='Jane Q. Signer')

        group = handle.group
        pdf = read(group.artifact_ref)
        assert len(pdf.pages) == 2
        assert 'Jane Q. Signer' in pdf.pages[0].extract_text()
        assert group.finalization_state == FinalizationState.DONE

    def test_envelope_is_merged_in_document_order(self):
        documents = [make_document('a.pdf', pages=1), make_document('b.pdf', pages=3)]
        handle = build_group(count=1, documents=documents)

        sign_all(handle)

        group = handle.group
        assert len(read(group.artifact_ref).pages) == 4
        assert len(read(group.document_artifacts[str(documents[1].pk)]).pages) == 3

    def test_unreadable_source_fails_finalization(self):
        ref = InMemoryBlobStore().put(b'not a pdf at all')
        broken = DocumentReference.objects.create(ref=ref, display_name='broken.pdf', page_count=1, size_bytes=16)
        handle = build_group(count=1, documents=[broken])

        with mock.patch.object(retry_finalization, 'apply_async'):
            sign_all(handle)

        group = handle.group
        assert group.finalization_state == FinalizationState.FAILED
        assert group.artifact_ref is None
        assert 'Could not flatten document' in group.finalization_error

    def test_merge_rejects_garbage(self):
        store = InMemoryBlobStore()
        ref = store.put(b'garbage')
        with pytest.raises(DependencyFailure):
            PdfArtifactAssembler(blob_store=store).merge([ref])


class TestCoordinateConversion:

    def test_top_left_origin_is_flipped(self):
        bottom, top = PDFCoordinateConverter.ui_to_pdf(0.1, 0.05, page_height=800)
        assert bottom == pytest.approx(680.0)
        assert top == pytest.approx(720.0)

    def test_font_size_is_clamped(self):
        assert PDFCoordinateConverter.compute_font_size(0.001) == 8
        assert PDFCoordinateConverter.compute_font_size(0.5) == 32
