"""Builders for documents and request groups used across the test suite."""

from dataclasses import dataclass, field
from datetime import timedelta
from io import BytesIO

from django.utils import timezone
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from documents.models import DocumentReference
from signing.models import RecipientLedgerEntry, RequestGroup
from signing.services import GroupService

from .fakes import InMemoryBlobStore


def make_pdf(pages=1, text='Agreement'):
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    for number in range(1, pages + 1):
        pdf.drawString(72, 720, f"{text} page {number}")
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def make_document(name='contract.pdf', pages=2):
    data = make_pdf(pages, name)
    ref = InMemoryBlobStore().put(data, {'filename': name})
    return DocumentReference.objects.create(
        ref=ref,
        display_name=name,
        page_count=pages,
        size_bytes=len(data),
    )


@dataclass
class GroupHandle:
    group_id: str
    tokens: list
    links: list = field(default_factory=list)

    @property
    def group(self):
        return RequestGroup.objects.get(pk=self.group_id)

    def entry(self, index):
        return RecipientLedgerEntry.objects.get(group_id=self.group_id, recipient_index=index)

    def statuses(self):
        return list(
            RecipientLedgerEntry.objects.filter(group_id=self.group_id)
            .order_by('recipient_index')
            .values_list('status', flat=True)
        )

    def values_for(self, index, document_id=None, value=None):
        """A complete, valid field map for one recipient."""
        fields = self.group.fields.filter(recipient_index=index)
        if document_id is not None:
            fields = fields.filter(document_id=document_id)
        return {str(f.pk): value or f"{f.field_type}-{index}-{f.pk}" for f in fields}


def recipients(count):
    return [
        {'name': f"Recipient {i}", 'email': f"recipient{i}@example.com"}
        for i in range(count)
    ]


def build_group(count=2, signing_order='any', view_mode='isolated', documents=None,
                fields=None, recipient_overrides=None, **overrides):
    """
    Create a group through GroupService with one signature field per
    recipient per document unless ``fields`` is given.
    """
    documents = documents or [make_document()]
    people = recipients(count)
    for index, extra in (recipient_overrides or {}).items():
        people[index].update(extra)

    if fields is None:
        fields = [
            {
                'document_id': document.pk,
                'recipient_index': index,
                'field_type': 'signature',
                'label': f"Signature {index}",
                'page_number': 1,
                'x_pct': 0.1,
                'y_pct': 0.1 + 0.1 * index,
                'width_pct': 0.3,
                'height_pct': 0.05,
                'required': True,
            }
            for document in documents
            for index in range(count)
        ]

    data = {
        'title': 'Master services agreement',
        'message': 'Please review and sign.',
        'owner_id': 'owner-1',
        'owner_email': 'owner@example.com',
        'owner_name': 'Olivia Owner',
        'documents': [d.pk for d in documents],
        'recipients': people,
        'fields': fields,
        'signing_order': signing_order,
        'view_mode': view_mode,
        'due_date': timezone.now() + timedelta(days=14),
    }
    data.update(overrides)
    result = GroupService.create_group(data)
    return GroupHandle(
        group_id=result['group_id'],
        tokens=[link['token'] for link in result['links']],
        links=result['links'],
    )
