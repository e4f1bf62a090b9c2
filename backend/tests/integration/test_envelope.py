"""Envelopes: several documents, per-document progress, one merged artifact."""

import pytest

from notifications.models import NotificationKind
from signing.exceptions import StateConflictError, ValidationError
from signing.services import GroupService, LedgerProjection, TransitionEngine

from ..factories import build_group, make_document

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def envelope():
    documents = [make_document('nda.pdf', pages=1), make_document('msa.pdf', pages=3)]
    return build_group(count=2, documents=documents), documents


class TestEnvelope:

    def test_document_by_document_progress(self, envelope, notifier, assembler):
        handle, (nda, msa) = envelope

        status = TransitionEngine.submit_action(handle.tokens[0], 'sign', {
            'document': nda.pk,
            'fields': handle.values_for(0, document_id=nda.pk),
        })

        assert status == 'pending'
        entry = handle.entry(0)
        assert entry.signed_documents == [nda.pk]
        assert entry.signed_payload is None
        progress = notifier.of_kind(NotificationKind.ENVELOPE_PROGRESS, 'owner@example.com')
        assert progress[0][2]['signed_count'] == 1
        assert progress[0][2]['total_count'] == 2

        view = LedgerProjection.status_view(handle.tokens[0])
        assert [d['signed'] for d in view['documents']] == [True, False]

        status = TransitionEngine.submit_action(handle.tokens[0], 'sign', {
            'document': str(msa.pk),
            'fields': handle.values_for(0, document_id=msa.pk),
        })

        assert status == 'signed'
        entry = handle.entry(0)
        assert entry.signed_documents == [nda.pk, msa.pk]
        assert entry.signed_payload == handle.values_for(0)
        assert set(entry.document_payloads) == {str(nda.pk), str(msa.pk)}

    def test_whole_envelope_in_one_submission_merges_once(self, envelope, assembler):
        handle, (nda, msa) = envelope
        for index in range(2):
            TransitionEngine.submit_action(handle.tokens[index], 'sign', {'fields': handle.values_for(index)})

        assert [c[1] for c in assembler.composes()] == [nda.pk, msa.pk]
        merges = [c for c in assembler.calls if c[0] == 'merge']
        assert len(merges) == 1
        group = handle.group
        assert group.artifact_ref
        assert set(group.document_artifacts) == {str(nda.pk), str(msa.pk)}
        assert GroupService.summary(handle.group_id)['is_envelope'] is True

    def test_document_signed_twice_is_rejected(self, envelope):
        handle, (nda, _) = envelope
        payload = {'document': nda.pk, 'fields': handle.values_for(0, document_id=nda.pk)}
        TransitionEngine.submit_action(handle.tokens[0], 'sign', payload)
        with pytest.raises(StateConflictError):
            TransitionEngine.submit_action(handle.tokens[0], 'sign', payload)

    def test_fields_from_another_document_are_rejected(self, envelope):
        handle, (nda, _) = envelope
        with pytest.raises(ValidationError) as exc:
            TransitionEngine.submit_action(handle.tokens[0], 'sign', {
                'document': nda.pk,
                'fields': handle.values_for(0),
            })
        assert 'fields' in exc.value.details

    def test_missing_required_field(self, envelope):
        handle, _ = envelope
        values = handle.values_for(0)
        values[next(iter(values))] = '  '
        with pytest.raises(ValidationError) as exc:
            TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': values})
        assert len(exc.value.details['missing_fields']) == 1

    def test_other_recipients_fields_are_rejected(self, envelope):
        handle, _ = envelope
        with pytest.raises(ValidationError):
            TransitionEngine.submit_action(handle.tokens[0], 'sign', {'fields': handle.values_for(1)})

    def test_documents_without_fields_are_pre_acknowledged(self):
        nda, msa = make_document('nda.pdf', pages=1), make_document('msa.pdf', pages=1)
        fields = [
            {'document_id': nda.pk, 'recipient_index': 0, 'field_type': 'signature',
             'page_number': 1, 'x_pct': 0.1, 'y_pct': 0.1, 'width_pct': 0.2, 'height_pct': 0.05},
            {'document_id': msa.pk, 'recipient_index': 1, 'field_type': 'initials',
             'page_number': 1, 'x_pct': 0.1, 'y_pct': 0.1, 'width_pct': 0.2, 'height_pct': 0.05},
        ]
        handle = build_group(count=2, documents=[nda, msa], fields=fields)

        assert handle.entry(0).signed_documents == [msa.pk]
        assert TransitionEngine.submit_action(
            handle.tokens[0], 'sign', {'fields': handle.values_for(0)}
        ) == 'signed'
