"""
Envelope coordination.

A group with a single document is the one-document case of an envelope:
every entry tracks the documents it has signed in ``signed_documents`` and
is only ``signed`` once that set covers the whole envelope. Documents that
carry no fields for a recipient are acknowledged for them at creation.
"""

from ..exceptions import StateConflictError, ValidationError


def _blank(value):
    return value is None or str(value).strip() == ''


class EnvelopeCoordinator:
    """Per-document bookkeeping for ledger entries."""

    @staticmethod
    def document_ids(group):
        return list(group.group_documents.order_by('order').values_list('document_id', flat=True))

    @staticmethod
    def pre_acknowledged(document_ids, field_specs, recipient_index):
        """Documents with no field for ``recipient_index``; field_specs carry ``document_id``."""
        with_fields = {
            placement['document_id'] for placement in field_specs
            if placement['recipient_index'] == recipient_index
        }
        return [doc_id for doc_id in document_ids if doc_id not in with_fields]

    @staticmethod
    def resolve_targets(entry, document_id=None):
        """
        Documents a sign submission covers: the one named, or everything the
        recipient has not signed yet.
        """
        all_ids = EnvelopeCoordinator.document_ids(entry.group)
        done = set(entry.signed_documents or [])
        if document_id is None:
            return [d for d in all_ids if d not in done]
        if document_id not in all_ids:
            raise ValidationError('Document is not part of this request')
        if document_id in done:
            raise StateConflictError('This document has already been signed')
        return [document_id]

    @staticmethod
    def validate_values(entry, target_ids, values):
        """
        Check a submission against the recipient's own fields on the target
        documents. Returns the values grouped by document id.
        """
        if not isinstance(values, dict):
            raise ValidationError('Field values must be an object keyed by field id')

        fields = entry.group.fields.filter(
            recipient_index=entry.recipient_index,
            document_id__in=target_ids,
        )
        by_id = {str(f.pk): f for f in fields}

        foreign = sorted(str(k) for k in values if str(k) not in by_id)
        if foreign:
            raise ValidationError(
                'Some fields are not assigned to this recipient on the documents being signed',
                details={'fields': foreign}
            )

        submitted = {str(k): v for k, v in values.items()}
        missing = [
            {'id': f.pk, 'label': f.label}
            for key, f in by_id.items()
            if f.required and _blank(submitted.get(key))
        ]
        if missing:
            raise ValidationError('All required fields must be filled', details={'missing_fields': missing})

        grouped = {str(doc_id): {} for doc_id in target_ids}
        for key, value in submitted.items():
            grouped[str(by_id[key].document_id)][key] = value
        return grouped

    @staticmethod
    def progress(entry, grouped_values):
        """
        Merge a validated submission into the entry's envelope state.

        Returns:
            tuple: (signed_documents, document_payloads, fully_signed)
        """
        all_ids = EnvelopeCoordinator.document_ids(entry.group)
        signed = list(entry.signed_documents or [])
        for doc_key in grouped_values:
            doc_id = int(doc_key)
            if doc_id not in signed:
                signed.append(doc_id)
        payloads = {**(entry.document_payloads or {}), **grouped_values}
        fully_signed = set(all_ids) <= set(signed)
        return sorted(signed, key=all_ids.index), payloads, fully_signed

    @staticmethod
    def flatten_payloads(document_payloads):
        flat = {}
        for values in document_payloads.values():
            flat.update(values)
        return flat
