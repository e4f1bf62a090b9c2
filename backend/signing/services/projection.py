"""
Read-side projection of a ledger entry as seen through one link.

Shared signatures are computed at read time from the signed entries of the
group, so there is no stored shared map to drift out of sync. Isolated
groups never expose another recipient's values.
"""

from ..exceptions import StateConflictError
from ..models import EntryStatus, LinkAccess, ViewMode
from .access import AccessPolicy
from .links import LinkService
from .ordering import current_turn, may_act
from .transitions import TransitionEngine


def shared_signatures(group, viewer_entry):
    """``{recipient_index: {field_id: value}}`` for every other signed entry."""
    if group.view_mode != ViewMode.SHARED:
        return {}
    others = group.entries.filter(status=EntryStatus.SIGNED).exclude(pk=viewer_entry.pk)
    return {
        str(other.recipient_index): dict(other.signed_payload or {})
        for other in others.order_by('recipient_index')
    }


def _own_values(entry):
    if entry.signed_payload is not None:
        return dict(entry.signed_payload)
    values = {}
    for payload in (entry.document_payloads or {}).values():
        values.update(payload)
    return values


def _accepts_actions(group, entry):
    try:
        TransitionEngine.ensure_open(group, entry, hard_cutoff=True)
    except StateConflictError:
        return False
    return True


def _documents(group, entry, values):
    fields = list(group.fields.filter(recipient_index=entry.recipient_index))
    signed = set(entry.signed_documents or [])
    documents = []
    for document in group.ordered_documents():
        documents.append({
            'id': document.pk,
            'name': document.display_name,
            'page_count': document.page_count,
            'signed': document.pk in signed,
            'fields': [
                {
                    'id': f.pk,
                    'type': f.field_type,
                    'label': f.label,
                    'page_number': f.page_number,
                    'x_pct': f.x_pct,
                    'y_pct': f.y_pct,
                    'width_pct': f.width_pct,
                    'height_pct': f.height_pct,
                    'required': f.required,
                    'value': values.get(str(f.pk)),
                }
                for f in fields if f.document_id == document.pk
            ],
        })
    return documents


class LedgerProjection:

    @staticmethod
    def status_view(token):
        """
        Build the view for the holder of ``token``.

        Raises:
            NotFoundError: unknown token
            AccessDeniedError: revoked, or reassigned without original view
        """
        link = LinkService.resolve(token)
        entry = link.entry
        group = entry.group
        permission = AccessPolicy.authorize(link, entry)

        base = {
            'group': {
                'id': str(group.pk),
                'title': group.title,
                'message': group.message,
                'owner_name': group.owner_name,
                'status': group.status,
                'signing_order': group.signing_order,
                'view_mode': group.view_mode,
                'due_date': group.due_date.isoformat() if group.due_date else None,
            },
            'access': permission,
        }

        gates = AccessPolicy.pending_gates(link, entry)
        if gates:
            base['access_required'] = gates
            base['recipient'] = {'name': link.name, 'status': entry.status}
            return base

        values = _own_values(entry)
        entries = list(group.entries.all())
        turn = current_turn(entries, group.signing_order)
        can_sign = (
            permission == LinkAccess.SIGNER
            and may_act(entry, entries, group.signing_order)
            and _accepts_actions(group, entry)
        )

        base.update({
            'recipient': {
                'index': entry.recipient_index,
                'name': entry.acting_name,
                'email': entry.acting_email,
                'status': entry.status,
                'signed_at': entry.signed_at.isoformat() if entry.signed_at else None,
                'signed_payload': entry.signed_payload,
                'signed_documents': entry.signed_documents,
                'delegated': bool(entry.delegation),
            },
            'documents': _documents(group, entry, values),
            'may_act': can_sign,
            'current_turn': [e.recipient_index for e in turn],
        })
        if group.view_mode == ViewMode.SHARED:
            base['shared_signatures'] = shared_signatures(group, entry)
        return base
