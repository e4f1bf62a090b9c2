"""
Owner-side operations on request groups: creation, summary, cancellation,
deletion, manual reminders and finalization retries.
"""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from documents.models import DocumentReference
from notifications.models import NotificationKind

from ..collaborators import signing_setting
from ..exceptions import AccessDeniedError, NotFoundError, StateConflictError, ValidationError
from ..models import (
    ACTIVE_STATUSES, Action, ActionSource, EntryStatus, FieldPlacement, FinalizationState,
    GroupDocument, GroupStatus, RecipientLedgerEntry, RequestGroup, SigningOrder, ViewMode,
)
from .access import hash_access_code, validate_access_code
from .audit import record_event
from .completion import CompletionDetector, Finalizer
from .envelope import EnvelopeCoordinator
from .links import LinkService
from .notify import deliver, notify, notify_webhooks
from .ordering import initial_statuses, sequential_invariant_holds
from .transitions import TransitionEngine

logger = logging.getLogger(__name__)


def get_group(group_id, for_update=False):
    queryset = RequestGroup.objects.select_for_update() if for_update else RequestGroup.objects
    try:
        return queryset.get(pk=group_id)
    except RequestGroup.DoesNotExist:
        raise NotFoundError('Request not found')


def require_owner(group, owner_id):
    if not owner_id or str(owner_id) != group.owner_id:
        raise AccessDeniedError('Only the sender can manage this request')


class GroupService:
    """Service for the sender's view of a request group."""

    @staticmethod
    def _validate_creation(data):
        document_ids = list(data['documents'])
        recipients = data['recipients']
        field_specs = data['fields']
        now = timezone.now()

        if len(set(document_ids)) != len(document_ids):
            raise ValidationError('A document can only be included once')

        documents = DocumentReference.objects.in_bulk(document_ids)
        missing = [d for d in document_ids if d not in documents]
        if missing:
            raise ValidationError('Some documents do not exist', details={'documents': missing})

        errors = []
        for position, placement in enumerate(field_specs):
            if placement['recipient_index'] >= len(recipients):
                errors.append({'field': position, 'error': 'recipient_index out of range'})
                continue
            document = documents.get(placement['document_id'])
            if document is None:
                errors.append({'field': position, 'error': 'document is not part of this request'})
                continue
            if placement['page_number'] > document.page_count:
                errors.append({
                    'field': position,
                    'error': f"page {placement['page_number']} exceeds the document's {document.page_count} pages",
                })
        if errors:
            raise ValidationError('Invalid field placements', details={'fields': errors})

        assigned = {placement['recipient_index'] for placement in field_specs}
        unassigned = [i for i in range(len(recipients)) if i not in assigned]
        if unassigned:
            raise ValidationError(
                'Every recipient needs at least one field',
                details={'recipients': unassigned}
            )

        due_date = data.get('due_date')
        if due_date and due_date <= now:
            raise ValidationError('due_date must be in the future')
        for index, recipient in enumerate(recipients):
            if recipient.get('due_date') and recipient['due_date'] <= now:
                raise ValidationError(f"Recipient {index} due_date must be in the future")
            if recipient.get('access_code'):
                validate_access_code(recipient['access_code'])

        return [documents[d] for d in document_ids]

    @staticmethod
    def create_group(data):
        """
        Create a group with its ledger entries, field placements and links.

        Args:
            data: validated payload with ``documents`` (ids), ``recipients``,
                ``fields`` (each with ``document_id``), ``signing_order``,
                ``view_mode``, ``due_date`` and the owner identity

        Returns:
            dict: ``{'group_id', 'links': [...]}``, one link per recipient
        """
        documents = GroupService._validate_creation(data)
        recipients = data['recipients']
        field_specs = data['fields']
        signing_order = data.get('signing_order') or SigningOrder.ANY
        hard_expiry = data.get('hard_expiry')
        if hard_expiry is None:
            hard_expiry = signing_setting('HARD_EXPIRY_DEFAULT')

        document_ids = [d.pk for d in documents]
        statuses = initial_statuses(signing_order, len(recipients))

        with transaction.atomic():
            group = RequestGroup.objects.create(
                title=data['title'],
                message=data.get('message', ''),
                owner_id=str(data['owner_id']),
                owner_email=data['owner_email'],
                owner_name=data.get('owner_name', ''),
                signing_order=signing_order,
                view_mode=data.get('view_mode') or ViewMode.ISOLATED,
                due_date=data.get('due_date'),
                hard_expiry=hard_expiry,
            )
            GroupDocument.objects.bulk_create([
                GroupDocument(group=group, document=document, order=order)
                for order, document in enumerate(documents)
            ])
            FieldPlacement.objects.bulk_create([
                FieldPlacement(
                    group=group,
                    document_id=placement['document_id'],
                    recipient_index=placement['recipient_index'],
                    field_type=placement['field_type'],
                    label=placement.get('label', ''),
                    page_number=placement['page_number'],
                    x_pct=placement['x_pct'],
                    y_pct=placement['y_pct'],
                    width_pct=placement['width_pct'],
                    height_pct=placement['height_pct'],
                    required=placement.get('required', True),
                )
                for placement in field_specs
            ])

            issued = []
            for index, (recipient, status) in enumerate(zip(recipients, statuses)):
                access_code = recipient.get('access_code')
                entry = RecipientLedgerEntry.objects.create(
                    group=group,
                    recipient_index=index,
                    name=recipient['name'],
                    email=recipient['email'],
                    role=recipient.get('role') or 'signer',
                    status=status,
                    signed_documents=EnvelopeCoordinator.pre_acknowledged(document_ids, field_specs, index),
                    access_code_hash=hash_access_code(access_code) if access_code else '',
                    requires_secondary_verification=recipient.get('require_verification', False),
                    due_date=recipient.get('due_date'),
                )
                link = LinkService.issue(entry, entry.name, entry.email)
                record_event(group, Action.CREATE, entry=entry, to_status=status,
                             source=ActionSource.OWNER, actor_name=group.owner_name,
                             actor_email=group.owner_email)
                issued.append((entry, link))

            for entry, link in issued:
                if entry.status == EntryStatus.PENDING:
                    notify(NotificationKind.SIGNATURE_REQUESTED, entry.email,
                           recipient_name=entry.name, owner_name=group.owner_name,
                           group_title=group.title, message=group.message, link_url=link.url)

        logger.info(
            f"Created group {group.pk} ({signing_order}, {group.view_mode}) with "
            f"{len(recipients)} recipient(s) and {len(documents)} document(s)"
        )
        return {
            'group_id': str(group.pk),
            'links': [
                {
                    'recipient_index': entry.recipient_index,
                    'name': entry.name,
                    'email': entry.email,
                    'token': link.token,
                    'url': link.url,
                }
                for entry, link in issued
            ],
        }

    @staticmethod
    def summary(group_id):
        group = get_group(group_id)
        entries = list(group.entries.order_by('recipient_index'))
        return {
            'id': str(group.pk),
            'title': group.title,
            'status': group.status,
            'signing_order': group.signing_order,
            'view_mode': group.view_mode,
            'is_envelope': group.is_envelope,
            'due_date': group.due_date.isoformat() if group.due_date else None,
            'expired_at': group.expired_at.isoformat() if group.expired_at else None,
            'created_at': group.created_at.isoformat(),
            'completed_at': group.completed_at.isoformat() if group.completed_at else None,
            'artifact_ref': group.artifact_ref,
            'artifact_sha256': group.artifact_sha256 or None,
            'finalization': {
                'state': group.finalization_state,
                'attempts': group.finalization_attempts,
                'error': group.finalization_error or None,
                'next_attempt_at': (
                    group.next_finalization_at.isoformat() if group.next_finalization_at else None
                ),
            },
            'documents': [
                {'id': d.pk, 'name': d.display_name, 'page_count': d.page_count}
                for d in group.ordered_documents()
            ],
            'recipients': [
                {
                    'index': e.recipient_index,
                    'name': e.acting_name,
                    'email': e.acting_email,
                    'role': e.role,
                    'status': e.status,
                    'viewed_at': e.viewed_at.isoformat() if e.viewed_at else None,
                    'signed_at': e.signed_at.isoformat() if e.signed_at else None,
                    'decline_reason': e.decline_reason or None,
                    'cancellation_reason': e.cancellation_reason or None,
                    'signed_documents': e.signed_documents,
                    'delegated_by': (e.delegation or {}).get('delegated_by'),
                    'reassigned_from': (e.reassignment or {}).get('original_identity'),
                    'reminder_count': e.reminder_count,
                }
                for e in entries
            ],
            'sequential_invariant_holds': (
                sequential_invariant_holds(entries)
                if group.signing_order == SigningOrder.SEQUENTIAL else True
            ),
        }

    @staticmethod
    def cancel_group(group_id, owner_id, reason=''):
        reason = (reason or '').strip()
        with transaction.atomic():
            group = get_group(group_id, for_update=True)
            require_owner(group, owner_id)
            if group.status != GroupStatus.PENDING_SIGNATURE:
                raise StateConflictError(f"This request is {GroupStatus(group.status).label.lower()}")

            signed_count = group.entries.filter(status=EntryStatus.SIGNED).count()
            message = reason or 'Cancelled by the sender'
            if signed_count:
                message = f"{message} (voided after {signed_count} signature(s))"

            TransitionEngine.cancel_open_entries(group, message, source=ActionSource.OWNER)
            if not CompletionDetector.claim(
                group, GroupStatus.CANCELLED,
                cancelled_at=timezone.now(),
                cancellation_reason=message,
            ):
                raise StateConflictError('This request is no longer open')

            record_event(group, Action.CANCEL, source=ActionSource.OWNER,
                         from_status=GroupStatus.PENDING_SIGNATURE, to_status=GroupStatus.CANCELLED,
                         actor_name=group.owner_name, actor_email=group.owner_email,
                         reason=message, voided=bool(signed_count))

            for entry in group.entries.all():
                notify(NotificationKind.GROUP_CANCELLED, entry.acting_email,
                       owner_name=group.owner_name, group_title=group.title, reason=message)
            notify_webhooks(group, 'group.cancelled', {
                'group_id': str(group.pk),
                'title': group.title,
                'reason': message,
                'cancelled_at': group.cancelled_at.isoformat(),
            })

        logger.info(f"Group {group.pk} cancelled by owner: {message}")
        return group

    @staticmethod
    def delete_group(group_id, owner_id):
        group = get_group(group_id)
        require_owner(group, owner_id)
        group_pk = group.pk
        group.delete()
        logger.info(f"Group {group_pk} deleted by owner")

    @staticmethod
    def remind_recipient(group_id, recipient_index, owner_id):
        """
        Send a manual reminder to one recipient.

        Returns:
            dict: ``{'delivered', 'reminder_count'}``
        """
        group = get_group(group_id)
        require_owner(group, owner_id)
        if group.status != GroupStatus.PENDING_SIGNATURE:
            raise StateConflictError(f"This request is {GroupStatus(group.status).label.lower()}")

        entry = group.entries.filter(recipient_index=recipient_index).first()
        if entry is None:
            raise NotFoundError(f"Recipient {recipient_index} not found")
        if entry.status not in ACTIVE_STATUSES:
            raise StateConflictError(
                f"Recipient {recipient_index} is {EntryStatus(entry.status).label.lower()} and cannot be reminded"
            )

        link = LinkService.current_signer_link(entry)
        delivered = deliver(NotificationKind.REMINDER, entry.acting_email, {
            'recipient_name': entry.acting_name,
            'group_title': group.title,
            'link_url': link.url if link else '',
        })
        now = timezone.now()
        RecipientLedgerEntry.objects.filter(pk=entry.pk).update(
            reminder_count=F('reminder_count') + 1,
            last_reminder_sent_at=now,
        )
        entry.refresh_from_db(fields=['reminder_count', 'last_reminder_sent_at'])
        record_event(group, Action.REMIND, entry=entry, source=ActionSource.OWNER,
                     from_status=entry.status, to_status=entry.status,
                     actor_name=group.owner_name, actor_email=group.owner_email,
                     delivered=delivered)
        return {'delivered': delivered, 'reminder_count': entry.reminder_count}

    @staticmethod
    def retry_finalization(group_id, owner_id):
        group = get_group(group_id)
        require_owner(group, owner_id)
        stalled = (
            group.finalization_state == FinalizationState.ASSEMBLING
            and group.next_finalization_at is not None
            and group.next_finalization_at <= timezone.now()
        )
        if group.artifact_ref or not (group.finalization_state == FinalizationState.FAILED or stalled):
            raise StateConflictError('This request has no failed finalization to retry')
        Finalizer.retry(group.pk)
        group.refresh_from_db()
        return group

    @staticmethod
    def events(group_id):
        group = get_group(group_id)
        return group.events.select_related('entry').order_by('created_at', 'id')
