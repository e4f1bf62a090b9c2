"""
Transition engine: validates and applies recipient actions.

Responsibilities:
- Resolve the link, authorize it and run the optional access gates
- Validate the action against the entry's status and the group's state
- Apply the mutation atomically, then hand off to the ordering engine and
  the completion detector
- Queue notifications and webhooks for after the commit

Every action that touches more than one row (sign, decline, delegate,
reassign) locks the group row first so concurrent actions on the same
group evaluate completion against committed state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.validators import validate_email
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from notifications.models import NotificationKind

from ..collaborators import signing_setting
from ..exceptions import AccessDeniedError, NotFoundError, StateConflictError, ValidationError
from ..models import (
    OPEN_STATUSES, Action, ActionSource, EntryStatus, GroupStatus, LinkAccess,
    RecipientLedgerEntry, RequestGroup, SupersededReason,
)
from .access import AccessPolicy
from .audit import record_event
from .completion import CompletionDetector
from .envelope import EnvelopeCoordinator
from .links import LinkService
from .notify import notify, notify_webhooks
from .ordering import OrderingPolicy, may_act
from .state_machine import apply_transition, compare_and_swap, next_status

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    link: object
    entry: RecipientLedgerEntry
    source: str = ActionSource.RECIPIENT
    ip_address: Optional[str] = None
    user_agent: str = ''

    @property
    def audit(self):
        return {
            'source': self.source,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
        }


def parse_action(value):
    try:
        return Action(value)
    except ValueError:
        raise ValidationError(f"Unknown action '{value}'")


def _clean_identity(payload, name_key='name', email_key='email'):
    name = str(payload.get(name_key) or '').strip()
    email = str(payload.get(email_key) or '').strip().lower()
    if not name:
        raise ValidationError('A name is required')
    try:
        validate_email(email)
    except DjangoValidationError:
        raise ValidationError('A valid email address is required')
    return name, email


def _lock_group(group_id):
    return RequestGroup.objects.select_for_update().get(pk=group_id)


def _reload_entry(entry):
    return RecipientLedgerEntry.objects.select_related('group').get(pk=entry.pk)


class TransitionEngine:
    """Entry point for every recipient action."""

    @staticmethod
    def submit_action(token, action, payload=None, source=ActionSource.RECIPIENT,
                      ip_address=None, user_agent=''):
        """
        Apply ``action`` through the link identified by ``token``.

        Returns:
            str: the entry's status after the action
        """
        action = parse_action(action)
        payload = payload or {}
        link = LinkService.resolve(token)
        entry = link.entry

        if action == Action.EXPIRE:
            if source != ActionSource.SCHEDULER:
                raise AccessDeniedError('Only the scheduler can expire a request')
            return TransitionEngine.expire(entry).status

        if action == Action.REASSIGN:
            entry, _ = TransitionEngine.reassign(entry.group_id, entry.recipient_index, payload)
            return entry.status

        if action not in (Action.VIEW, Action.SIGN, Action.DECLINE, Action.DELEGATE):
            raise ValidationError(f"Action '{action}' cannot be submitted through a link")

        permission = AccessPolicy.authorize(link, entry)
        AccessPolicy.require_verified(link, entry)
        ctx = ActionContext(link, entry, source, ip_address, user_agent)

        if permission == LinkAccess.VIEW_ONLY:
            if action == Action.VIEW:
                record_event(entry.group, Action.VIEW, entry=entry,
                             from_status=entry.status, to_status=entry.status,
                             actor_name=link.name, actor_email=link.email,
                             view_only=True, **ctx.audit)
                return entry.status
            if link.superseded_reason == SupersededReason.DELEGATED:
                raise StateConflictError('This request was delegated; this link is view-only')
            raise AccessDeniedError('This link is view-only')

        handlers = {
            Action.VIEW: TransitionEngine.view,
            Action.SIGN: TransitionEngine.sign,
            Action.DECLINE: TransitionEngine.decline,
            Action.DELEGATE: TransitionEngine.delegate,
        }
        return handlers[action](ctx, payload).status

    @staticmethod
    def ensure_open(group, entry=None, hard_cutoff=False):
        if group.status != GroupStatus.PENDING_SIGNATURE:
            raise StateConflictError(f"This request is {GroupStatus(group.status).label.lower()}")
        if hard_cutoff:
            due = entry.effective_due_date() if entry is not None else group.due_date
            if group.hard_cutoff_passed(due_date=due):
                raise StateConflictError('This request has expired')

    # ------------------------------------------------------------------
    # view
    # ------------------------------------------------------------------
    @staticmethod
    def view(ctx, payload=None):
        entry = ctx.entry
        group = entry.group
        if group.status == GroupStatus.PENDING_SIGNATURE:
            TransitionEngine.ensure_open(group, entry, hard_cutoff=True)

        from_status = entry.status
        if group.status != GroupStatus.PENDING_SIGNATURE or from_status not in (
            EntryStatus.PENDING, EntryStatus.DELEGATED,
        ):
            # Repeat views and views outside the active window change nothing.
            return entry

        apply_transition(entry, Action.VIEW, viewed_at=timezone.now())
        record_event(group, Action.VIEW, entry=entry, from_status=from_status,
                     to_status=entry.status, **ctx.audit)
        return entry

    # ------------------------------------------------------------------
    # sign
    # ------------------------------------------------------------------
    @staticmethod
    def sign(ctx, payload):
        values = payload.get('fields', {})
        document_id = payload.get('document')
        if document_id is not None:
            try:
                document_id = int(document_id)
            except (TypeError, ValueError):
                raise ValidationError('document must be a document id')

        with transaction.atomic():
            group = _lock_group(ctx.entry.group_id)
            entry = _reload_entry(ctx.entry)
            TransitionEngine.ensure_open(group, entry, hard_cutoff=True)

            entries = list(group.entries.all())
            next_status(Action.SIGN, entry.status)
            if not may_act(entry, entries, group.signing_order):
                raise StateConflictError("It is not this recipient's turn to sign yet")

            targets = EnvelopeCoordinator.resolve_targets(entry, document_id)
            grouped = EnvelopeCoordinator.validate_values(entry, targets, values)
            signed_documents, document_payloads, fully_signed = EnvelopeCoordinator.progress(entry, grouped)
            from_status = entry.status
            now = timezone.now()

            if not fully_signed:
                compare_and_swap(entry, from_status,
                                 signed_documents=signed_documents,
                                 document_payloads=document_payloads)
                record_event(group, Action.SIGN, entry=entry, from_status=from_status,
                             to_status=entry.status, documents=list(grouped), partial=True, **ctx.audit)
                TransitionEngine._announce_progress(group, entry, signed_documents)
                return entry

            apply_transition(
                entry, Action.SIGN,
                signed_at=now,
                signed_payload=EnvelopeCoordinator.flatten_payloads(document_payloads),
                signed_documents=signed_documents,
                document_payloads=document_payloads,
            )
            record_event(group, Action.SIGN, entry=entry, from_status=from_status,
                         to_status=entry.status, documents=list(grouped), **ctx.audit)

            OrderingPolicy.activate_next(group, entry)
            TransitionEngine._announce_signed(group, entry)
            CompletionDetector.evaluate(group)

        return entry

    @staticmethod
    def _announce_progress(group, entry, signed_documents):
        total = group.group_documents.count()
        notify(NotificationKind.ENVELOPE_PROGRESS, group.owner_email,
               signer_name=entry.acting_name, group_title=group.title,
               signed_count=len(signed_documents), total_count=total)

    @staticmethod
    def _announce_signed(group, entry):
        notify(NotificationKind.RECIPIENT_SIGNED, group.owner_email,
               signer_name=entry.acting_name, signer_email=entry.acting_email,
               group_title=group.title)
        notify_webhooks(group, 'recipient.signed', {
            'group_id': str(group.pk),
            'recipient_index': entry.recipient_index,
            'name': entry.acting_name,
            'email': entry.acting_email,
            'signed_at': entry.signed_at.isoformat(),
            'signed_documents': entry.signed_documents,
        })

    # ------------------------------------------------------------------
    # decline
    # ------------------------------------------------------------------
    @staticmethod
    def decline(ctx, payload):
        reason = str(payload.get('reason') or '').strip()
        min_length = signing_setting('DECLINE_REASON_MIN_LENGTH')
        if len(reason) < min_length:
            raise ValidationError(f"Please provide a reason of at least {min_length} characters")

        with transaction.atomic():
            group = _lock_group(ctx.entry.group_id)
            entry = _reload_entry(ctx.entry)
            TransitionEngine.ensure_open(group)

            from_status = entry.status
            now = timezone.now()
            apply_transition(entry, Action.DECLINE, declined_at=now, decline_reason=reason)
            record_event(group, Action.DECLINE, entry=entry, from_status=from_status,
                         to_status=entry.status, reason=reason, **ctx.audit)

            cancellation = f"{entry.acting_name} declined to sign. Reason: {reason}"
            cancelled = TransitionEngine.cancel_open_entries(
                group, cancellation, exclude=entry, source=ActionSource.SYSTEM,
            )
            CompletionDetector.evaluate(group)
            logger.info(f"Group {group.pk} declined by recipient {entry.recipient_index}; "
                        f"{len(cancelled)} sibling(s) cancelled")

            TransitionEngine._announce_decline(group, entry, reason, cancellation)
        return entry

    @staticmethod
    def cancel_open_entries(group, reason, exclude=None, source=ActionSource.SYSTEM):
        """Bulk-cancel every open entry of ``group``; returns the cancelled entries."""
        siblings = group.entries.filter(status__in=OPEN_STATUSES)
        if exclude is not None:
            siblings = siblings.exclude(pk=exclude.pk)
        targets = list(siblings)
        if not targets:
            return []

        now = timezone.now()
        RecipientLedgerEntry.objects.filter(
            pk__in=[e.pk for e in targets],
            status__in=OPEN_STATUSES,
        ).update(
            status=EntryStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
            revision=F('revision') + 1,
            updated_at=now,
        )
        for sibling in targets:
            record_event(group, Action.CANCEL, entry=sibling, from_status=sibling.status,
                         to_status=EntryStatus.CANCELLED, source=source, reason=reason)
        return targets

    @staticmethod
    def _announce_decline(group, entry, reason, cancellation):
        data = {
            'decliner_name': entry.acting_name,
            'group_title': group.title,
            'reason': reason,
        }
        notify(NotificationKind.RECIPIENT_DECLINED, group.owner_email, **data)
        for other in group.entries.exclude(pk=entry.pk):
            if other.acting_email == group.owner_email:
                continue
            if other.status == EntryStatus.CANCELLED:
                notify(NotificationKind.REQUEST_CANCELLED, other.acting_email,
                       group_title=group.title, reason=cancellation)
            else:
                notify(NotificationKind.RECIPIENT_DECLINED, other.acting_email, **data)

        webhook_payload = {
            'group_id': str(group.pk),
            'recipient_index': entry.recipient_index,
            'name': entry.acting_name,
            'email': entry.acting_email,
            'reason': reason,
            'declined_at': entry.declined_at.isoformat(),
        }
        notify_webhooks(group, 'recipient.declined', webhook_payload)
        notify_webhooks(group, 'group.declined', webhook_payload)

    # ------------------------------------------------------------------
    # delegate
    # ------------------------------------------------------------------
    @staticmethod
    def delegate(ctx, payload):
        name, email = _clean_identity(payload)
        note = str(payload.get('note') or '').strip()

        with transaction.atomic():
            group = _lock_group(ctx.entry.group_id)
            entry = _reload_entry(ctx.entry)
            TransitionEngine.ensure_open(group, entry, hard_cutoff=True)

            if email == entry.acting_email.lower():
                raise ValidationError('You cannot delegate to yourself')

            from_status = entry.status
            delegator = {'name': entry.acting_name, 'email': entry.acting_email}
            now = timezone.now()
            apply_transition(
                entry, Action.DELEGATE,
                delegated_at=now,
                delegation={
                    'name': name,
                    'email': email,
                    'note': note,
                    'delegated_by': delegator,
                    'delegated_at': now.isoformat(),
                },
            )

            signer_links = entry.links.filter(access=LinkAccess.SIGNER, superseded_reason='')
            if from_status == EntryStatus.DELEGATED:
                # Re-delegation: the previous delegate loses access entirely.
                LinkService.supersede(signer_links, SupersededReason.DELEGATED, LinkAccess.REVOKED)
            else:
                LinkService.supersede(signer_links, SupersededReason.DELEGATED, LinkAccess.VIEW_ONLY)
            new_link = LinkService.issue(entry, name, email)

            record_event(group, Action.DELEGATE, entry=entry, from_status=from_status,
                         to_status=entry.status, actor_name=delegator['name'],
                         actor_email=delegator['email'], delegate_email=email, **ctx.audit)

            data = {
                'group_title': group.title,
                'delegator_name': delegator['name'],
                'delegate_name': name,
                'delegate_email': email,
                'note': note,
            }
            notify(NotificationKind.DELEGATED_TO_YOU, email, link_url=new_link.url, **data)
            notify(NotificationKind.DELEGATION_CONFIRMED, delegator['email'],
                   link_url=ctx.link.url, **data)
            notify(NotificationKind.RECIPIENT_DELEGATED, group.owner_email, **data)

        ctx.entry = entry
        return entry

    # ------------------------------------------------------------------
    # reassign (owner)
    # ------------------------------------------------------------------
    @staticmethod
    def reassign(group_id, recipient_index, payload):
        """
        Replace the identity in one recipient slot.

        Returns:
            tuple: (entry, new RecipientLink)
        """
        name, email = _clean_identity(payload)
        allow_original_view = bool(payload.get('allow_original_view', False))
        reason = str(payload.get('reason') or '').strip()

        with transaction.atomic():
            try:
                group = _lock_group(group_id)
            except RequestGroup.DoesNotExist:
                raise NotFoundError('Request not found')

            if str(payload.get('owner_id') or '') != group.owner_id:
                raise AccessDeniedError('Only the sender can reassign a recipient')
            TransitionEngine.ensure_open(group)

            entry = group.entries.filter(recipient_index=recipient_index).select_related('group').first()
            if entry is None:
                raise NotFoundError(f"Recipient {recipient_index} not found")

            if email == entry.acting_email.lower():
                raise ValidationError('The request is already assigned to this email')

            from_status = entry.status
            original = {'name': entry.acting_name, 'email': entry.acting_email}
            now = timezone.now()
            apply_transition(
                entry, Action.REASSIGN,
                name=name,
                email=email,
                delegation=None,
                viewed_at=None,
                failed_access_attempts=0,
                access_locked_until=None,
                reassignment={
                    'original_identity': original,
                    'allow_original_view': allow_original_view,
                    'reason': reason,
                    'reassigned_at': now.isoformat(),
                },
            )

            links = entry.links.exclude(access=LinkAccess.REVOKED)
            # Links from earlier hand-offs lose access; the current holder's
            # link defers to reassignment['allow_original_view'].
            links.exclude(superseded_reason='').update(access=LinkAccess.REVOKED)
            LinkService.supersede(
                links.filter(superseded_reason=''),
                SupersededReason.REASSIGNED,
                LinkAccess.VIEW_ONLY,
            )
            new_link = LinkService.issue(entry, name, email)

            record_event(group, Action.REASSIGN, entry=entry, from_status=from_status,
                         to_status=entry.status, source=ActionSource.OWNER,
                         actor_name=group.owner_name, actor_email=group.owner_email,
                         original_email=original['email'], new_email=email,
                         allow_original_view=allow_original_view)

            if entry.status != EntryStatus.AWAITING_TURN:
                notify(NotificationKind.REASSIGNED_TO_YOU, email,
                       recipient_name=name, owner_name=group.owner_name,
                       group_title=group.title, link_url=new_link.url)
            notify(NotificationKind.REASSIGNED_AWAY, original['email'],
                   recipient_name=original['name'], group_title=group.title,
                   view_notice='You can still view the document.' if allow_original_view else '')

        logger.info(f"Group {group.pk} recipient {recipient_index} reassigned to {email}")
        return entry, new_link

    # ------------------------------------------------------------------
    # expire (scheduler)
    # ------------------------------------------------------------------
    @staticmethod
    def expire(entry):
        with transaction.atomic():
            entry = _reload_entry(entry)
            from_status = entry.status
            apply_transition(entry, Action.EXPIRE, expired_at=timezone.now())
            record_event(entry.group, Action.EXPIRE, entry=entry, from_status=from_status,
                         to_status=entry.status, source=ActionSource.SCHEDULER)
        return entry
